import argparse
import logging
import shutil
import sqlite3

from config import ServerConfig
from db import Database, UserRepository
from log_config import setup_logging
from password_service import PasswordService

logger = logging.getLogger(__name__)


def init_db(db_path: str) -> None:
    Database(db_path)


def create_admin(
    db_path: str, username: str, email: str, password: str, rounds: int = 10
) -> int:
    """Create an administrator, or promote the existing account with that name."""
    users = UserRepository(db_path)
    existing = users.find_by_login(username)
    if existing is not None:
        users.set_admin(existing["id"], True)
        logger.warning(
            "User %s already exists and was promoted; email and password were left unchanged",
            username,
        )
        return int(existing["id"])
    password_hash = PasswordService(rounds).hash(password)
    return users.create(username, email, password_hash, is_admin=True)


def backup_db(db_path: str, backup_path: str) -> None:
    shutil.copy(db_path, backup_path)


def restore_db(backup_path: str, db_path: str) -> None:
    shutil.copy(backup_path, db_path)


def serve(yaml_path: str, host: str, port: int) -> None:
    import uvicorn
    from rest_api import FitnessAPI

    api = FitnessAPI(yaml_path=yaml_path)
    setup_logging(api.settings.log_level)
    uvicorn.run(api.app, host=host, port=port)


def main() -> None:
    parser = argparse.ArgumentParser(description="Utility commands")
    sub = parser.add_subparsers(dest="cmd", required=True)

    srv = sub.add_parser("serve")
    srv.add_argument("--yaml", default="settings.yaml")
    srv.add_argument("--host", default="127.0.0.1")
    srv.add_argument("--port", type=int, default=3001)

    init = sub.add_parser("init-db")
    init.add_argument("--yaml", default="settings.yaml")

    adm = sub.add_parser("create-admin")
    adm.add_argument("--yaml", default="settings.yaml")
    adm.add_argument("--username", required=True)
    adm.add_argument("--email", required=True)
    adm.add_argument("--password", required=True)

    bkp = sub.add_parser("backup")
    bkp.add_argument("--db", default="fitness.db")
    bkp.add_argument("--out", default="backup.db")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", default="backup.db")
    rst.add_argument("--db", default="fitness.db")

    args = parser.parse_args()

    if args.cmd == "serve":
        serve(args.yaml, args.host, args.port)
    elif args.cmd == "init-db":
        settings = ServerConfig.load(args.yaml)
        setup_logging(settings.log_level)
        init_db(settings.db_path)
    elif args.cmd == "create-admin":
        settings = ServerConfig.load(args.yaml)
        setup_logging(settings.log_level)
        try:
            uid = create_admin(
                settings.db_path,
                args.username,
                args.email,
                args.password,
                settings.bcrypt_rounds,
            )
        except sqlite3.IntegrityError:
            parser.error("email already belongs to another account")
        print(f"Administrator id {uid}")
    elif args.cmd == "backup":
        backup_db(args.db, args.out)
    elif args.cmd == "restore":
        restore_db(args.src, args.db)


if __name__ == "__main__":
    main()
