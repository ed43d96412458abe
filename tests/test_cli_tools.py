import os
import sys
import unittest
sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from cli import backup_db, create_admin, init_db, restore_db
from db import TableRepository, UserRepository
from password_service import PasswordService

class CLIToolsTest(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_cli.db"
        self.backup_path = "test_cli_backup.db"
        for path in [self.db_path, self.backup_path]:
            if os.path.exists(path):
                os.remove(path)

    def tearDown(self) -> None:
        for path in [self.db_path, self.backup_path]:
            if os.path.exists(path):
                os.remove(path)

    def test_init_db(self) -> None:
        init_db(self.db_path)
        self.assertIn("login_reset", TableRepository(self.db_path).fetch_tables())

    def test_create_admin(self) -> None:
        uid = create_admin(self.db_path, "rootuser", "root@example.com", "pw", rounds=4)
        users = UserRepository(self.db_path)
        self.assertTrue(users.is_admin(uid))
        row = users.find_by_login("root@example.com")
        self.assertTrue(PasswordService(4).verify("pw", row["password"]))

    def test_create_admin_promotes_existing(self) -> None:
        users = UserRepository(self.db_path)
        uid = users.create("member", "member@example.com", "hash")
        with self.assertLogs("cli", level="WARNING") as logs:
            self.assertEqual(create_admin(self.db_path, "member", "x@example.com", "pw", rounds=4), uid)
        self.assertIn("already exists", logs.output[0])
        self.assertTrue(users.is_admin(uid))
        self.assertEqual(users.find_by_login("member")["password"], "hash")

    def test_backup_restore(self) -> None:
        create_admin(self.db_path, "rootuser", "root@example.com", "pw", rounds=4)
        backup_db(self.db_path, self.backup_path)
        os.remove(self.db_path)
        restore_db(self.backup_path, self.db_path)
        self.assertIsNotNone(UserRepository(self.db_path).find_by_login("rootuser"))

if __name__ == "__main__":
    unittest.main()
