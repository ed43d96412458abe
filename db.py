import sqlite3
import datetime
import json
from contextlib import contextmanager
from typing import Any, List, Tuple, Optional, Iterable


TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "user": (
            """CREATE TABLE user (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    username TEXT NOT NULL UNIQUE,
                    email TEXT NOT NULL UNIQUE,
                    password TEXT NOT NULL,
                    is_admin INTEGER NOT NULL DEFAULT 0
                );""",
            ["id", "username", "email", "password", "is_admin"],
        ),
        "login": (
            """CREATE TABLE login (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    location TEXT NOT NULL,
                    token TEXT NOT NULL UNIQUE,
                    FOREIGN KEY(user_id) REFERENCES user(id) ON DELETE CASCADE
                );""",
            ["id", "user_id", "location", "token"],
        ),
        "login_reset": (
            """CREATE TABLE login_reset (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    token TEXT NOT NULL UNIQUE,
                    created TEXT NOT NULL,
                    FOREIGN KEY(user_id) REFERENCES user(id) ON DELETE CASCADE
                );""",
            ["id", "user_id", "token", "created"],
        ),
        "exercise": (
            """CREATE TABLE exercise (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE,
                    muscles TEXT NOT NULL DEFAULT ''
                );""",
            ["id", "name", "muscles"],
        ),
        "workout": (
            """CREATE TABLE workout (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    json TEXT NOT NULL DEFAULT '[]',
                    time TEXT NOT NULL DEFAULT '{}',
                    is_template INTEGER NOT NULL DEFAULT 0,
                    is_finished INTEGER NOT NULL DEFAULT 0,
                    FOREIGN KEY(user_id) REFERENCES user(id) ON DELETE CASCADE
                );""",
            ["id", "user_id", "name", "json", "time", "is_template", "is_finished"],
        ),
        "calendar": (
            """CREATE TABLE calendar (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    date TEXT NOT NULL,
                    diet TEXT NOT NULL DEFAULT '',
                    carbs REAL,
                    fat REAL,
                    protein REAL,
                    FOREIGN KEY(user_id) REFERENCES user(id) ON DELETE CASCADE
                );""",
            ["id", "user_id", "date", "diet", "carbs", "fat", "protein"],
        ),
        "calendar_workout": (
            """CREATE TABLE calendar_workout (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    calendar_id INTEGER NOT NULL,
                    workout_id INTEGER NOT NULL,
                    FOREIGN KEY(calendar_id) REFERENCES calendar(id) ON DELETE CASCADE,
                    FOREIGN KEY(workout_id) REFERENCES workout(id) ON DELETE CASCADE
                );""",
            ["id", "calendar_id", "workout_id"],
        ),
    }

    def __init__(self, db_path: str = "fitness.db") -> None:
        self._db_path = db_path
        self._ensure_schema()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        connection.execute("PRAGMA foreign_keys=on;")
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            conn.execute("PRAGMA foreign_keys=off;")
            # keep REFERENCES in other tables pointing at the rebuilt table
            conn.execute("PRAGMA legacy_alter_table=on;")
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            conn.execute("PRAGMA foreign_keys=on;")

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        # rebuild with the current column list, keeping shared columns
        conn.execute(f"DROP TABLE IF EXISTS {table}_old;")
        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)
        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            conn.execute(
                f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
            )
        conn.execute(f"DROP TABLE {table}_old;")


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.lastrowid

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()

    def query(self, sql: str, params: Iterable[Any] = (), single: bool = False):
        """Run ``sql`` and return rows as dicts, or the first row when ``single``."""
        with self._connection() as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.execute(sql, tuple(params))
            rows = [dict(r) for r in cursor.fetchall()]
        if single:
            return rows[0] if rows else None
        return rows


class UserRepository(BaseRepository):
    """Repository for user identities."""

    def create(
        self, username: str, email: str, password_hash: str, is_admin: bool = False
    ) -> int:
        return self.execute(
            "INSERT INTO user (username, email, password, is_admin) VALUES (?, ?, ?, ?);",
            (username, email, password_hash, 1 if is_admin else 0),
        )

    def find_by_login(self, login: str) -> Optional[dict]:
        return self.query(
            "SELECT id, username, email, password FROM user WHERE username = ? OR email = ?;",
            (login, login),
            single=True,
        )

    def exists(self, username: str, email: str) -> bool:
        rows = self.fetch_all(
            "SELECT id FROM user WHERE username = ? OR email = ?;", (username, email)
        )
        return bool(rows)

    def fetch_details(self, user_id: int) -> Optional[dict]:
        return self.query(
            "SELECT username, email, is_admin FROM user WHERE id = ?;",
            (user_id,),
            single=True,
        )

    def is_admin(self, user_id: int) -> bool:
        row = self.query(
            "SELECT is_admin FROM user WHERE id = ?;", (user_id,), single=True
        )
        return bool(row and row["is_admin"])

    def set_admin(self, user_id: int, is_admin: bool) -> None:
        self.execute(
            "UPDATE user SET is_admin = ? WHERE id = ?;",
            (1 if is_admin else 0, user_id),
        )

    def set_password(self, user_id: int, password_hash: str) -> None:
        self.execute(
            "UPDATE user SET password = ? WHERE id = ?;", (password_hash, user_id)
        )


class SessionRepository(BaseRepository):
    """Repository for bearer sessions, one per user and location."""

    def replace(self, user_id: int, location: str, token: str) -> None:
        self.execute(
            "DELETE FROM login WHERE location = ? AND user_id = ?;",
            (location, user_id),
        )
        self.execute(
            "INSERT INTO login (location, user_id, token) VALUES (?, ?, ?);",
            (location, user_id, token),
        )

    def fetch_user_id(self, token: str) -> Optional[int]:
        rows = self.fetch_all("SELECT user_id FROM login WHERE token = ?;", (token,))
        return int(rows[0][0]) if rows else None


class ResetTokenRepository(BaseRepository):
    """Repository for single-use password reset tokens."""

    def add(self, user_id: int, token: str, created: datetime.datetime) -> int:
        return self.execute(
            "INSERT INTO login_reset (user_id, token, created) VALUES (?, ?, ?);",
            (user_id, token, created.strftime(TIMESTAMP_FORMAT)),
        )

    def delete_older_than(self, cutoff: datetime.datetime) -> None:
        self.execute(
            "DELETE FROM login_reset WHERE created < ?;",
            (cutoff.strftime(TIMESTAMP_FORMAT),),
        )

    def fetch_user_id(self, token: str) -> Optional[int]:
        rows = self.fetch_all(
            "SELECT user_id FROM login_reset WHERE token = ?;", (token,)
        )
        return int(rows[0][0]) if rows else None

    def delete(self, token: str) -> None:
        self.execute("DELETE FROM login_reset WHERE token = ?;", (token,))

    def count(self) -> int:
        return int(self.fetch_all("SELECT COUNT(*) FROM login_reset;")[0][0])


class ExerciseRepository(BaseRepository):
    """Repository for the exercise catalog."""

    def add(self, name: str, muscles: List[str]) -> int:
        return self.execute(
            "INSERT INTO exercise (name, muscles) VALUES (?, ?);",
            (name, "|".join(muscles)),
        )

    def fetch_all_records(self) -> List[Tuple[int, str, List[str]]]:
        rows = self.fetch_all("SELECT id, name, muscles FROM exercise ORDER BY id;")
        return [
            (int(r[0]), r[1], [m for m in (r[2] or "").split("|") if m])
            for r in rows
        ]


class WorkoutRepository(BaseRepository):
    """Repository for workouts, templates and their calendar days."""

    def create(
        self,
        user_id: int,
        name: str,
        exercises_json: str,
        time: str = "{}",
        is_template: bool = False,
    ) -> int:
        return self.execute(
            "INSERT INTO workout (user_id, name, json, time, is_template, is_finished) "
            "VALUES (?, ?, ?, ?, ?, 0);",
            (user_id, name, exercises_json, time, 1 if is_template else 0),
        )

    def finish(self, workout_id: int, user_id: int) -> None:
        self.execute(
            "UPDATE workout SET is_finished = 1 WHERE id = ? AND user_id = ? AND is_template = 0;",
            (workout_id, user_id),
        )

    def delete_template(self, workout_id: int, user_id: int) -> None:
        self.execute(
            "DELETE FROM workout WHERE id = ? AND user_id = ? AND is_template = 1;",
            (workout_id, user_id),
        )

    def fetch_templates(self, user_id: int) -> List[dict]:
        return self.query(
            "SELECT id, name, json FROM workout WHERE is_template = 1 AND user_id = ? ORDER BY id;",
            (user_id,),
        )

    def fetch_on_date(self, user_id: int, date: str) -> List[dict]:
        return self.query(
            "SELECT workout.id, workout.name, workout.json, workout.time, "
            "workout.is_finished AS isFinished FROM calendar_workout "
            "INNER JOIN workout ON calendar_workout.workout_id = workout.id "
            "INNER JOIN calendar ON calendar_workout.calendar_id = calendar.id "
            "WHERE calendar.date = ? AND workout.user_id = ? AND workout.is_template = 0 "
            "ORDER BY workout.id;",
            (date, user_id),
        )

    def fetch_dates_in_month(self, user_id: int, month: str) -> List[str]:
        rows = self.fetch_all(
            "SELECT DISTINCT calendar.date FROM calendar_workout "
            "INNER JOIN calendar ON calendar_workout.calendar_id = calendar.id "
            "WHERE substr(calendar.date, 1, 7) = ? AND calendar.user_id = ? "
            "ORDER BY calendar.date;",
            (month, user_id),
        )
        return [r[0] for r in rows]

    def fetch_finished_dates(self, user_id: int) -> List[dict]:
        return self.query(
            "SELECT calendar.date FROM workout "
            "INNER JOIN calendar_workout ON calendar_workout.workout_id = workout.id "
            "INNER JOIN calendar ON calendar_workout.calendar_id = calendar.id "
            "WHERE workout.user_id = ? AND workout.is_template = 0 AND workout.is_finished = 1 "
            "ORDER BY calendar.date;",
            (user_id,),
        )

    def fetch_finished_since(self, user_id: int, since: str) -> List[list]:
        """Return the parsed exercise lists of finished workouts dated on or after ``since``."""
        rows = self.fetch_all(
            "SELECT workout.json FROM calendar_workout "
            "INNER JOIN calendar ON calendar_workout.calendar_id = calendar.id "
            "INNER JOIN workout ON calendar_workout.workout_id = workout.id "
            "WHERE calendar.user_id = ? AND calendar.date >= ? "
            "AND workout.is_template = 0 AND workout.is_finished = 1;",
            (user_id, since),
        )
        return [json.loads(r[0]) if r[0] else [] for r in rows]


class CalendarRepository(BaseRepository):
    """Repository for per-user calendar days holding diet and workout links."""

    def fetch_day(self, user_id: int, date: str) -> Optional[dict]:
        return self.query(
            "SELECT id, diet FROM calendar WHERE user_id = ? AND date = ?;",
            (user_id, date),
            single=True,
        )

    def ensure_day(self, user_id: int, date: str) -> int:
        row = self.fetch_day(user_id, date)
        if row is not None:
            return int(row["id"])
        return self.execute(
            "INSERT INTO calendar (user_id, date) VALUES (?, ?);", (user_id, date)
        )

    def set_diet(self, calendar_id: int, diet: str) -> None:
        self.execute("UPDATE calendar SET diet = ? WHERE id = ?;", (diet, calendar_id))

    def link_workout(self, calendar_id: int, workout_id: int) -> int:
        return self.execute(
            "INSERT INTO calendar_workout (calendar_id, workout_id) VALUES (?, ?);",
            (calendar_id, workout_id),
        )


class TableRepository(BaseRepository):
    """Introspection and raw row access for the admin console."""

    def fetch_tables(self) -> List[str]:
        rows = self.fetch_all(
            "SELECT name FROM sqlite_master WHERE type='table' "
            "AND name NOT LIKE 'sqlite_%' ORDER BY name;"
        )
        return [r[0] for r in rows]

    def fetch_columns(self, table: str) -> List[Tuple[str, str]]:
        """Return ``(name, declared type)`` pairs. ``table`` must come from ``fetch_tables``."""
        rows = self.fetch_all(f'PRAGMA table_info("{table}");')
        return [(r[1], (r[2] or "").upper()) for r in rows]

    def fetch_page(
        self, sql: str, params: Tuple = ()
    ) -> Tuple[List[str], List[list]]:
        with self._connection() as conn:
            cursor = conn.execute(sql, params)
            rows = cursor.fetchall()
            headers = [d[0] for d in cursor.description or []]
        return headers, [list(r) for r in rows]
