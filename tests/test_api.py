import os
import sys
import datetime
import unittest
from fastapi.testclient import TestClient

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from rest_api import FitnessAPI
from reset_service import ResetNotifier
from settings_schema import ServerSettings


class RecordingNotifier(ResetNotifier):
    def __init__(self) -> None:
        super().__init__("http://mail.invalid")
        self.sent: list[dict] = []

    def send(self, payload: dict) -> None:
        self.sent.append(payload)


MISSING = {"success": False, "reason": "Missing or invalid POST field(s)"}


class APITestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_fitness.db"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        self.api = FitnessAPI(
            settings=ServerSettings(db_path=self.db_path, bcrypt_rounds=4),
            notifier=RecordingNotifier(),
            today=lambda: datetime.date(2024, 3, 10),
        )
        self.client = TestClient(self.api.app)

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def _signup(self, username: str = "athlete", location: str = "web") -> str:
        resp = self.client.post(
            "/api/signup",
            json={
                "username": username,
                "email": f"{username}@example.com",
                "password": "Secret123",
                "location": location,
            },
        )
        self.assertEqual(resp.status_code, 200)
        return resp.json()["token"]

    def test_health(self) -> None:
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"status": "ok"})

    def test_signup_and_login(self) -> None:
        token = self._signup()
        self.assertEqual(len(token), 64)

        resp = self.client.post(
            "/api/login",
            json={"user": "athlete@example.com", "password": "Secret123", "location": "web"},
        )
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertTrue(body["success"])
        self.assertNotEqual(body["token"], token)

    def test_second_login_replaces_session(self) -> None:
        self._signup()
        creds = {"user": "athlete", "password": "Secret123", "location": "mobile"}
        first = self.client.post("/api/login", json=creds).json()["token"]
        second = self.client.post("/api/login", json=creds).json()["token"]

        resp = self.client.get("/api/user", headers={"X-Token": first})
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json(), {"success": False, "reason": "Invalid token"})

        resp = self.client.get("/api/user", headers={"X-Token": second})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(
            resp.json(),
            {
                "success": True,
                "username": "athlete",
                "email": "athlete@example.com",
                "isAdmin": False,
            },
        )

    def test_sessions_per_location_are_independent(self) -> None:
        web = self._signup()
        mobile = self.client.post(
            "/api/login",
            json={"user": "athlete", "password": "Secret123", "location": "mobile"},
        ).json()["token"]
        for token in (web, mobile):
            resp = self.client.get("/api/user", headers={"X-Token": token})
            self.assertEqual(resp.status_code, 200)

    def test_login_wrong_password(self) -> None:
        self._signup()
        resp = self.client.post(
            "/api/login",
            json={"user": "athlete", "password": "nope", "location": "web"},
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(
            resp.json(), {"success": False, "reason": "Invalid username or password"}
        )

    def test_signup_duplicate(self) -> None:
        self._signup()
        resp = self.client.post(
            "/api/signup",
            json={
                "username": "other",
                "email": "athlete@example.com",
                "password": "x",
                "location": "web",
            },
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), {"success": False, "reason": "Already exists"})

    def test_malformed_fields_rejected(self) -> None:
        token = self._signup()
        cases = [
            ("/api/login", {"user": "athlete", "password": "Secret123"}),
            ("/api/login", {"user": "ab", "password": "x", "location": "web"}),
            ("/api/login", {"user": "athlete", "password": "x", "location": "desktop"}),
            ("/api/signup", {"username": "athlete2", "email": "bad", "password": "x", "location": "web"}),
            ("/api/workouts/dates", {"date": "March"}),
            ("/api/workouts/finish", {"id": "1; DROP"}),
            ("/api/user/muscles", {"timespan": -3}),
            ("/api/reset/validate", {"token": "XYZ"}),
            ("/api/admin/data", {"table": "user"}),
        ]
        for path, body in cases:
            with self.subTest(path=path, body=body):
                resp = self.client.post(path, json=body, headers={"X-Token": token})
                self.assertEqual(resp.status_code, 400)
                self.assertEqual(resp.json(), MISSING)

    def test_oversized_numbers_rejected(self) -> None:
        token = self._signup()
        huge = "99999999999999999999"
        cases = [
            ("/api/user/muscles", {"timespan": huge}),
            ("/api/user/muscles", {"timespan": 10 ** 12}),
            ("/api/workouts/finish", {"id": huge}),
            ("/api/templates/delete", {"id": huge}),
            ("/api/admin/data", {"table": "user", "page": huge}),
            ("/api/admin/delete", {"table": "user", "id": huge}),
        ]
        for path, body in cases:
            with self.subTest(path=path, body=body):
                resp = self.client.post(path, json=body, headers={"X-Token": token})
                self.assertEqual(resp.status_code, 400)
                self.assertEqual(resp.json(), MISSING)

    def test_largest_timespan_answers(self) -> None:
        token = self._signup()
        headers = {"X-Token": token}
        wid = self.client.post(
            "/api/workouts/save",
            json={"name": "Old", "json": [{"exercise_id": 1}], "time": "{}", "date": "1990-01-01"},
            headers=headers,
        ).json()["id"]
        self.client.post("/api/workouts/finish", json={"id": wid}, headers=headers)
        self.api.exercises.add("Squat", ["Quads"])
        self.api.catalog.rebuild()
        resp = self.client.post(
            "/api/user/muscles", json={"timespan": "999999999"}, headers=headers
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["muscles"], {"Quads": 3})

    def test_non_finite_numbers_rejected(self) -> None:
        token = self._signup()
        headers = {"X-Token": token, "Content-Type": "application/json"}
        cases = [
            ("/api/workouts/save",
             '{"name": "Inf", "json": [{"exercise_id": Infinity}], "time": "{}", "date": "2024-03-09"}'),
            ("/api/workouts/save",
             '{"name": "Inf", "json": [], "time": {"start": NaN}, "date": "2024-03-09"}'),
            ("/api/templates/save", '{"name": "Inf", "json": [{"exercise_id": -Infinity}]}'),
            ("/api/diet/add", '{"json": {"breakfast": [NaN]}}'),
        ]
        for path, content in cases:
            with self.subTest(path=path):
                resp = self.client.post(path, content=content, headers=headers)
                self.assertEqual(resp.status_code, 400)
                self.assertEqual(resp.json(), MISSING)

        resp = self.client.post(
            "/api/workouts/data", json={"date": "2024-03-09"}, headers={"X-Token": token}
        )
        self.assertEqual(resp.json()["data"], [])

    def test_non_json_body_rejected(self) -> None:
        resp = self.client.post(
            "/api/login",
            content="not json",
            headers={"Content-Type": "application/json"},
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), MISSING)

    def test_missing_token(self) -> None:
        resp = self.client.post("/api/workouts/dates", json={"date": "2024-3"})
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json(), {"success": False, "reason": "Invalid token"})

    def test_workout_workflow(self) -> None:
        token = self._signup()
        headers = {"X-Token": token}
        resp = self.client.post(
            "/api/workouts/save",
            json={
                "name": "Push day",
                "json": [{"exercise_id": 1, "sets": [[10, 60]]}],
                "time": {"start": "10:00"},
                "date": "2024-3-9",
            },
            headers=headers,
        )
        self.assertEqual(resp.status_code, 200)
        wid = resp.json()["id"]

        resp = self.client.post("/api/workouts/dates", json={"date": "2024-3"}, headers=headers)
        self.assertEqual(resp.json()["dates"], ["2024-03-09"])

        resp = self.client.post("/api/workouts/data", json={"date": "2024-03-09"}, headers=headers)
        data = resp.json()["data"]
        self.assertEqual(len(data), 1)
        self.assertEqual(data[0]["id"], wid)
        self.assertEqual(data[0]["json"], [{"exercise_id": 1, "sets": [[10, 60]]}])
        self.assertFalse(data[0]["isFinished"])

        resp = self.client.get("/api/workouts/finished", headers=headers)
        self.assertEqual(resp.json()["dates"], [])

        resp = self.client.post("/api/workouts/finish", json={"id": wid}, headers=headers)
        self.assertEqual(resp.status_code, 200)
        resp = self.client.get("/api/workouts/finished", headers=headers)
        self.assertEqual(resp.json()["dates"], [{"date": "2024-03-09"}])

    def test_finish_is_scoped_to_owner(self) -> None:
        owner = self._signup("owner1")
        other = self._signup("other1")
        wid = self.client.post(
            "/api/workouts/save",
            json={"name": "Legs", "json": [], "time": "{}", "date": "2024-03-09"},
            headers={"X-Token": owner},
        ).json()["id"]
        self.client.post("/api/workouts/finish", json={"id": wid}, headers={"X-Token": other})
        resp = self.client.get("/api/workouts/finished", headers={"X-Token": owner})
        self.assertEqual(resp.json()["dates"], [])

    def test_templates(self) -> None:
        token = self._signup()
        headers = {"X-Token": token}
        eid = self.api.exercises.add("Bench Press", ["Chest", "Triceps"])
        self.api.catalog.rebuild()

        resp = self.client.post(
            "/api/templates/save",
            json={"name": "Chest", "json": [{"exercise_id": eid}]},
            headers=headers,
        )
        self.assertEqual(resp.status_code, 200)
        templates = self.client.get("/api/templates", headers=headers).json()["templates"]
        self.assertEqual(
            templates,
            [{"id": 1, "name": "Chest", "json": [{"exercise_id": eid, "name": "Bench Press"}]}],
        )

        self.client.post("/api/templates/delete", json={"id": 1}, headers=headers)
        self.assertEqual(
            self.client.get("/api/templates", headers=headers).json()["templates"], []
        )

    def test_diet(self) -> None:
        token = self._signup()
        headers = {"X-Token": token}
        resp = self.client.post("/api/diet", json={"date": "2024-03-10"}, headers=headers)
        self.assertEqual(
            resp.json()["json"],
            {"breakfast": [], "lunch": [], "dinner": [], "snacks": []},
        )
        entry = {"breakfast": [{"name": "Oats", "kcal": 350}], "lunch": [], "dinner": [], "snacks": []}
        resp = self.client.post("/api/diet/add", json={"json": entry}, headers=headers)
        self.assertEqual(resp.status_code, 200)
        resp = self.client.post("/api/diet", json={"date": "2024-3-10"}, headers=headers)
        self.assertEqual(resp.json()["json"], entry)

    def test_exercises_listing(self) -> None:
        token = self._signup()
        self.api.exercises.add("Squat", ["Quads", "Glutes"])
        self.api.catalog.rebuild()
        resp = self.client.get("/api/exercises", headers={"X-Token": token})
        self.assertEqual(
            resp.json()["json"],
            [{"id": 1, "name": "Squat", "muscles": ["Quads", "Glutes"]}],
        )
        resp = self.client.get("/api/exercises")
        self.assertEqual(resp.status_code, 401)


if __name__ == "__main__":
    unittest.main()
