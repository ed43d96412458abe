import os
import sys
import datetime
import unittest
from unittest import mock

import bcrypt
import requests
from fastapi.testclient import TestClient

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from reset_service import ResetNotifier
from rest_api import FitnessAPI
from settings_schema import ServerSettings


class RecordingNotifier(ResetNotifier):
    def __init__(self) -> None:
        super().__init__("http://mail.invalid")
        self.sent: list[dict] = []

    def send(self, payload: dict) -> None:
        self.sent.append(payload)


class PasswordResetTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_reset.db"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        self.now = datetime.datetime(2024, 5, 1, 12, 0, 0)
        self.notifier = RecordingNotifier()
        self.api = FitnessAPI(
            settings=ServerSettings(
                db_path=self.db_path, bcrypt_rounds=4, email_token="relay-secret"
            ),
            notifier=self.notifier,
            now=lambda: self.now,
        )
        self.client = TestClient(self.api.app)
        self.client.post(
            "/api/signup",
            json={
                "username": "runner",
                "email": "runner@example.com",
                "password": "OldPass1",
                "location": "web",
            },
        )

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def _generate(self, user: str = "runner") -> str:
        resp = self.client.post("/api/reset/generate", json={"user": user})
        self.assertEqual(resp.status_code, 200)
        return self.notifier.sent[-1]["token"]

    def _validate(self, token: str):
        return self.client.post("/api/reset/validate", json={"token": token})

    def _login(self, password: str):
        return self.client.post(
            "/api/login",
            json={"user": "runner", "password": password, "location": "web"},
        )

    def test_notification_payload(self) -> None:
        token = self._generate("runner@example.com")
        payload = self.notifier.sent[0]
        self.assertEqual(payload["username"], "runner")
        self.assertEqual(payload["email"], "runner@example.com")
        self.assertEqual(len(token), 32)
        self.assertNotEqual(payload["email_token"], token)
        self.assertTrue(
            bcrypt.checkpw(b"relay-secret", payload["email_token"].encode("ascii"))
        )

    def test_unknown_user(self) -> None:
        resp = self.client.post("/api/reset/generate", json={"user": "nobody"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(
            resp.json(), {"success": False, "reason": "Missing or invalid POST field(s)"}
        )
        self.assertEqual(self.notifier.sent, [])

    def test_token_expires_after_ten_minutes(self) -> None:
        token = self._generate()
        self.now += datetime.timedelta(minutes=9)
        self.assertEqual(self._validate(token).status_code, 200)

        self.now += datetime.timedelta(minutes=2)
        self.assertEqual(self._validate(token).status_code, 400)
        self.assertEqual(self.api.reset_tokens.count(), 0)

    def test_expired_token_cannot_be_redeemed(self) -> None:
        token = self._generate()
        self.now += datetime.timedelta(minutes=11)
        resp = self.client.post("/api/reset", json={"token": token, "password": "NewPass1"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(self._login("OldPass1").status_code, 200)

    def test_redeem_is_single_use(self) -> None:
        token = self._generate()
        resp = self.client.post("/api/reset", json={"token": token, "password": "NewPass1"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self._login("OldPass1").status_code, 400)
        self.assertEqual(self._login("NewPass1").status_code, 200)

        resp = self.client.post("/api/reset", json={"token": token, "password": "Other1"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(self._validate(token).status_code, 400)

    def test_reset_does_not_need_session(self) -> None:
        token = self._generate()
        resp = self.client.post(
            "/api/reset/validate",
            json={"token": token},
            headers={"X-Token": "deadbeef"},
        )
        self.assertEqual(resp.status_code, 200)


class ResetNotifierTestCase(unittest.TestCase):
    def test_posts_payload(self) -> None:
        notifier = ResetNotifier("http://mail.local/send", background=False)
        with mock.patch("reset_service.requests.post") as post:
            post.return_value.status_code = 202
            notifier.send({"token": "abc"})
        post.assert_called_once_with(
            "http://mail.local/send", json={"token": "abc"}, timeout=10.0
        )

    def test_failure_is_logged_only(self) -> None:
        notifier = ResetNotifier("http://mail.local/send", background=False)
        with mock.patch(
            "reset_service.requests.post",
            side_effect=requests.ConnectionError("down"),
        ):
            with self.assertLogs("reset_service", level="ERROR"):
                notifier.send({"token": "abc"})

    def test_without_url(self) -> None:
        notifier = ResetNotifier("", background=False)
        with mock.patch("reset_service.requests.post") as post:
            notifier.send({"token": "abc"})
        post.assert_not_called()


if __name__ == "__main__":
    unittest.main()
