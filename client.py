import requests
from typing import Optional

class FitnessClient:
    """Simple REST client for the fitness API."""

    def __init__(self, base_url: str = "http://localhost:3001", token: Optional[str] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token

    def _headers(self) -> dict:
        return {"X-Token": self.token} if self.token else {}

    def login(self, user: str, password: str, location: str = "web") -> str:
        resp = requests.post(
            f"{self.base_url}/api/login",
            json={"user": user, "password": password, "location": location},
        )
        resp.raise_for_status()
        self.token = resp.json()["token"]
        return self.token

    def muscles(self, timespan: int) -> dict:
        resp = requests.post(
            f"{self.base_url}/api/user/muscles",
            json={"timespan": timespan},
            headers=self._headers(),
        )
        resp.raise_for_status()
        return resp.json()["muscles"]

    def admin_tables(self) -> list:
        resp = requests.get(f"{self.base_url}/api/admin/tables", headers=self._headers())
        resp.raise_for_status()
        return resp.json()["tables"]

    def request_reset(self, user: str) -> bool:
        resp = requests.post(f"{self.base_url}/api/reset/generate", json={"user": user})
        return resp.status_code == 200
