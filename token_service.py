import logging
import secrets
from typing import Optional

from db import SessionRepository

logger = logging.getLogger(__name__)


class TokenService:
    """Issue opaque tokens and keep one session per user and location."""

    LOCATIONS = ("web", "mobile")

    def __init__(self, sessions: SessionRepository, session_bytes: int = 32) -> None:
        self.sessions = sessions
        self.session_bytes = session_bytes

    @staticmethod
    def issue_token(byte_length: int) -> str:
        """Return ``byte_length`` random bytes rendered as lowercase hex."""
        return secrets.token_hex(byte_length)

    def refresh_session(self, user_id: int, location: str) -> str:
        if location not in self.LOCATIONS:
            raise ValueError(f"unknown location: {location}")
        token = self.issue_token(self.session_bytes)
        self.sessions.replace(user_id, location, token)
        logger.debug("Issued %s session for user %s", location, user_id)
        return token

    def resolve_session(self, token: Optional[str]) -> Optional[int]:
        if not token:
            return None
        return self.sessions.fetch_user_id(token)
