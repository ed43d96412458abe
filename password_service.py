import logging

import bcrypt

logger = logging.getLogger(__name__)


class PasswordService:
    """Salted bcrypt hashing. Verification failures never raise."""

    # bcrypt only reads the first 72 bytes of its input
    MAX_BYTES = 72

    def __init__(self, rounds: int = 10) -> None:
        self.rounds = rounds

    def _encode(self, password: str) -> bytes:
        return password.encode("utf-8")[: self.MAX_BYTES]

    def hash(self, password: str) -> str:
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(self._encode(password), salt).decode("ascii")

    def verify(self, password: str, digest: str | None) -> bool:
        if not digest:
            return False
        try:
            return bcrypt.checkpw(self._encode(password), digest.encode("ascii"))
        except (ValueError, TypeError, UnicodeError) as e:
            logger.error("Password verification failed: %s", e)
            return False
