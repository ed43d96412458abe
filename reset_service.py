import datetime
import logging
import threading
from typing import Callable, Optional

import requests

from auth import RequestContext
from db import ResetTokenRepository, UserRepository
from password_service import PasswordService
from token_service import TokenService

logger = logging.getLogger(__name__)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


class ResetNotifier:
    """Send reset notifications to the mail relay without waiting for it."""

    def __init__(self, url: str, timeout: float = 10.0, background: bool = True) -> None:
        self.url = url
        self.timeout = timeout
        self.background = background

    def send(self, payload: dict) -> None:
        if not self.url:
            logger.warning("No email server configured, reset notification skipped")
            return
        if self.background:
            threading.Thread(target=self._post, args=(payload,), daemon=True).start()
        else:
            self._post(payload)

    def _post(self, payload: dict) -> None:
        try:
            resp = requests.post(self.url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("Reset notification failed: %s", e)
            return
        logger.info("Reset notification answered with %s", resp.status_code)


class PasswordResetService:
    """Issue, check and redeem single-use password reset tokens."""

    def __init__(
        self,
        users: UserRepository,
        resets: ResetTokenRepository,
        passwords: PasswordService,
        notifier: ResetNotifier,
        email_secret: str = "",
        token_bytes: int = 16,
        ttl_minutes: int = 10,
        now: Callable[[], datetime.datetime] | None = None,
    ) -> None:
        self.users = users
        self.resets = resets
        self.passwords = passwords
        self.notifier = notifier
        self.email_secret = email_secret
        self.token_bytes = token_bytes
        self.ttl = datetime.timedelta(minutes=ttl_minutes)
        self.now = now or _utcnow

    def purge_expired(self) -> None:
        self.resets.delete_older_than(self.now() - self.ttl)

    def request_reset(self, ctx: RequestContext) -> Optional[bool]:
        post = ctx.fields(["user"])
        if post is None:
            return None
        self.purge_expired()
        user = self.users.find_by_login(post["user"])
        if user is None:
            logger.debug("Reset requested for unknown user")
            return None
        token = TokenService.issue_token(self.token_bytes)
        self.resets.add(user["id"], token, self.now())
        # the relay receives a hash of the shared secret, never the secret itself
        self.notifier.send(
            {
                "username": user["username"],
                "email": user["email"],
                "token": token,
                "email_token": self.passwords.hash(self.email_secret),
            }
        )
        return True

    def validate(self, ctx: RequestContext) -> Optional[bool]:
        post = ctx.fields(["token"])
        if post is None:
            return None
        self.purge_expired()
        if self.resets.fetch_user_id(post["token"]) is None:
            return None
        return True

    def redeem(self, ctx: RequestContext) -> Optional[bool]:
        post = ctx.fields(["password", "token"])
        if post is None:
            return None
        self.purge_expired()
        user_id = self.resets.fetch_user_id(post["token"])
        if user_id is None:
            return None
        self.users.set_password(user_id, self.passwords.hash(post["password"]))
        self.resets.delete(post["token"])
        logger.info("Password reset for user %s", user_id)
        return True
