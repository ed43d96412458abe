import logging
import sqlite3
from enum import Enum
from typing import Optional, Union

from auth import RequestContext
from db import UserRepository
from password_service import PasswordService
from token_service import TokenService

logger = logging.getLogger(__name__)


class AccountError(Enum):
    INVALID_CREDENTIALS = "Invalid username or password"
    ALREADY_EXISTS = "Already exists"


class AccountService:
    """Login, registration and account details."""

    def __init__(
        self, users: UserRepository, tokens: TokenService, passwords: PasswordService
    ) -> None:
        self.users = users
        self.tokens = tokens
        self.passwords = passwords

    def login(self, ctx: RequestContext) -> Optional[Union[str, AccountError]]:
        post = ctx.fields(["user", "password", "location"])
        if post is None:
            return None
        user = self.users.find_by_login(post["user"])
        if user is None or not self.passwords.verify(post["password"], user["password"]):
            logger.info("Failed login for %s", post["user"])
            return AccountError.INVALID_CREDENTIALS
        return self.tokens.refresh_session(user["id"], post["location"])

    def register(self, ctx: RequestContext) -> Optional[Union[str, AccountError]]:
        post = ctx.fields(["username", "email", "password", "location"])
        if post is None:
            return None
        if self.users.exists(post["username"], post["email"]):
            return AccountError.ALREADY_EXISTS
        try:
            user_id = self.users.create(
                post["username"], post["email"], self.passwords.hash(post["password"])
            )
        except sqlite3.IntegrityError:
            return AccountError.ALREADY_EXISTS
        logger.info("Registered user %s", user_id)
        return self.tokens.refresh_session(user_id, post["location"])

    def details(self, ctx: RequestContext) -> Optional[dict]:
        if not ctx.is_logged_in():
            return None
        row = self.users.fetch_details(ctx.user_id)
        if row is None:
            return None
        return {
            "username": row["username"],
            "email": row["email"],
            "isAdmin": bool(row["is_admin"]),
        }
