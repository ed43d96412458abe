"""Per-request identity resolution and the write-once response sink.

Every handler works on a :class:`RequestContext`. The context owns a
:class:`ResponseSink` that accepts exactly one response; the
:class:`AuthorizationGate` writes the 401 answers itself, so a handler that
later tries to report a validation failure is silently ignored.
"""
import logging
from enum import Enum
from typing import Iterable, Optional

from fastapi.responses import JSONResponse

from caches import SchemaSnapshot
from db import UserRepository
from token_service import TokenService
from validation import validate_fields

logger = logging.getLogger(__name__)

MISSING_REASON = "Missing or invalid POST field(s)"


class ResponseSink:
    """Holds the single response of a request."""

    def __init__(self) -> None:
        self._response: Optional[JSONResponse] = None

    @property
    def written(self) -> bool:
        return self._response is not None

    def respond(self, status_code: int, payload: Optional[dict] = None) -> bool:
        """Write the response. Returns ``False`` when one was already written."""
        if self._response is not None:
            logger.debug("Dropping response %s, request already answered", status_code)
            return False
        body = dict(payload or {})
        body["success"] = status_code == 200
        self._response = JSONResponse(status_code=status_code, content=body)
        return True

    def respond_success(self, payload: Optional[dict] = None) -> bool:
        return self.respond(200, payload)

    def respond_missing(self) -> bool:
        return self.respond(400, {"reason": MISSING_REASON})

    def take(self) -> JSONResponse:
        if self._response is None:
            logger.error("Handler finished without a response")
            self.respond(500, {"reason": "No response"})
        return self._response


class IdentityState(Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"
    ADMIN = "admin"


class AuthorizationGate:
    """Resolve the bearer token once and answer login/admin questions."""

    def __init__(
        self,
        token: Optional[str],
        tokens: TokenService,
        users: UserRepository,
        schema: SchemaSnapshot,
        sink: ResponseSink,
    ) -> None:
        self.token = token
        self.tokens = tokens
        self.users = users
        self.schema = schema
        self.sink = sink
        self.user_id: Optional[int] = None
        self._logged_in: Optional[bool] = None
        self._admin: Optional[bool] = None

    def _resolve_login(self) -> bool:
        if self._logged_in is None:
            self.user_id = self.tokens.resolve_session(self.token)
            self._logged_in = self.user_id is not None
        return self._logged_in

    def _resolve_admin(self) -> bool:
        if self._admin is None:
            self._admin = self._resolve_login() and self.users.is_admin(self.user_id)
        return self._admin

    @property
    def state(self) -> IdentityState:
        if not self._resolve_login():
            return IdentityState.ANONYMOUS
        if self._resolve_admin():
            return IdentityState.ADMIN
        return IdentityState.AUTHENTICATED

    def is_logged_in(self) -> bool:
        if self._resolve_login():
            return True
        logger.debug("Rejected request with invalid token")
        self.sink.respond(401, {"reason": "Invalid token"})
        return False

    def is_admin(self) -> bool:
        if not self.is_logged_in() or not self._resolve_admin():
            logger.info("Unauthorized admin access by user %s", self.user_id)
            self.sink.respond(401, {"reason": "Unauthorized"})
            return False
        self.schema.rebuild()
        return True


class RequestContext:
    """Request body, identity gate and response sink of one request."""

    def __init__(
        self, body: Optional[dict], gate: AuthorizationGate, sink: ResponseSink
    ) -> None:
        self.body = body if body is not None else {}
        self.gate = gate
        self.sink = sink

    @property
    def user_id(self) -> Optional[int]:
        return self.gate.user_id

    def fields(self, names: Iterable[str]) -> Optional[dict]:
        return validate_fields(self.body, names)

    def is_logged_in(self) -> bool:
        return self.gate.is_logged_in()

    def is_admin(self) -> bool:
        return self.gate.is_admin()
