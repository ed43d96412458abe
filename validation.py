import logging
import re
from typing import Any, Iterable, Optional

logger = logging.getLogger(__name__)

_EMAIL = r"[\w.-]+@([\w-]+\.)+[\w-]{2,4}"
_USERNAME = r"[a-zA-Z0-9._-]{5,}"

FIELD_PATTERNS = {
    "token": re.compile(r"^[a-f0-9]+$"),
    "reset_token": re.compile(r"^[a-f0-9]+$"),
    "email": re.compile(rf"^{_EMAIL}$"),
    "username": re.compile(rf"^{_USERNAME}$"),
    "user": re.compile(rf"^(({_EMAIL})|({_USERNAME}))$"),
    "password": re.compile(r"^.{1,72}$"),
    "date": re.compile(r"^[0-9]{4}(-[0-9]{1,2}){1,2}$"),
    "timespan": re.compile(r"^[0-9]{1,9}$"),
    "id": re.compile(r"^[0-9]{1,9}$"),
    "page": re.compile(r"^[0-9]{1,9}$"),
    "location": re.compile(r"^(web|mobile)$"),
    "table": re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$"),
}


def _as_text(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (str, int)):
        return str(value)
    return None


def validate_fields(body: Optional[dict], fields: Iterable[str]) -> Optional[dict]:
    """Return the requested fields from ``body`` or ``None`` if any is missing or malformed."""
    if not isinstance(body, dict):
        logger.debug("Request body is not an object")
        return None
    result = {}
    for field in fields:
        if field not in body:
            logger.debug("Missing POST field: %s", field)
            return None
        value = body[field]
        pattern = FIELD_PATTERNS.get(field)
        if pattern is not None:
            text = _as_text(value)
            if text is None or not pattern.fullmatch(text):
                logger.debug("Pattern for field [%s] failed with: %r", field, value)
                return None
        result[field] = value
    return result


def normalize_date(value: str) -> str:
    """Zero-pad a ``YYYY-M(-D)`` string to ``YYYY-MM(-DD)``."""
    parts = value.split("-")
    return "-".join([parts[0]] + [p.zfill(2) for p in parts[1:]])
