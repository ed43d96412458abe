"""Generic table console for administrators.

Table and column names are only ever taken from the introspected
:class:`SchemaSnapshot`; row values are always bound as parameters.
"""
import logging
import math
import re
import sqlite3
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Tuple

from auth import RequestContext
from caches import SchemaSnapshot
from db import TableRepository

logger = logging.getLogger(__name__)

CATALOG_TABLE = "exercise"

_INT_RE = re.compile(r"^-?[0-9]+$")
# sqlite stores integers as signed 64 bit
_INT_MIN = -(2 ** 63)
_INT_MAX = 2 ** 63 - 1


class InvalidCommand(ValueError):
    """Raised when a table command does not fit the current schema."""


class MutationResult(Enum):
    OK = "ok"
    CATALOG_CHANGED = "catalog_changed"
    FAILED = "failed"


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def _checked(value: Any) -> Any:
    if isinstance(value, int) and not _INT_MIN <= value <= _INT_MAX:
        raise InvalidCommand(f"integer out of range: {value}")
    if isinstance(value, float) and not math.isfinite(value):
        raise InvalidCommand(f"number out of range: {value}")
    return value


def _coerce(value: Any, declared: str) -> Any:
    if value is None:
        return None
    if isinstance(value, (dict, list, tuple, set)):
        raise InvalidCommand("values must be scalars")
    if isinstance(value, bool):
        value = int(value)
    if "INT" in declared:
        if isinstance(value, int):
            return _checked(value)
        if isinstance(value, str) and _INT_RE.match(value.strip()):
            return _checked(int(value.strip()))
        raise InvalidCommand(f"expected integer, got {value!r}")
    if any(t in declared for t in ("REAL", "FLOA", "DOUB")):
        try:
            return _checked(float(value))
        except (TypeError, ValueError, OverflowError):
            raise InvalidCommand(f"expected number, got {value!r}")
    return _checked(value)


@dataclass
class TableCommand:
    table: str
    operation: str
    columns: List[str] = field(default_factory=list)
    values: List[Any] = field(default_factory=list)
    predicate: Optional[int] = None
    limit: int = 10
    offset: int = 0

    OPERATIONS = ("select", "insert", "update", "delete")

    def validate(self, schema: SchemaSnapshot) -> None:
        if not schema.allows(self.table):
            raise InvalidCommand(f"table not allowed: {self.table}")
        if self.operation not in self.OPERATIONS:
            raise InvalidCommand(f"unknown operation: {self.operation}")
        known = schema.column_types.get(self.table, {})
        if self.operation in ("update", "delete"):
            if "id" not in known:
                raise InvalidCommand(f"table {self.table} has no id column")
            if not isinstance(self.predicate, int):
                raise InvalidCommand("row id required")
        if self.operation in ("insert", "update"):
            if not self.columns or len(self.columns) != len(self.values):
                raise InvalidCommand("no values given")
            if len(set(self.columns)) != len(self.columns):
                raise InvalidCommand("duplicate column")
            if self.operation == "update" and "id" in self.columns:
                raise InvalidCommand("primary key cannot be updated")
            coerced = []
            for column, value in zip(self.columns, self.values):
                if column not in known:
                    raise InvalidCommand(f"unknown column: {column}")
                coerced.append(_coerce(value, known[column]))
            self.values = coerced

    def to_sql(self) -> Tuple[str, Tuple]:
        table = _quote(self.table)
        if self.operation == "select":
            return (
                f"SELECT * FROM {table} ORDER BY rowid LIMIT ? OFFSET ?;",
                (self.limit, self.offset),
            )
        if self.operation == "insert":
            cols = ", ".join(_quote(c) for c in self.columns)
            marks = ", ".join("?" for _ in self.columns)
            return (
                f"INSERT INTO {table} ({cols}) VALUES ({marks});",
                tuple(self.values),
            )
        if self.operation == "update":
            assignments = ", ".join(f"{_quote(c)} = ?" for c in self.columns)
            return (
                f"UPDATE {table} SET {assignments} WHERE id = ?;",
                tuple(self.values) + (self.predicate,),
            )
        return f"DELETE FROM {table} WHERE id = ?;", (self.predicate,)


class AdminService:
    """Allow-listed CRUD on any table for administrators."""

    def __init__(
        self, tables_repo: TableRepository, schema: SchemaSnapshot, page_size: int = 10
    ) -> None:
        self.repo = tables_repo
        self.schema = schema
        self.page_size = page_size

    def _guard(self, ctx: RequestContext, fields: List[str]) -> Optional[dict]:
        post = ctx.fields(fields)
        if post is None:
            return None
        if not ctx.is_admin():
            return None
        if not self.schema.allows(post["table"]):
            logger.info("Admin request for unknown table %s", post["table"])
            return None
        return post

    def list_tables(self, ctx: RequestContext) -> Optional[List[str]]:
        if not ctx.is_admin():
            return None
        return list(self.schema.tables)

    def get_table_data(self, ctx: RequestContext) -> Optional[dict]:
        post = self._guard(ctx, ["table", "page"])
        if post is None:
            return None
        command = TableCommand(
            post["table"],
            "select",
            limit=self.page_size,
            offset=int(post["page"]) * self.page_size,
        )
        command.validate(self.schema)
        headers, rows = self.repo.fetch_page(*command.to_sql())
        if not rows:
            return {"headers": self.schema.columns(command.table), "body": []}
        return {"headers": headers, "body": rows}

    def update_table_data(self, ctx: RequestContext) -> Optional[MutationResult]:
        post = self._guard(ctx, ["table", "id", "values"])
        if post is None or not isinstance(post["values"], dict):
            return None
        values = post["values"]
        command = TableCommand(
            post["table"],
            "update",
            columns=list(values.keys()),
            values=list(values.values()),
            predicate=int(post["id"]),
        )
        return self._run(command)

    def insert_table_data(self, ctx: RequestContext) -> Optional[MutationResult]:
        post = self._guard(ctx, ["table", "values"])
        if post is None or not isinstance(post["values"], dict):
            return None
        values = post["values"]
        command = TableCommand(
            post["table"],
            "insert",
            columns=list(values.keys()),
            values=list(values.values()),
        )
        return self._run(command)

    def delete_table_data(self, ctx: RequestContext) -> Optional[MutationResult]:
        post = self._guard(ctx, ["table", "id"])
        if post is None:
            return None
        command = TableCommand(post["table"], "delete", predicate=int(post["id"]))
        return self._run(command)

    def _run(self, command: TableCommand) -> Optional[MutationResult]:
        try:
            command.validate(self.schema)
        except InvalidCommand as e:
            logger.info("Rejected %s on %s: %s", command.operation, command.table, e)
            return None
        try:
            self.repo.execute(*command.to_sql())
        except sqlite3.Error as e:
            logger.warning("Store rejected %s on %s: %s", command.operation, command.table, e)
            return MutationResult.FAILED
        logger.info("Admin %s on %s", command.operation, command.table)
        if command.table == CATALOG_TABLE:
            return MutationResult.CATALOG_CHANGED
        return MutationResult.OK
