"""Disposable in-memory SQLite store backing one simulation session.

The store owns a private ``:memory:`` connection opened in autocommit mode so
transactions are controlled explicitly: each pipeline phase runs inside
``transaction()`` and either commits as a whole or leaves no trace.

Generated SQL frequently packs several statements into one string. sqlite3
executes one statement per call, so ``split_statements`` cuts the text on
statement boundaries using ``sqlite3.complete_statement``, which understands
string literals and trigger bodies.
"""

from __future__ import annotations

import logging
import re
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator

LOGGER = logging.getLogger(__name__)

_TRANSACTION_CONTROL_RE = re.compile(
    r"^\s*(begin|commit|end|rollback|savepoint|release)\b",
    flags=re.IGNORECASE,
)


_COMMENT_RE = re.compile(r"--[^\n]*|/\*.*?\*/", flags=re.DOTALL)


def strip_comments(text: str) -> str:
    """Return *text* without ``--`` and ``/* */`` comments, trimmed."""

    return _COMMENT_RE.sub("", text).strip()


def _has_sql(piece: str) -> bool:
    return bool(strip_comments(piece).rstrip(";").strip())


def split_statements(text: str) -> list[str]:
    """Split *text* into individual SQL statements.

    Pieces holding nothing but whitespace or comments are dropped.
    """

    statements: list[str] = []
    parts = text.split(";")
    buffer = ""
    for index, part in enumerate(parts):
        buffer += part
        if index == len(parts) - 1:
            break
        buffer += ";"
        if sqlite3.complete_statement(buffer):
            if _has_sql(buffer):
                statements.append(buffer.strip())
            buffer = ""
    if _has_sql(buffer):
        statements.append(buffer.strip())
    return statements


def is_transaction_control(statement: str) -> bool:
    return bool(_TRANSACTION_CONTROL_RE.match(strip_comments(statement)))


def expand_statements(texts: Iterable[str]) -> list[str]:
    """Split each SQL text and return the statements to execute, in order.

    Transaction-control statements are dropped so the caller's transaction
    remains the only unit of work.
    """

    statements: list[str] = []
    for text in texts:
        for statement in split_statements(text):
            if is_transaction_control(statement):
                LOGGER.warning("Skipping transaction control statement: %s", statement)
                continue
            statements.append(statement)
    return statements


def quote_identifier(name: str) -> str:
    escaped = name.replace('"', '""')
    return f'"{escaped}"'


@dataclass(slots=True)
class SQLiteMemoryStore:
    """Volatile relational store exposing row-dictionary queries."""

    _connection: sqlite3.Connection = field(init=False)
    _closed: bool = field(init=False, default=False)

    def __post_init__(self) -> None:
        self._connection = sqlite3.connect(
            ":memory:",
            isolation_level=None,
            check_same_thread=False,
        )
        self._connection.row_factory = sqlite3.Row

    def run(self, statement: str) -> list[dict[str, Any]]:
        """Execute a single statement and return its rows as dictionaries."""

        cursor = self._connection.execute(statement)
        try:
            return [dict(row) for row in cursor.fetchall()]
        finally:
            cursor.close()

    def execute(self, statement: str) -> None:
        """Execute a single statement for effect only."""

        self._connection.execute(statement).close()

    @contextmanager
    def transaction(self) -> Iterator[SQLiteMemoryStore]:
        """Run the enclosed statements atomically."""

        self._connection.execute("BEGIN")
        try:
            yield self
        except BaseException:
            if self._connection.in_transaction:
                self._connection.execute("ROLLBACK")
            raise
        else:
            self._connection.execute("COMMIT")

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._connection.close()
        self._closed = True
