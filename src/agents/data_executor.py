"""Data phase: applies generated DML and captures the final query's rows."""

from __future__ import annotations

import logging
import re
import sqlite3
from dataclasses import dataclass, field
from typing import Any

from src.core.envelope import DATA_KEYS, KeyedEnvelope, decode_envelope, envelope_statements
from src.core.errors import DataExecutionError, InvariantViolation
from src.core.introspection import SchemaIntrospector, TableStats
from src.integrations.sqlite_store import SQLiteMemoryStore, expand_statements, strip_comments

LOGGER = logging.getLogger(__name__)

_READ_QUERY_RE = re.compile(r"^select\b", flags=re.IGNORECASE)

NO_SQL_MESSAGE = "no SQL generated"
FINAL_READ_MESSAGE = "final statement must be a read query"


@dataclass(slots=True)
class DataExecution:
    executed_sql: list[str]
    table_stats: TableStats
    response: list[dict[str, Any]]
    dml_sql: str = ""
    select_sql: str = ""


def is_read_query(statement: str) -> bool:
    return bool(_READ_QUERY_RE.match(strip_comments(statement)))


@dataclass
class DataExecutor:
    """Decodes a data envelope, validates it, and runs it atomically.

    Fields are split into individual statements before validation. Every
    statement but the last runs for effect; the last must be a read query and
    its result set becomes the simulated response.
    """

    introspector: SchemaIntrospector = field(default_factory=SchemaIntrospector)

    def run(self, store: SQLiteMemoryStore, completion: Any) -> DataExecution:
        envelope = decode_envelope(completion, DATA_KEYS)
        dml_sql = select_sql = ""
        if isinstance(envelope, KeyedEnvelope):
            dml_sql = envelope.get("dml")
            select_sql = envelope.get("select")
        statements = expand_statements(envelope_statements(envelope))

        if not statements:
            raise InvariantViolation(
                NO_SQL_MESSAGE,
                sql_fields={"dml_sql": dml_sql, "select_sql": select_sql},
            )
        final_statement = statements[-1]
        if not is_read_query(final_statement):
            raise InvariantViolation(
                FINAL_READ_MESSAGE,
                sql_fields={"dml_sql": dml_sql, "select_sql": select_sql},
            )
        if not select_sql:
            select_sql = final_statement

        executed: list[str] = []
        response: list[dict[str, Any]] = []
        current: str | None = None
        try:
            with store.transaction():
                for statement in statements[:-1]:
                    current = statement
                    store.execute(statement)
                    executed.append(statement)
                current = final_statement
                response = store.run(final_statement)
                executed.append(final_statement)
        except (sqlite3.Error, sqlite3.Warning) as exc:
            LOGGER.warning("Data statement failed and was rolled back: %s", exc)
            raise DataExecutionError(
                str(exc),
                executed_sql=executed,
                failed_statement=current,
                sql_fields={"dml_sql": dml_sql, "select_sql": select_sql},
            ) from exc

        return DataExecution(
            executed_sql=executed,
            table_stats=self.introspector.stats(store),
            response=response,
            dml_sql=dml_sql,
            select_sql=select_sql,
        )
