"""Schema phase: applies the generated CREATE/ALTER statements atomically."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Any

from src.core.envelope import SCHEMA_KEYS, KeyedEnvelope, decode_envelope, envelope_statements
from src.core.errors import SchemaExecutionError
from src.core.introspection import SchemaIntrospector, TableStats
from src.integrations.sqlite_store import SQLiteMemoryStore, expand_statements

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class SchemaExecution:
    executed_sql: list[str]
    table_stats: TableStats
    create_sql: str = ""
    alter_sql: str = ""


@dataclass
class SchemaExecutor:
    """Decodes a schema envelope and runs its statements as one transaction."""

    introspector: SchemaIntrospector = field(default_factory=SchemaIntrospector)

    def run(self, store: SQLiteMemoryStore, completion: Any) -> SchemaExecution:
        envelope = decode_envelope(completion, SCHEMA_KEYS)
        create_sql = alter_sql = ""
        if isinstance(envelope, KeyedEnvelope):
            create_sql = envelope.get("create")
            alter_sql = envelope.get("alter")
        statements = expand_statements(envelope_statements(envelope))
        LOGGER.debug(
            "Schema envelope decoded as %s with %s statement(s)",
            type(envelope).__name__,
            len(statements),
        )

        executed: list[str] = []
        current: str | None = None
        try:
            if statements:
                with store.transaction():
                    for statement in statements:
                        current = statement
                        store.execute(statement)
                        executed.append(statement)
        except (sqlite3.Error, sqlite3.Warning) as exc:
            LOGGER.warning("Schema statement failed and was rolled back: %s", exc)
            raise SchemaExecutionError(
                str(exc),
                executed_sql=executed,
                failed_statement=current,
                sql_fields={"create_sql": create_sql, "alter_sql": alter_sql},
            ) from exc

        return SchemaExecution(
            executed_sql=executed,
            table_stats=self.introspector.stats(store),
            create_sql=create_sql,
            alter_sql=alter_sql,
        )
