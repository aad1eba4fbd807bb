"""Schema and row-count introspection over the live volatile store."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from src.integrations.sqlite_store import SQLiteMemoryStore, quote_identifier

_USER_TABLES_SQL = (
    "SELECT name FROM sqlite_master "
    "WHERE type='table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
)


@dataclass(frozen=True, slots=True)
class ColumnInfo:
    name: str
    declared_type: str
    nullable: bool

    def render(self) -> str:
        parts = [self.name]
        if self.declared_type:
            parts.append(self.declared_type)
        if not self.nullable:
            parts.append("NOT NULL")
        return " ".join(parts)


@dataclass(frozen=True, slots=True)
class TableStat:
    table: str
    rows: int

    def to_dict(self) -> dict[str, Any]:
        return {"table": self.table, "rows": self.rows}


SchemaSnapshot = dict[str, list[ColumnInfo]]
TableStats = list[TableStat]


class SchemaIntrospector:
    """Reads table metadata and row counts; holds no state of its own."""

    def list_tables(self, store: SQLiteMemoryStore) -> list[str]:
        return [str(row["name"]) for row in store.run(_USER_TABLES_SQL)]

    def snapshot(self, store: SQLiteMemoryStore) -> SchemaSnapshot:
        snapshot: SchemaSnapshot = {}
        for table in self.list_tables(store):
            columns = store.run(f"PRAGMA table_info({quote_identifier(table)})")
            snapshot[table] = [
                ColumnInfo(
                    name=str(column["name"]),
                    declared_type=str(column["type"] or ""),
                    nullable=not column["notnull"],
                )
                for column in columns
            ]
        return snapshot

    def stats(self, store: SQLiteMemoryStore) -> TableStats:
        stats: TableStats = []
        for table in self.list_tables(store):
            rows = store.run(f"SELECT COUNT(*) AS c FROM {quote_identifier(table)}")
            stats.append(TableStat(table=table, rows=int(rows[0]["c"])))
        return stats

    def observe(self, store: SQLiteMemoryStore) -> tuple[SchemaSnapshot, TableStats]:
        """Return a snapshot and stats taken from the same store observation."""

        return self.snapshot(store), self.stats(store)


def render_schema(snapshot: SchemaSnapshot) -> str:
    """Render *snapshot* one table per line; empty string when there are no tables."""

    return "\n".join(
        f"{table}: " + ", ".join(column.render() for column in columns)
        for table, columns in snapshot.items()
    )


def render_stats(stats: TableStats) -> str:
    return "\n".join(f"{stat.table}: {stat.rows} rows" for stat in stats)


def stats_to_list(stats: TableStats) -> list[dict[str, Any]]:
    return [stat.to_dict() for stat in stats]
