"""Prompt builders for the schema and data phases.

Both builders are pure: the same context, request and store observation always
produce the same text. The data prompt is built from an observation taken after
the schema phase committed, which is how the second phase sees the first
phase's tables.
"""

from __future__ import annotations

import json
from typing import Any

from src.core.introspection import SchemaSnapshot, TableStats, render_schema, render_stats
from src.core.state import ContextState

NO_TABLES_MARKER = "No tables yet."
NO_STATS_MARKER = "Row counts: none."
NO_BODY_MARKER = "No body provided."

SCHEMA_DIRECTIVE = "\n".join(
    [
        "Prepare ONLY schema statements to support this request.",
        'Return a JSON object: { "create": "CREATE TABLE ...", "alter": "ALTER TABLE ... ADD COLUMN ..." }',
        "- Always include keys create and alter; if not needed, return an empty string for that key.",
        "- Do NOT reference tables that are not in the provided schema; create them first with"
        " CREATE TABLE IF NOT EXISTS before any other statement.",
        "- Do NOT recreate tables that already exist; prefer CREATE TABLE IF NOT EXISTS or skip creation.",
        "- Compare the table schema against the request payload; add missing columns with"
        " ALTER TABLE ... ADD COLUMN.",
        "- Do NOT include INSERT/UPDATE/DELETE/SELECT here.",
        "- Use valid SQLite syntax. Do not include explanations or extra fields.",
    ]
)

DATA_DIRECTIVE = "\n".join(
    [
        "Return ONLY a JSON object with these keys (all lowercase):",
        '{ "dml": "INSERT/UPDATE/DELETE ...", "select": "SELECT ... FROM ..." }',
        "- The backend will execute them in order: dml, select. The select is mandatory.",
        "- Always include both keys; if dml is not needed, return an empty string for that key.",
        "- Do NOT include CREATE or ALTER in this step. Assume schema is already prepared.",
        "- Do NOT reference tables that are not in the provided schema.",
        "- Use the schema/row counts to decide when to INSERT new rows or UPDATE existing ones.",
        "- The SELECT must return the API response JSON (as rows) at the end.",
        "- Use valid SQLite syntax. Do not include explanations or extra fields.",
    ]
)


def build_schema_prompt(
    payload: Any,
    method: str,
    endpoint: str,
    context: ContextState,
    snapshot: SchemaSnapshot,
    stats: TableStats,
) -> str:
    """Assemble the prompt asking for ``{create, alter}`` statements."""

    return _assemble(
        payload,
        method,
        endpoint,
        context,
        schema_heading="Current schema",
        snapshot=snapshot,
        stats=stats,
        directive=SCHEMA_DIRECTIVE,
    )


def build_data_prompt(
    payload: Any,
    method: str,
    endpoint: str,
    context: ContextState,
    snapshot: SchemaSnapshot,
    stats: TableStats,
) -> str:
    """Assemble the prompt asking for ``{dml, select}`` statements."""

    return _assemble(
        payload,
        method,
        endpoint,
        context,
        schema_heading="Current schema (post schema-prep)",
        snapshot=snapshot,
        stats=stats,
        directive=DATA_DIRECTIVE,
    )


def format_payload(payload: Any) -> str:
    if payload is None:
        return NO_BODY_MARKER
    return json.dumps(payload, indent=2, ensure_ascii=False)


def _assemble(
    payload: Any,
    method: str,
    endpoint: str,
    context: ContextState,
    *,
    schema_heading: str,
    snapshot: SchemaSnapshot,
    stats: TableStats,
    directive: str,
) -> str:
    schema_text = render_schema(snapshot)
    stats_text = render_stats(stats)
    sections = [
        context.generic_prompt,
        f"HTTP method: {method}",
        f"Endpoint path: {endpoint}",
        f"Context description: {context.stored_prompt}",
        f"{schema_heading}:\n{schema_text or NO_TABLES_MARKER}",
        f"Row counts:\n{stats_text}" if stats_text else NO_STATS_MARKER,
        "Incoming request JSON:",
        format_payload(payload),
        directive,
    ]
    return "\n\n".join(sections)
