"""Tests for completion envelope decoding."""

from __future__ import annotations

import pytest

from src.core.envelope import (
    DATA_KEYS,
    SCHEMA_KEYS,
    ArrayEnvelope,
    KeyedEnvelope,
    UnrecognizedEnvelope,
    WrappedEnvelope,
    decode_envelope,
    envelope_statements,
)


def test_keyed_shape_wins_over_sql_wrapper() -> None:
    envelope = decode_envelope({"create": " CREATE TABLE a(id) ", "sql": ["DROP TABLE a"]}, SCHEMA_KEYS)

    assert isinstance(envelope, KeyedEnvelope)
    assert envelope.get("create") == "CREATE TABLE a(id)"
    assert envelope.get("alter") == ""
    assert envelope_statements(envelope) == ["CREATE TABLE a(id)"]


def test_keyed_shape_orders_statements_by_phase_keys() -> None:
    envelope = decode_envelope({"select": "SELECT 1", "dml": "INSERT INTO t VALUES (1)"}, DATA_KEYS)

    assert envelope_statements(envelope) == ["INSERT INTO t VALUES (1)", "SELECT 1"]


def test_non_string_keyed_values_decode_as_empty() -> None:
    envelope = decode_envelope({"dml": None, "select": ["SELECT 1"]}, DATA_KEYS)

    assert isinstance(envelope, KeyedEnvelope)
    assert envelope_statements(envelope) == []


def test_bare_array_keeps_non_blank_strings() -> None:
    envelope = decode_envelope(["CREATE TABLE a(id)", 3, "  ", "ALTER TABLE a ADD COLUMN b"], SCHEMA_KEYS)

    assert envelope == ArrayEnvelope(statements=("CREATE TABLE a(id)", "ALTER TABLE a ADD COLUMN b"))


def test_wrapped_array_is_used_when_phase_keys_are_absent() -> None:
    envelope = decode_envelope({"sql": ["SELECT 1"], "response": None}, DATA_KEYS)

    assert envelope == WrappedEnvelope(statements=("SELECT 1",))


def test_schema_keys_do_not_match_data_phase() -> None:
    envelope = decode_envelope({"create": "CREATE TABLE a(id)"}, DATA_KEYS)

    assert isinstance(envelope, UnrecognizedEnvelope)


@pytest.mark.parametrize("completion", [None, "SELECT 1", 42, {"sql": "SELECT 1"}, {}])
def test_unrecognized_shapes_carry_no_statements(completion: object) -> None:
    envelope = decode_envelope(completion, SCHEMA_KEYS)

    assert isinstance(envelope, UnrecognizedEnvelope)
    assert envelope_statements(envelope) == []
