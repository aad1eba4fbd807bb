"""Decoding of the JSON envelopes returned by the completion gateway.

Three shapes are accepted, tried in this order:

1. the phase-specific keyed object, e.g. ``{"create": ..., "alter": ...}``;
2. a bare JSON array of SQL strings;
3. an object wrapping such an array under ``"sql"``.

Anything else decodes to ``UnrecognizedEnvelope`` which carries no statements.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

SCHEMA_KEYS = ("create", "alter")
DATA_KEYS = ("dml", "select")


@dataclass(frozen=True, slots=True)
class KeyedEnvelope:
    fields: dict[str, str] = field(default_factory=dict)

    def get(self, key: str) -> str:
        return self.fields.get(key, "")


@dataclass(frozen=True, slots=True)
class ArrayEnvelope:
    statements: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class WrappedEnvelope:
    statements: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class UnrecognizedEnvelope:
    pass


Envelope = KeyedEnvelope | ArrayEnvelope | WrappedEnvelope | UnrecognizedEnvelope


def decode_envelope(completion: Any, keys: tuple[str, ...]) -> Envelope:
    """Classify *completion* for a phase whose keyed shape uses *keys*."""

    if isinstance(completion, dict) and any(key in completion for key in keys):
        return KeyedEnvelope(fields={key: _clean_text(completion.get(key)) for key in keys})
    if isinstance(completion, list):
        return ArrayEnvelope(statements=_clean_statements(completion))
    if isinstance(completion, dict) and isinstance(completion.get("sql"), list):
        return WrappedEnvelope(statements=_clean_statements(completion["sql"]))
    return UnrecognizedEnvelope()


def envelope_statements(envelope: Envelope) -> list[str]:
    """Return the ordered, non-empty statements carried by *envelope*."""

    if isinstance(envelope, KeyedEnvelope):
        return [value for value in envelope.fields.values() if value]
    if isinstance(envelope, (ArrayEnvelope, WrappedEnvelope)):
        return list(envelope.statements)
    return []


def _clean_text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _clean_statements(values: list[Any]) -> tuple[str, ...]:
    return tuple(value.strip() for value in values if isinstance(value, str) and value.strip())
