"""Exception taxonomy for the simulation pipeline."""

from __future__ import annotations

from typing import Any, Iterable


class SimulatorError(Exception):
    """Base class for every failure raised by the simulator."""


class ContextValidationError(SimulatorError, ValueError):
    """Raised when a prompt, method or endpoint fails validation."""


class GatewayError(SimulatorError):
    """Raised when the completion gateway cannot produce a reply."""


class GatewayUnavailableError(GatewayError):
    """Raised before any call when no gateway credential is configured."""


class CompletionDecodingError(GatewayError):
    """Raised when the gateway reply is not valid JSON."""

    def __init__(self, message: str, *, raw: str = "") -> None:
        super().__init__(message)
        self.raw = raw


class PhaseError(SimulatorError):
    """Failure of one pipeline phase, with the diagnostics gathered so far.

    ``executed_sql`` lists the statements that ran before the failure (their
    effects were rolled back) and ``failed_statement`` the one that raised, if
    any. ``sql_fields`` holds the phase's generated SQL keyed by field name,
    e.g. ``{"create_sql": ..., "alter_sql": ...}``.
    """

    def __init__(
        self,
        message: str,
        *,
        executed_sql: Iterable[str] = (),
        failed_statement: str | None = None,
        sql_fields: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.executed_sql = list(executed_sql)
        self.failed_statement = failed_statement
        self.sql_fields = dict(sql_fields or {})

    @property
    def attempted_sql(self) -> list[str]:
        attempted = list(self.executed_sql)
        if self.failed_statement:
            attempted.append(self.failed_statement)
        return attempted

    def diagnostics(self) -> dict[str, Any]:
        return {
            "executed_sql": self.attempted_sql,
            "failed_statement": self.failed_statement,
            **self.sql_fields,
        }


class InvariantViolation(PhaseError):
    """Raised when generated SQL breaks a phase rule before execution."""


class SchemaExecutionError(PhaseError):
    """Raised when a schema statement fails against the store."""


class DataExecutionError(PhaseError):
    """Raised when a data statement fails against the store."""
