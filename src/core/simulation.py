"""Two-phase simulation pipeline.

One simulation walks a fixed sequence of stages::

    READY_FOR_SCHEMA -> SCHEMA_GENERATED -> SCHEMA_EXECUTED -> DATA_GENERATED -> COMPLETE

and may stop in ``FAILED`` from any of them. Each phase commits or rolls back
on its own, so a failed data phase leaves the committed schema phase in place.
The outcome keeps every prompt and SQL fragment produced before a failure so a
caller can refine the context description and retry.

The whole run holds the state store's lock: the store observed while building
a prompt is the store the generated SQL executes against.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from src.agents.data_executor import DataExecution, DataExecutor
from src.agents.schema_executor import SchemaExecution, SchemaExecutor
from src.core.errors import (
    CompletionDecodingError,
    DataExecutionError,
    GatewayError,
    GatewayUnavailableError,
    InvariantViolation,
    PhaseError,
    SchemaExecutionError,
)
from src.core.introspection import SchemaIntrospector, TableStats, render_schema, stats_to_list
from src.core.logging_utils import new_run_id
from src.core.observability import SimulationObservationSink
from src.core.prompts import build_data_prompt, build_schema_prompt
from src.core.state import StateStore, normalize_endpoint, normalize_method

LOGGER = logging.getLogger(__name__)


class CompletionGateway(Protocol):
    """Turns prompt text into a parsed JSON value."""

    @property
    def available(self) -> bool:  # pragma: no cover - interface
        """Whether a credential is configured for live completions."""

    def complete(
        self,
        prompt_text: str,
        *,
        system_prompt: str | None = None,
        temperature: float | None = None,
    ) -> Any:  # pragma: no cover - interface
        """Return the decoded JSON reply for *prompt_text*."""


class SimulationStage(str, Enum):
    READY_FOR_SCHEMA = "ready_for_schema"
    SCHEMA_GENERATED = "schema_generated"
    SCHEMA_EXECUTED = "schema_executed"
    DATA_GENERATED = "data_generated"
    COMPLETE = "complete"
    FAILED = "failed"


class FailureKind(str, Enum):
    GATEWAY_UNAVAILABLE = "gateway_unavailable"
    GENERATION_ERROR = "generation_error"
    SCHEMA_EXECUTION_ERROR = "schema_execution_error"
    INVARIANT_VIOLATION = "invariant_violation"
    DATA_EXECUTION_ERROR = "data_execution_error"


@dataclass(frozen=True, slots=True)
class SimulationFailure:
    kind: FailureKind
    stage: SimulationStage
    message: str
    error: str


@dataclass(slots=True)
class SimulationOutcome:
    """Result of one simulation, successful or not."""

    run_id: str
    using_openai: bool
    method: str | None = None
    endpoint: str | None = None
    stage: SimulationStage = SimulationStage.READY_FOR_SCHEMA
    prompt_schema: str | None = None
    prompt_data: str | None = None
    create_sql: str | None = None
    alter_sql: str | None = None
    dml_sql: str | None = None
    select_sql: str | None = None
    executed_sql: list[str] | None = None
    failed_sql: str | None = None
    schema: str | None = None
    table_stats: TableStats | None = None
    result: list[dict[str, Any]] | None = None
    failure: SimulationFailure | None = None

    @property
    def succeeded(self) -> bool:
        return self.failure is None and self.stage is SimulationStage.COMPLETE

    def to_response(self) -> dict[str, Any]:
        """Return the JSON body reported to HTTP callers."""

        if self.succeeded:
            return {
                "promptSchema": self.prompt_schema,
                "promptData": self.prompt_data,
                "result": self.result,
                "executedSql": list(self.executed_sql or []),
                "createSql": self.create_sql,
                "alterSql": self.alter_sql,
                "dmlSql": self.dml_sql,
                "selectSql": self.select_sql,
                "schema": self.schema,
                "tableStats": stats_to_list(self.table_stats or []),
                "usingOpenAI": self.using_openai,
            }

        failure = self.failure
        if failure is None:
            raise ValueError(f"Simulation {self.run_id} has not finished")
        body: dict[str, Any] = {
            "message": failure.message,
            "error": failure.error,
            "kind": failure.kind.value,
            "stage": failure.stage.value,
        }
        partials = {
            "promptSchema": self.prompt_schema,
            "promptData": self.prompt_data,
            "createSql": self.create_sql,
            "alterSql": self.alter_sql,
            "dmlSql": self.dml_sql,
            "selectSql": self.select_sql,
            "executedSql": self.executed_sql,
            "failedSql": self.failed_sql,
        }
        body.update({key: value for key, value in partials.items() if value is not None})
        return body


@dataclass
class SimulationOrchestrator:
    """Sequences introspection, prompting, completion and execution."""

    state_store: StateStore
    gateway: CompletionGateway
    logger: SimulationObservationSink | None = None
    introspector: SchemaIntrospector = field(default_factory=SchemaIntrospector)
    schema_executor: SchemaExecutor = field(default_factory=SchemaExecutor)
    data_executor: DataExecutor = field(default_factory=DataExecutor)

    def simulate(
        self,
        payload: Any = None,
        *,
        method: Any = None,
        endpoint: Any = None,
    ) -> SimulationOutcome:
        """Run both phases for one request and return the outcome."""

        outcome = SimulationOutcome(run_id=new_run_id(), using_openai=self.gateway.available)
        if not outcome.using_openai:
            outcome.method, outcome.endpoint = self._resolve_target(method, endpoint)
            return self._fail(
                outcome,
                FailureKind.GATEWAY_UNAVAILABLE,
                "Completion gateway unavailable",
                GatewayUnavailableError("No completion credential is configured"),
            )

        with self.state_store.session() as store:
            context = self.state_store.context
            method, endpoint = self._resolve_target(method, endpoint)
            outcome.method, outcome.endpoint = method, endpoint
            LOGGER.info("Simulation %s started for %s %s", outcome.run_id, method, endpoint)
            self._log_event(outcome, "simulation_started", {"method": method, "endpoint": endpoint})

            snapshot, stats = self.introspector.observe(store)
            outcome.prompt_schema = build_schema_prompt(payload, method, endpoint, context, snapshot, stats)
            self._log_event(outcome, "schema_prompt_built", {"tables": list(snapshot)})
            try:
                schema_completion = self._complete(outcome.prompt_schema)
            except GatewayError as exc:
                return self._fail(outcome, _gateway_kind(exc), "Schema generation failed", exc)
            self._advance(outcome, SimulationStage.SCHEMA_GENERATED)

            try:
                schema_result = self.schema_executor.run(store, schema_completion)
            except SchemaExecutionError as exc:
                self._record_phase_error(outcome, exc, prior=[])
                return self._fail(outcome, FailureKind.SCHEMA_EXECUTION_ERROR, "Schema SQL failed", exc)
            self._record_schema(outcome, schema_result)
            self._advance(outcome, SimulationStage.SCHEMA_EXECUTED)
            self._log_event(outcome, "schema_executed", {"executed_sql": schema_result.executed_sql})

            snapshot, stats = self.introspector.observe(store)
            outcome.prompt_data = build_data_prompt(payload, method, endpoint, context, snapshot, stats)
            self._log_event(outcome, "data_prompt_built", {"tables": list(snapshot)})
            try:
                data_completion = self._complete(outcome.prompt_data)
            except GatewayError as exc:
                return self._fail(outcome, _gateway_kind(exc), "Data generation failed", exc)
            self._advance(outcome, SimulationStage.DATA_GENERATED)

            prior = list(schema_result.executed_sql)
            try:
                data_result = self.data_executor.run(store, data_completion)
            except InvariantViolation as exc:
                self._record_phase_error(outcome, exc, prior=prior)
                return self._fail(outcome, FailureKind.INVARIANT_VIOLATION, "Data generation failed", exc)
            except DataExecutionError as exc:
                self._record_phase_error(outcome, exc, prior=prior)
                return self._fail(outcome, FailureKind.DATA_EXECUTION_ERROR, "DML/Select SQL failed", exc)
            self._log_event(outcome, "data_executed", {"executed_sql": data_result.executed_sql})

            self._record_data(outcome, data_result, prior=prior)
            outcome.schema = render_schema(self.introspector.snapshot(store))

        self._advance(outcome, SimulationStage.COMPLETE)
        LOGGER.info(
            "Simulation %s completed with %s statement(s) and %s row(s)",
            outcome.run_id,
            len(outcome.executed_sql or []),
            len(outcome.result or []),
        )
        self._log_event(outcome, "simulation_completed", {"rows": len(outcome.result or [])})
        return outcome

    def _resolve_target(self, method: Any, endpoint: Any) -> tuple[str, str]:
        context = self.state_store.context
        return (
            normalize_method(method) or context.method,
            normalize_endpoint(endpoint) or context.endpoint,
        )

    def _complete(self, prompt_text: str) -> Any:
        try:
            return self.gateway.complete(prompt_text)
        except CompletionDecodingError as exc:
            LOGGER.warning("Completion was not JSON; treating it as no statements: %s", exc)
            return None
        except GatewayError:
            raise
        except Exception as exc:
            raise GatewayError(str(exc)) from exc

    @staticmethod
    def _record_schema(outcome: SimulationOutcome, result: SchemaExecution) -> None:
        outcome.create_sql = result.create_sql
        outcome.alter_sql = result.alter_sql
        outcome.executed_sql = list(result.executed_sql)
        outcome.table_stats = result.table_stats

    @staticmethod
    def _record_data(outcome: SimulationOutcome, result: DataExecution, *, prior: list[str]) -> None:
        outcome.dml_sql = result.dml_sql
        outcome.select_sql = result.select_sql
        outcome.executed_sql = prior + list(result.executed_sql)
        outcome.table_stats = result.table_stats
        outcome.result = result.response

    @staticmethod
    def _record_phase_error(outcome: SimulationOutcome, exc: PhaseError, *, prior: list[str]) -> None:
        for name, value in exc.sql_fields.items():
            setattr(outcome, name, value)
        outcome.executed_sql = prior + exc.attempted_sql
        outcome.failed_sql = exc.failed_statement

    def _advance(self, outcome: SimulationOutcome, stage: SimulationStage) -> None:
        LOGGER.debug("Simulation %s: %s -> %s", outcome.run_id, outcome.stage.value, stage.value)
        outcome.stage = stage

    def _fail(
        self,
        outcome: SimulationOutcome,
        kind: FailureKind,
        message: str,
        exc: Exception,
    ) -> SimulationOutcome:
        outcome.failure = SimulationFailure(kind=kind, stage=outcome.stage, message=message, error=str(exc))
        LOGGER.error("Simulation %s failed at %s: %s (%s)", outcome.run_id, outcome.stage.value, message, exc)
        self._log_event(
            outcome,
            "simulation_failed",
            {"kind": kind.value, "stage": outcome.stage.value, "error": str(exc)},
        )
        outcome.stage = SimulationStage.FAILED
        return outcome

    def _log_event(self, outcome: SimulationOutcome, event: str, payload: dict[str, Any]) -> None:
        if self.logger is None:
            return
        try:
            self.logger.log_event(outcome.run_id, event, payload)
        except Exception:
            # Observability failures must not impact the simulation.
            LOGGER.debug("Simulation event %s could not be recorded", event, exc_info=True)


def _gateway_kind(exc: GatewayError) -> FailureKind:
    if isinstance(exc, GatewayUnavailableError):
        return FailureKind.GATEWAY_UNAVAILABLE
    return FailureKind.GENERATION_ERROR
