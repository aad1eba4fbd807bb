"""Tests for the two-phase simulation orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pytest

from src.core.errors import CompletionDecodingError
from src.core.introspection import TableStat
from src.core.simulation import FailureKind, SimulationOrchestrator, SimulationOutcome, SimulationStage
from src.core.state import ContextState, StateStore

CREATE_CUSTOMERS = "CREATE TABLE customers(id INTEGER PRIMARY KEY, name TEXT)"
INSERT_ADA = "INSERT INTO customers(id,name) VALUES (1,'Ada')"


@dataclass
class _GatewayStub:
    replies: list[Any] = field(default_factory=list)
    available: bool = True
    prompts: list[str] = field(default_factory=list)

    def complete(
        self,
        prompt_text: str,
        *,
        system_prompt: str | None = None,
        temperature: float | None = None,
    ) -> Any:
        self.prompts.append(prompt_text)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@dataclass
class _RecordingSink:
    events: list[tuple[str, str, dict[str, Any]]] = field(default_factory=list)

    def log_event(self, run_id: str, event: str, payload: dict[str, Any]) -> None:
        self.events.append((run_id, event, payload))


class _FailingSink:
    def log_event(self, run_id: str, event: str, payload: dict[str, Any]) -> None:
        raise OSError("disk full")


def _state_store() -> StateStore:
    return StateStore(
        ContextState(
            generic_prompt="You are an API simulator.",
            stored_prompt="A small CRM.",
            method="POST",
            endpoint="/customers",
        )
    )


def _orchestrator(gateway: _GatewayStub, logger: Any = None) -> SimulationOrchestrator:
    return SimulationOrchestrator(state_store=_state_store(), gateway=gateway, logger=logger)


def test_successful_run_reports_both_phases() -> None:
    gateway = _GatewayStub(
        replies=[
            {"create": CREATE_CUSTOMERS, "alter": ""},
            {"dml": INSERT_ADA, "select": "SELECT * FROM customers"},
        ]
    )
    orchestrator = _orchestrator(gateway)

    outcome = orchestrator.simulate({"name": "Ada"})

    assert outcome.succeeded
    assert outcome.stage is SimulationStage.COMPLETE
    assert outcome.result == [{"id": 1, "name": "Ada"}]
    assert outcome.executed_sql == [CREATE_CUSTOMERS, INSERT_ADA, "SELECT * FROM customers"]
    assert outcome.table_stats == [TableStat(table="customers", rows=1)]
    assert outcome.schema == "customers: id INTEGER, name TEXT"
    assert outcome.run_id.startswith("sim-")

    body = outcome.to_response()
    assert body["createSql"] == CREATE_CUSTOMERS
    assert body["alterSql"] == ""
    assert body["dmlSql"] == INSERT_ADA
    assert body["selectSql"] == "SELECT * FROM customers"
    assert body["tableStats"] == [{"table": "customers", "rows": 1}]
    assert body["usingOpenAI"] is True
    assert body["promptSchema"] == gateway.prompts[0]
    assert body["promptData"] == gateway.prompts[1]


def test_data_prompt_sees_schema_phase_tables() -> None:
    gateway = _GatewayStub(
        replies=[
            {"create": CREATE_CUSTOMERS, "alter": ""},
            {"dml": "", "select": "SELECT * FROM customers"},
        ]
    )

    outcome = _orchestrator(gateway).simulate(None, method="get", endpoint="customers")

    assert "No tables yet." in outcome.prompt_schema
    assert "customers: id INTEGER, name TEXT" in outcome.prompt_data
    assert "customers: 0 rows" in outcome.prompt_data
    assert "HTTP method: GET" in outcome.prompt_data
    assert "Endpoint path: /customers" in outcome.prompt_data
    assert outcome.result == []


def test_invalid_method_falls_back_to_context() -> None:
    gateway = _GatewayStub(replies=[{"create": "", "alter": ""}, {"dml": "", "select": "SELECT 1 AS one"}])

    outcome = _orchestrator(gateway).simulate(None, method="TRACE", endpoint="   ")

    assert "HTTP method: POST" in outcome.prompt_schema
    assert "Endpoint path: /customers" in outcome.prompt_schema
    assert outcome.result == [{"one": 1}]


def test_gateway_unavailable_builds_no_prompt() -> None:
    gateway = _GatewayStub(available=False)

    outcome = _orchestrator(gateway).simulate({"name": "Ada"})

    assert not outcome.succeeded
    assert outcome.failure is not None
    assert outcome.failure.kind is FailureKind.GATEWAY_UNAVAILABLE
    assert outcome.prompt_schema is None
    assert gateway.prompts == []
    body = outcome.to_response()
    assert body["kind"] == "gateway_unavailable"
    assert "promptSchema" not in body


def test_schema_failure_reports_partial_sql() -> None:
    gateway = _GatewayStub(replies=[{"create": CREATE_CUSTOMERS, "alter": "ALTER TABLE nope ADD COLUMN x"}])
    orchestrator = _orchestrator(gateway)

    outcome = orchestrator.simulate({})

    assert outcome.failure is not None
    assert outcome.failure.kind is FailureKind.SCHEMA_EXECUTION_ERROR
    assert outcome.failure.stage is SimulationStage.SCHEMA_GENERATED
    assert outcome.stage is SimulationStage.FAILED
    assert outcome.failed_sql == "ALTER TABLE nope ADD COLUMN x"
    body = outcome.to_response()
    assert body["message"] == "Schema SQL failed"
    assert body["createSql"] == CREATE_CUSTOMERS
    assert body["executedSql"] == [CREATE_CUSTOMERS, "ALTER TABLE nope ADD COLUMN x"]
    assert "promptData" not in body
    assert orchestrator.state_store.schema_text() == ""


def test_data_failure_keeps_committed_schema() -> None:
    gateway = _GatewayStub(
        replies=[
            {"create": CREATE_CUSTOMERS, "alter": ""},
            {"dml": INSERT_ADA, "select": "SELECT * FROM missing_table"},
        ]
    )
    orchestrator = _orchestrator(gateway)

    outcome = orchestrator.simulate({"name": "Ada"})

    assert outcome.failure is not None
    assert outcome.failure.kind is FailureKind.DATA_EXECUTION_ERROR
    body = outcome.to_response()
    assert body["message"] == "DML/Select SQL failed"
    assert body["executedSql"] == [CREATE_CUSTOMERS, INSERT_ADA, "SELECT * FROM missing_table"]
    assert body["failedSql"] == "SELECT * FROM missing_table"
    assert body["promptData"]
    assert orchestrator.state_store.schema_text() == "customers: id INTEGER, name TEXT"
    with orchestrator.state_store.session() as store:
        assert store.run("SELECT COUNT(*) AS n FROM customers") == [{"n": 0}]


def test_invariant_violation_is_reported_as_generation_failure() -> None:
    gateway = _GatewayStub(
        replies=[{"create": "", "alter": ""}, {"dml": "", "select": "DELETE FROM customers"}]
    )

    outcome = _orchestrator(gateway).simulate({})

    assert outcome.failure is not None
    assert outcome.failure.kind is FailureKind.INVARIANT_VIOLATION
    assert outcome.failure.message == "Data generation failed"
    assert outcome.failure.error == "final statement must be a read query"
    assert outcome.executed_sql == []


def test_non_json_completion_counts_as_no_statements() -> None:
    gateway = _GatewayStub(
        replies=[
            CompletionDecodingError("Completion is not valid JSON", raw="nope"),
            CompletionDecodingError("Completion is not valid JSON", raw="nope"),
        ]
    )

    outcome = _orchestrator(gateway).simulate({})

    assert outcome.failure is not None
    assert outcome.failure.kind is FailureKind.INVARIANT_VIOLATION
    assert outcome.failure.error == "no SQL generated"
    assert outcome.to_response()["createSql"] == ""


def test_gateway_exception_becomes_generation_error() -> None:
    gateway = _GatewayStub(replies=[RuntimeError("connection reset")])

    outcome = _orchestrator(gateway).simulate({})

    assert outcome.failure is not None
    assert outcome.failure.kind is FailureKind.GENERATION_ERROR
    assert outcome.failure.stage is SimulationStage.READY_FOR_SCHEMA
    assert outcome.failure.message == "Schema generation failed"
    assert outcome.failure.error == "connection reset"
    assert outcome.to_response()["promptSchema"] == gateway.prompts[0]


def test_events_are_logged_in_order() -> None:
    gateway = _GatewayStub(
        replies=[
            {"create": CREATE_CUSTOMERS, "alter": ""},
            {"dml": INSERT_ADA, "select": "SELECT * FROM customers"},
        ]
    )
    sink = _RecordingSink()

    outcome = _orchestrator(gateway, logger=sink).simulate({"name": "Ada"})

    assert [event for _, event, _ in sink.events] == [
        "simulation_started",
        "schema_prompt_built",
        "schema_executed",
        "data_prompt_built",
        "data_executed",
        "simulation_completed",
    ]
    assert {run_id for run_id, _, _ in sink.events} == {outcome.run_id}


def test_sink_failures_do_not_break_simulation() -> None:
    gateway = _GatewayStub(
        replies=[{"create": "", "alter": ""}, {"dml": "", "select": "SELECT 1 AS one"}]
    )

    outcome = _orchestrator(gateway, logger=_FailingSink()).simulate(None)

    assert outcome.succeeded
    assert outcome.result == [{"one": 1}]


def test_unavailable_gateway_still_records_target() -> None:
    outcome = _orchestrator(_GatewayStub(available=False)).simulate(None, method="delete", endpoint="customers/1")

    assert (outcome.method, outcome.endpoint) == ("DELETE", "/customers/1")


def test_unfinished_outcome_cannot_be_rendered() -> None:
    outcome = SimulationOutcome(run_id="sim-0000", using_openai=True)

    with pytest.raises(ValueError, match="has not finished"):
        outcome.to_response()
