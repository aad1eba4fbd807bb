"""FastAPI surface for the two-phase API simulator."""

from __future__ import annotations

import argparse
import base64
import logging
from dataclasses import dataclass
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

from src.core.config import load_settings
from src.core.dependencies import SimulatorDependencies, build_dependencies
from src.core.errors import ContextValidationError, GatewayError
from src.core.simulation import CompletionGateway, FailureKind, SimulationOutcome


LOGGER = logging.getLogger(__name__)

CLIENT_ERROR_KINDS = {FailureKind.SCHEMA_EXECUTION_ERROR, FailureKind.DATA_EXECUTION_ERROR}


class PromptUpdateRequest(BaseModel):
    prompt: Any = None
    method: Any = None
    endpoint: Any = None


class PromptResponse(BaseModel):
    prompt: str
    method: str
    endpoint: str


class SimulateRequest(BaseModel):
    """Simulation body; unknown keys are kept and used as the payload."""

    model_config = ConfigDict(extra="allow")

    method: Any = None
    endpoint: Any = None
    payload: Any = None

    def resolve_payload(self) -> Any:
        if "payload" in self.model_fields_set:
            return self.payload
        extra = self.model_extra or {}
        return dict(extra) if extra else None


@dataclass(slots=True)
class EventLogRelay:
    """Mirrors simulation events into the server log before forwarding them."""

    downstream: Any = None

    def log_event(self, run_id: str, event: str, payload: dict[str, Any]) -> None:
        LOGGER.info("Event[%s] %s %s", run_id, event, _truncate_for_log(repr(payload)))
        if self.downstream is not None:
            self.downstream.log_event(run_id, event, payload)


def create_app(
    config_path: str = "configs/dev.yaml",
    *,
    gateway: CompletionGateway | None = None,
    debug_events: bool = False,
) -> FastAPI:
    LOGGER.info("Initialising API simulator with config '%s'", config_path)
    settings = load_settings(config_path)
    dependencies = build_dependencies(settings, gateway=gateway)
    if debug_events:
        dependencies.orchestrator.logger = EventLogRelay(downstream=dependencies.simulation_logger)
    state_store = dependencies.state_store

    app = FastAPI(title="API Simulator", version="0.1.0")
    app.state.settings = settings
    app.state.dependencies = dependencies
    app.state.debug_events = debug_events

    @app.exception_handler(ContextValidationError)
    async def handle_validation_error(_request: Request, exc: ContextValidationError) -> JSONResponse:
        LOGGER.warning("Rejected context update: %s", exc)
        return JSONResponse({"message": str(exc)}, status_code=400)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(_request: Request, exc: Exception) -> JSONResponse:
        LOGGER.exception("Unexpected server error")
        return JSONResponse(
            {"message": "Unexpected server error", "error": str(exc)},
            status_code=500,
        )

    @app.get("/api/health")
    def healthcheck() -> dict[str, Any]:
        return {"status": "ok", "hasOpenAIKey": dependencies.gateway.available}

    @app.get("/api/prompt")
    def get_prompt() -> dict[str, Any]:
        context = state_store.get_prompt()
        return {
            "prompt": context.stored_prompt,
            "method": context.method,
            "endpoint": context.endpoint,
            "hasOpenAIKey": dependencies.gateway.available,
            "schema": state_store.schema_text(),
        }

    @app.post("/api/prompt", response_model=PromptResponse)
    def update_prompt(payload: PromptUpdateRequest | None = None) -> PromptResponse:
        request_body = payload or PromptUpdateRequest()
        context = state_store.set_prompt(
            request_body.prompt, request_body.method, request_body.endpoint
        )
        return PromptResponse(
            prompt=context.stored_prompt,
            method=context.method,
            endpoint=context.endpoint,
        )

    @app.post("/api/simulate")
    def simulate(body: SimulateRequest | None = None) -> JSONResponse:
        request_body = body or SimulateRequest()
        outcome = dependencies.orchestrator.simulate(
            request_body.resolve_payload(),
            method=request_body.method,
            endpoint=request_body.endpoint,
        )
        return JSONResponse(_encode_body(outcome.to_response()), status_code=_status_for(outcome))

    @app.post("/api/scenario")
    def generate_scenario() -> JSONResponse:
        if not dependencies.gateway.available:
            LOGGER.warning("Scenario requested without a completion credential")
            return JSONResponse(
                {"message": "OPENAI_API_KEY is required to generate a scenario"},
                status_code=400,
            )
        try:
            scenario = dependencies.scenario_agent.generate(
                fallback_context=state_store.context.stored_prompt
            )
        except GatewayError as exc:
            LOGGER.error("Scenario generation failed: %s", exc)
            return JSONResponse(
                {"message": "Failed to generate scenario", "error": str(exc)},
                status_code=500,
            )
        context = state_store.adopt_scenario(scenario.context, scenario.method, scenario.endpoint)
        return JSONResponse(
            {
                "prompt": context.stored_prompt,
                "method": context.method,
                "endpoint": context.endpoint,
                "payload": scenario.payload,
                "schema": state_store.schema_text(),
            }
        )

    @app.post("/api/reset")
    def reset_store() -> dict[str, Any]:
        state_store.reset()
        return {"status": "reset", "schema": state_store.schema_text()}

    return app


def _encode_blob(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


def _encode_body(body: dict[str, Any]) -> Any:
    """Make result rows JSON-safe; BLOB columns are rendered as base64 text."""

    return jsonable_encoder(body, custom_encoder={bytes: _encode_blob})


def _status_for(outcome: SimulationOutcome) -> int:
    if outcome.failure is None:
        return 200
    if outcome.failure.kind in CLIENT_ERROR_KINDS:
        return 400
    return 500


def _configure_logging(debug: bool) -> None:
    root_logger = logging.getLogger()
    if root_logger.handlers:
        if debug:
            root_logger.setLevel(logging.DEBUG)
        return
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )


def _truncate_for_log(value: str, limit: int = 200) -> str:
    text = value.strip()
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def main() -> None:
    parser = argparse.ArgumentParser(description="Launch the API simulator backend")
    parser.add_argument("--config", default="configs/dev.yaml", help="Path to configuration file")
    parser.add_argument("--host", default=None, help="Interface to bind the server")
    parser.add_argument("--port", type=int, default=None, help="Port to bind the server")
    parser.add_argument(
        "--debug-events",
        action="store_true",
        help="Log individual simulation events to the server logs",
    )
    args = parser.parse_args()

    _configure_logging(debug=args.debug_events)
    app = create_app(config_path=args.config, debug_events=args.debug_events)
    server_settings = app.state.settings.server
    host = args.host or server_settings.host
    port = args.port or server_settings.port

    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover - defensive
        raise SystemExit("uvicorn must be installed to run the API simulator") from exc

    LOGGER.info("Starting uvicorn on %s:%s (debug_events=%s)", host, port, args.debug_events)
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
