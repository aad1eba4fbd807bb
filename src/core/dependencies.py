"""Factory helpers for constructing simulator dependencies from settings."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from src.agents.scenario_agent import ScenarioAgent
from src.core.config import Settings
from src.core.observability import JSONLSimulationLogger, SimulationObservationSink
from src.core.simulation import CompletionGateway, SimulationOrchestrator
from src.core.state import StateStore
from src.integrations.openai_models import (
    GPTResponseClient,
    OpenAIClientFactory,
    OpenAICompletionGateway,
)


@dataclass(slots=True)
class SimulatorDependencies:
    """Collaborators shared by the web app and the batch runner."""

    state_store: StateStore
    gateway: CompletionGateway
    orchestrator: SimulationOrchestrator
    scenario_agent: ScenarioAgent
    simulation_logger: SimulationObservationSink | None = None


def build_dependencies(
    settings: Settings,
    *,
    gateway: CompletionGateway | None = None,
) -> SimulatorDependencies:
    """Create dependency instances based on *settings*."""

    state_store = StateStore(settings.initial_context())
    completion_gateway = gateway or _build_gateway(settings)
    simulation_logger = _build_simulation_logger(settings)
    orchestrator = SimulationOrchestrator(
        state_store=state_store,
        gateway=completion_gateway,
        logger=simulation_logger,
    )
    scenario_agent = ScenarioAgent(
        gateway=completion_gateway,
        temperature=settings.gateway.scenario_temperature,
    )
    return SimulatorDependencies(
        state_store=state_store,
        gateway=completion_gateway,
        orchestrator=orchestrator,
        scenario_agent=scenario_agent,
        simulation_logger=simulation_logger,
    )


def _build_gateway(settings: Settings) -> OpenAICompletionGateway:
    factory = OpenAIClientFactory(
        api_key_env=settings.gateway.api_key_env,
        timeout_s=settings.gateway.timeout_s,
    )
    client = GPTResponseClient(model=settings.model_id, client_factory=factory)
    return OpenAICompletionGateway(responses=client, temperature=settings.gateway.temperature)


def _build_simulation_logger(settings: Settings) -> JSONLSimulationLogger | None:
    if settings.paths is None or not settings.paths.simulation_logs_dir:
        return None
    path = Path(settings.paths.simulation_logs_dir).expanduser()
    path.mkdir(parents=True, exist_ok=True)
    return JSONLSimulationLogger(base_dir=path)
