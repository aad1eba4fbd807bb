"""Command-line entry point for replaying simulation scenarios from YAML."""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import yaml

from src.core.config import load_settings
from src.core.dependencies import SimulatorDependencies, build_dependencies

LOGGER = logging.getLogger(__name__)


class ScenarioLoader(Protocol):
    """Provides the ordered requests a batch run replays."""

    def load(self, profile: str) -> list[dict[str, Any]]:  # pragma: no cover - interface
        """Return scenario definitions for the requested profile."""


@dataclass(slots=True)
class YamlScenarioLoader(ScenarioLoader):
    """Loads scenarios from YAML files located under a base directory."""

    base_dir: Path

    def load(self, profile: str) -> list[dict[str, Any]]:
        target = self.base_dir / f"{profile}.yaml"
        if not target.exists():
            return []
        with target.open("r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle) or []
        if not isinstance(payload, list):
            raise ValueError("Scenario file must contain a top-level list")
        scenarios: list[dict[str, Any]] = []
        for entry in payload:
            if not isinstance(entry, dict):
                raise ValueError("Scenario entries must be mappings")
            scenarios.append({str(key): value for key, value in entry.items()})
        return scenarios


@dataclass
class Runner:
    """Replays scenarios in order against one shared volatile store."""

    scenario_loader: ScenarioLoader
    dependencies: SimulatorDependencies | None = None

    def execute(self, profile: str) -> list[dict[str, Any]]:
        """Run all scenarios defined for the supplied profile."""

        if self.dependencies is None:
            raise ValueError("Runner dependencies must be provided")
        scenarios = self.scenario_loader.load(profile)
        LOGGER.info("Replaying %s scenario(s) for profile '%s'", len(scenarios), profile)
        return [run_scenario(self.dependencies, scenario) for scenario in scenarios]


def run_scenario(dependencies: SimulatorDependencies, scenario: dict[str, Any]) -> dict[str, Any]:
    """Execute a single scenario entry and return its response body."""

    state_store = dependencies.state_store
    if scenario.get("reset"):
        state_store.reset()

    if scenario.get("context") is not None:
        context = state_store.context
        state_store.set_prompt(
            scenario["context"],
            scenario.get("method", context.method),
            scenario.get("endpoint", context.endpoint),
        )

    outcome = dependencies.orchestrator.simulate(
        scenario.get("payload"),
        method=scenario.get("method"),
        endpoint=scenario.get("endpoint"),
    )
    return {
        "run_id": outcome.run_id,
        "status": "ok" if outcome.succeeded else "error",
        "method": outcome.method,
        "endpoint": outcome.endpoint,
        "response": outcome.to_response(),
    }


def main() -> None:
    """CLI entry point for replaying simulation scenarios."""

    parser = argparse.ArgumentParser(description="Replay API simulation scenarios")
    parser.add_argument("--config", default="configs/dev.yaml", help="Path to the YAML config file")
    parser.add_argument("--profile", default="dev", help="Scenario profile to execute")
    parser.add_argument(
        "--scenarios",
        default="assets/scenarios",
        help="Directory containing scenario YAML files",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )
    settings = load_settings(args.config)
    dependencies = build_dependencies(settings)
    loader = YamlScenarioLoader(base_dir=Path(args.scenarios))
    runner = Runner(scenario_loader=loader, dependencies=dependencies)

    results = runner.execute(profile=args.profile)
    print(json.dumps(results, indent=2, ensure_ascii=False, default=str))


if __name__ == "__main__":
    main()
