"""JSONL-backed observability for simulation runs."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from src.core.logging_utils import release_log_path, resolve_log_path, utc_now_iso

TERMINAL_EVENTS = frozenset({"simulation_completed", "simulation_failed"})


class SimulationObservationSink(Protocol):
    """Records lifecycle events emitted by the simulation orchestrator."""

    def log_event(self, run_id: str, event: str, payload: dict[str, Any]) -> None:  # pragma: no cover - interface
        ...


def _build_event(event: str, payload: dict[str, Any]) -> dict[str, Any]:
    enriched = {key: value for key, value in payload.items() if value is not None}
    enriched.setdefault("event", event)
    enriched.setdefault("timestamp", utc_now_iso())
    return enriched


@dataclass(slots=True)
class JSONLSimulationLogger(SimulationObservationSink):
    """Appends simulation events to one JSONL file per run.

    The run's path is released once a terminal event is written.
    """

    base_dir: Path

    def log_event(self, run_id: str, event: str, payload: dict[str, Any]) -> None:  # type: ignore[override]
        record = _build_event(event, payload)
        target = resolve_log_path(
            base_dir=self.base_dir,
            run_id=run_id,
            timestamp=record.get("timestamp"),
        )
        with target.open("a", encoding="utf-8") as handle:
            json.dump(record, handle, ensure_ascii=False, default=str)
            handle.write("\n")
        if event in TERMINAL_EVENTS:
            release_log_path(self.base_dir, run_id)
