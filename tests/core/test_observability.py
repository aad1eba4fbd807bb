"""Tests for JSONL observability sinks."""

from __future__ import annotations

import json
from pathlib import Path

from src.core import logging_utils
from src.core.logging_utils import make_timestamp_slug, new_run_id, sanitize_run_id
from src.core.observability import JSONLSimulationLogger


def _load_events(path: Path) -> list[dict[str, str]]:
    with path.open("r", encoding="utf-8") as handle:
        return [json.loads(line) for line in handle]


def test_jsonl_simulation_logger_appends_events(tmp_path: Path) -> None:
    logger = JSONLSimulationLogger(base_dir=tmp_path)

    logger.log_event("sim-0001", "simulation_started", {"method": "POST", "endpoint": "/a"})
    logger.log_event("sim-0001", "simulation_completed", {"rows": 3, "error": None})

    files = sorted(tmp_path.glob("*-sim-0001.jsonl"))
    assert len(files) == 1
    events = _load_events(files[0])
    assert [event["event"] for event in events] == ["simulation_started", "simulation_completed"]
    assert events[0]["endpoint"] == "/a"
    assert events[1]["rows"] == 3
    assert "error" not in events[1]
    assert "timestamp" in events[0]


def test_runs_are_written_to_separate_files(tmp_path: Path) -> None:
    logger = JSONLSimulationLogger(base_dir=tmp_path)

    logger.log_event("sim-a", "simulation_started", {})
    logger.log_event("sim-b", "simulation_started", {})

    assert len(list(tmp_path.glob("*.jsonl"))) == 2


def test_run_id_helpers() -> None:
    run_id = new_run_id()

    assert run_id.startswith("sim-")
    assert len(run_id) == len("sim-") + 8
    assert sanitize_run_id(" a/b c ") == "a-b-c"
    assert sanitize_run_id("///") == "-"
    assert make_timestamp_slug("2024-05-01T10:20:30.123Z") == "20240501T102030123"


def test_finished_runs_release_their_cached_path(tmp_path: Path) -> None:
    logger = JSONLSimulationLogger(base_dir=tmp_path)
    before = len(logging_utils._FILENAME_CACHE)

    for index in range(50):
        run_id = f"sim-{index:04d}"
        logger.log_event(run_id, "simulation_started", {})
        logger.log_event(run_id, "simulation_completed" if index % 2 else "simulation_failed", {})

    assert len(logging_utils._FILENAME_CACHE) == before
    assert len(list(tmp_path.glob("*.jsonl"))) == 50
    for path in tmp_path.glob("*.jsonl"):
        assert len(_load_events(path)) == 2
