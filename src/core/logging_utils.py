"""Shared helpers for timestamped JSONL simulation logs."""

from __future__ import annotations

import re
from datetime import UTC, datetime
from pathlib import Path
from typing import Dict, Tuple
from uuid import uuid4


_FILENAME_CACHE: Dict[Tuple[str, str], Path] = {}


def new_run_id() -> str:
    """Return a short identifier for one simulation run."""

    return f"sim-{uuid4().hex[:8]}"


def make_timestamp_slug(raw: str | None = None) -> str:
    """Return a sortable UTC timestamp slug suitable for filenames."""

    candidate = (raw or "").strip()
    parsed = None
    if candidate:
        sanitized = candidate[:-1] + "+00:00" if candidate.endswith("Z") else candidate
        try:
            parsed = datetime.fromisoformat(sanitized)
        except ValueError:
            parsed = None

    if parsed is None:
        parsed = datetime.now(UTC)

    return parsed.strftime("%Y%m%dT%H%M%S%f")[:-3]


def sanitize_run_id(run_id: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9_-]+", "-", run_id.strip())
    return cleaned or "run"


def resolve_log_path(base_dir: Path, run_id: str, timestamp: str | None = None) -> Path:
    """Return a cached, timestamp-prefixed path for the given run."""

    normalized_base = str(base_dir.expanduser().resolve())
    key = (normalized_base, run_id)
    if key in _FILENAME_CACHE:
        return _FILENAME_CACHE[key]

    filename = f"{make_timestamp_slug(timestamp)}-{sanitize_run_id(run_id)}.jsonl"
    target = Path(normalized_base) / filename
    target.parent.mkdir(parents=True, exist_ok=True)
    _FILENAME_CACHE[key] = target
    return target


def utc_now_iso() -> str:
    """Return the current UTC time in ISO-8601 with millisecond precision."""

    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def release_log_path(base_dir: Path, run_id: str) -> None:
    """Forget the cached path of a finished run."""

    normalized_base = str(base_dir.expanduser().resolve())
    _FILENAME_CACHE.pop((normalized_base, run_id), None)
