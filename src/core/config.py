"""Utilities for loading application settings from YAML configuration files."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from src.core.state import ContextState, normalize_endpoint, normalize_method

DEFAULT_GENERIC_PROMPT = (
    "You are an API simulator. Return JSON only. Respect HTTP semantics, validate input,"
    " and shape responses to match the described endpoint."
)
DEFAULT_STORED_PROMPT = (
    "You are an ERP system. Manage products, customers, orders, invoices, and inventory"
    " with proper validation and consistent identifiers."
)
DEFAULT_METHOD = "POST"
DEFAULT_ENDPOINT = "/clients/75"


@dataclass(slots=True)
class GatewaySettings:
    api_key_env: str = "OPENAI_API_KEY"
    temperature: float = 0.2
    scenario_temperature: float = 0.8
    timeout_s: float = 60.0


@dataclass(slots=True)
class PromptSettings:
    generic: str = DEFAULT_GENERIC_PROMPT
    stored: str = DEFAULT_STORED_PROMPT
    generic_env: str = "DEFAULT_GENERIC_PROMPT"
    stored_env: str = "DEFAULT_STORED_PROMPT"

    def resolve_generic(self) -> str:
        return _env_override(self.generic_env, self.generic)

    def resolve_stored(self) -> str:
        return _env_override(self.stored_env, self.stored)


@dataclass(slots=True)
class ServerSettings:
    host: str = "127.0.0.1"
    port: int = 40000


@dataclass(slots=True)
class PathsSettings:
    simulation_logs_dir: str | None = None


@dataclass(slots=True)
class Settings:
    model_id: str = "gpt-4o-mini"
    gateway: GatewaySettings = field(default_factory=GatewaySettings)
    prompts: PromptSettings = field(default_factory=PromptSettings)
    default_method: str = DEFAULT_METHOD
    default_endpoint: str = DEFAULT_ENDPOINT
    server: ServerSettings = field(default_factory=ServerSettings)
    paths: PathsSettings | None = None

    def initial_context(self) -> ContextState:
        """Return the context state a freshly started process begins with."""

        return ContextState(
            generic_prompt=self.prompts.resolve_generic(),
            stored_prompt=self.prompts.resolve_stored(),
            method=self.default_method,
            endpoint=self.default_endpoint,
        )


def _env_override(env_name: str, fallback: str) -> str:
    value = os.getenv(env_name, "") if env_name else ""
    return value.strip() or fallback


def _load_yaml(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def load_settings(path: str | Path) -> Settings:
    """Read configuration from *path* and return structured settings."""

    config_path = Path(path)
    raw = _load_yaml(config_path)

    gateway_raw = raw.get("gateway") or {}
    gateway = GatewaySettings(
        api_key_env=str(gateway_raw.get("api_key_env", "OPENAI_API_KEY")),
        temperature=float(gateway_raw.get("temperature", 0.2)),
        scenario_temperature=float(gateway_raw.get("scenario_temperature", 0.8)),
        timeout_s=float(gateway_raw.get("timeout_s", 60.0)),
    )

    prompts_raw = raw.get("prompts") or {}
    prompts = PromptSettings(
        generic=str(prompts_raw.get("generic") or DEFAULT_GENERIC_PROMPT).strip(),
        stored=str(prompts_raw.get("stored") or DEFAULT_STORED_PROMPT).strip(),
        generic_env=str(prompts_raw.get("generic_env", "DEFAULT_GENERIC_PROMPT")),
        stored_env=str(prompts_raw.get("stored_env", "DEFAULT_STORED_PROMPT")),
    )

    defaults_raw = raw.get("defaults") or {}
    default_method = normalize_method(defaults_raw.get("method")) or DEFAULT_METHOD
    default_endpoint = normalize_endpoint(defaults_raw.get("endpoint")) or DEFAULT_ENDPOINT

    server_raw = raw.get("server") or {}
    port = os.getenv("PORT") or server_raw.get("port", 40000)
    server = ServerSettings(
        host=str(server_raw.get("host", "127.0.0.1")),
        port=int(port),
    )

    paths_raw: dict[str, Any] | None = raw.get("paths")
    paths = None
    if paths_raw:
        logs_dir = paths_raw.get("simulation_logs_dir")
        paths = PathsSettings(simulation_logs_dir=str(logs_dir) if logs_dir else None)

    return Settings(
        model_id=str(raw.get("model_id") or "gpt-4o-mini"),
        gateway=gateway,
        prompts=prompts,
        default_method=default_method,
        default_endpoint=default_endpoint,
        server=server,
        paths=paths,
    )
