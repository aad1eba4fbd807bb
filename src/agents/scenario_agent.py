"""Scenario agent that invents a fictitious backend to simulate."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from src.core.errors import GatewayError, GatewayUnavailableError
from src.core.simulation import CompletionGateway
from src.core.state import normalize_endpoint, normalize_method

LOGGER = logging.getLogger(__name__)

FALLBACK_METHOD = "POST"
FALLBACK_ENDPOINT = "/items"

SCENARIO_SYSTEM_PROMPT = (
    "You invent random business API scenarios. Respond ONLY with JSON using the required keys."
)

SCENARIO_PROMPT = "\n".join(
    [
        "Generate a random business API scenario with a brief context, a REST endpoint, method,"
        " and a realistic sample payload.",
        'Respond as JSON: { "context": "...", "endpoint": "/...", "method": "POST", "samplePayload": { ... } }',
        "- Context should describe the system (ERP, hotel bookings, hospital agenda, fleet tracking,"
        " CRM, etc.).",
        "- Keep it concise (2-3 sentences) and in present tense.",
        "- Endpoint should be a POST or PATCH when it makes sense; prefer POST. Path should include"
        " a plural noun.",
        "- Payload should be valid JSON with 3-8 fields, realistic types (ids, strings, dates, numbers).",
        "- Do NOT include explanations, markdown, or extra keys.",
    ]
)


@dataclass(frozen=True, slots=True)
class GeneratedScenario:
    context: str
    method: str
    endpoint: str
    payload: Any


def normalize_payload(payload: Any) -> Any:
    """Parse string payloads as JSON, wrapping non-JSON text as ``{"value": ...}``."""

    if isinstance(payload, str):
        try:
            return json.loads(payload)
        except json.JSONDecodeError:
            return {"value": payload}
    return payload


@dataclass
class ScenarioAgent:
    """Asks the completion gateway for a context, endpoint and sample payload."""

    gateway: CompletionGateway
    temperature: float = 0.8

    def generate(self, *, fallback_context: str) -> GeneratedScenario:
        """Return a normalized scenario; invalid fields fall back to defaults."""

        if not self.gateway.available:
            raise GatewayUnavailableError("OPENAI_API_KEY is required to generate a scenario")

        reply = self.gateway.complete(
            SCENARIO_PROMPT,
            system_prompt=SCENARIO_SYSTEM_PROMPT,
            temperature=self.temperature,
        )
        if not isinstance(reply, dict):
            raise GatewayError(
                f"Failed to parse scenario JSON: expected an object, got {type(reply).__name__}"
            )

        context = reply.get("context")
        scenario = GeneratedScenario(
            context=context.strip() if isinstance(context, str) and context.strip() else fallback_context,
            method=normalize_method(reply.get("method")) or FALLBACK_METHOD,
            endpoint=normalize_endpoint(reply.get("endpoint")) or FALLBACK_ENDPOINT,
            payload=normalize_payload(
                reply["samplePayload"] if reply.get("samplePayload") is not None else reply.get("payload")
            ),
        )
        LOGGER.info("Scenario generated method=%s endpoint=%s", scenario.method, scenario.endpoint)
        return scenario
