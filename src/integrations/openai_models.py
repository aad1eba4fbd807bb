"""OpenAI-backed completion gateway for the simulation pipeline."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Sequence

from src.core.errors import CompletionDecodingError, GatewayError, GatewayUnavailableError

LOGGER = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are an API simulator. Respond only with valid JSON. Do not include explanations."
)


def _import_openai() -> Any:
    try:
        from openai import OpenAI  # type: ignore
    except ModuleNotFoundError as exc:  # pragma: no cover - import guard
        raise GatewayUnavailableError(
            "openai package is required. Install openai>=1.0 to enable completions."
        ) from exc
    return OpenAI


@dataclass(slots=True)
class OpenAIClientFactory:
    """Creates OpenAI client instances with shared configuration."""

    api_key_env: str = "OPENAI_API_KEY"
    timeout_s: float | None = None

    @property
    def has_credentials(self) -> bool:
        return bool(os.getenv(self.api_key_env, "").strip())

    def create(self) -> Any:
        api_key = os.getenv(self.api_key_env, "").strip()
        if not api_key:
            raise GatewayUnavailableError(
                f"{self.api_key_env} is not set in backend environment"
            )
        OpenAI = _import_openai()
        if self.timeout_s is not None:
            return OpenAI(api_key=api_key, timeout=self.timeout_s)
        return OpenAI(api_key=api_key)


@dataclass(slots=True)
class GPTResponseClient:
    """Thin wrapper around the OpenAI Responses API."""

    model: str
    client_factory: OpenAIClientFactory = field(default_factory=OpenAIClientFactory)
    _client: Any | None = None

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = self.client_factory.create()
        return self._client

    def generate(
        self,
        *,
        messages: Sequence[dict[str, str]],
        temperature: float | None = None,
        json_output: bool = False,
        max_output_tokens: int | None = None,
    ) -> Any:
        payload: dict[str, Any] = {
            "model": self.model,
            "input": [
                {
                    "role": message.get("role", "user"),
                    "content": message.get("content", ""),
                }
                for message in messages
            ],
        }
        if temperature is not None:
            payload["temperature"] = temperature
        if json_output:
            payload["text"] = {"format": {"type": "json_object"}}
        if max_output_tokens is not None:
            payload["max_output_tokens"] = max_output_tokens
        return self.client.responses.create(**payload)


@dataclass(slots=True)
class OpenAICompletionGateway:
    """Turns a prompt into a parsed JSON value using the Responses API."""

    responses: GPTResponseClient
    temperature: float = 0.2
    system_prompt: str = DEFAULT_SYSTEM_PROMPT

    @property
    def available(self) -> bool:
        return self.responses._client is not None or self.responses.client_factory.has_credentials

    def complete(
        self,
        prompt_text: str,
        *,
        system_prompt: str | None = None,
        temperature: float | None = None,
    ) -> Any:
        """Return the JSON value carried by the model's reply.

        Raises ``GatewayUnavailableError`` when no credential is configured and
        ``CompletionDecodingError`` when the reply text is not JSON.
        """

        if not self.available:
            raise GatewayUnavailableError(
                f"{self.responses.client_factory.api_key_env} is not set in backend environment"
            )
        messages = [
            {"role": "system", "content": system_prompt or self.system_prompt},
            {"role": "user", "content": prompt_text},
        ]
        try:
            response = self.responses.generate(
                messages=messages,
                temperature=self.temperature if temperature is None else temperature,
                json_output=True,
            )
        except GatewayError:
            raise
        except Exception as exc:
            raise GatewayError(f"Completion request failed: {exc}") from exc

        text = extract_response_text(response) or "{}"
        return parse_completion_text(text)


def extract_response_text(response: Any) -> str:
    """Return the first non-empty text block of a Responses API reply."""

    raw = getattr(response, "output_text", None)
    if isinstance(raw, str) and raw.strip():
        return raw.strip()
    for item in getattr(response, "output", None) or []:
        content = getattr(item, "content", None)
        blocks = content if isinstance(content, list) else [content]
        for block in blocks:
            if isinstance(block, dict):
                text = block.get("text") or block.get("output_text")
            else:
                text = getattr(block, "text", None)
            if isinstance(text, str) and text.strip():
                return text.strip()
    return ""


def parse_completion_text(text: str) -> Any:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"^```(?:json)?\s*\n?", "", cleaned)
        cleaned = re.sub(r"```\s*$", "", cleaned).strip()
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise CompletionDecodingError(
            f"Completion is not valid JSON: {exc}", raw=text
        ) from exc
