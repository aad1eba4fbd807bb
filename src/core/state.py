"""Process-lifetime context state and ownership of the volatile store."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Any, Callable, Iterator

from src.core.errors import ContextValidationError
from src.core.introspection import SchemaIntrospector, render_schema
from src.integrations.sqlite_store import SQLiteMemoryStore

LOGGER = logging.getLogger(__name__)

ALLOWED_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")


@dataclass(frozen=True, slots=True)
class ContextState:
    generic_prompt: str
    stored_prompt: str
    method: str
    endpoint: str


def normalize_method(value: Any) -> str | None:
    """Return the upper-cased method if it is one of the supported verbs."""

    if not isinstance(value, str):
        return None
    upper = value.strip().upper()
    return upper if upper in ALLOWED_METHODS else None


def normalize_endpoint(value: Any) -> str | None:
    """Return *value* trimmed with a leading slash, or ``None`` when blank."""

    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    if not cleaned:
        return None
    return cleaned if cleaned.startswith("/") else f"/{cleaned}"


def validate_context(prompt: Any, method: Any, endpoint: Any) -> tuple[str, str, str]:
    if not isinstance(prompt, str) or not prompt.strip():
        raise ContextValidationError("Body must include non-empty string 'prompt' field.")
    normalized_method = normalize_method(method)
    if normalized_method is None:
        raise ContextValidationError(
            "Body must include method in " + "|".join(ALLOWED_METHODS)
        )
    normalized_endpoint = normalize_endpoint(endpoint)
    if normalized_endpoint is None:
        raise ContextValidationError("Body must include non-empty endpoint path")
    return prompt.strip(), normalized_method, normalized_endpoint


class StateStore:
    """Owns the context state and the lifecycle of the volatile store.

    A single re-entrant lock serializes simulations, resets and scenario
    adoption, so a store handle is never swapped while a simulation holds it.
    """

    def __init__(
        self,
        context: ContextState,
        *,
        store_factory: Callable[[], SQLiteMemoryStore] = SQLiteMemoryStore,
        introspector: SchemaIntrospector | None = None,
    ) -> None:
        self._context = context
        self._store_factory = store_factory
        self._introspector = introspector or SchemaIntrospector()
        self._lock = threading.RLock()
        self._store = store_factory()

    @property
    def context(self) -> ContextState:
        return self._context

    def get_prompt(self) -> ContextState:
        return self._context

    def set_prompt(self, prompt: Any, method: Any, endpoint: Any) -> ContextState:
        """Validate and replace the stored prompt, method and endpoint together."""

        stored, normalized_method, normalized_endpoint = validate_context(prompt, method, endpoint)
        with self._lock:
            self._context = replace(
                self._context,
                stored_prompt=stored,
                method=normalized_method,
                endpoint=normalized_endpoint,
            )
            LOGGER.info(
                "Context updated method=%s endpoint=%s",
                normalized_method,
                normalized_endpoint,
            )
            return self._context

    def reset(self) -> None:
        """Replace the store with a fresh, schema-less one."""

        with self._lock:
            previous = self._store
            self._store = self._store_factory()
            previous.close()
            LOGGER.info("Volatile store reset")

    def adopt_scenario(self, context: Any, method: Any, endpoint: Any) -> ContextState:
        """Reset the store and adopt a freshly generated scenario context."""

        stored, normalized_method, normalized_endpoint = validate_context(context, method, endpoint)
        with self._lock:
            self.reset()
            self._context = replace(
                self._context,
                stored_prompt=stored,
                method=normalized_method,
                endpoint=normalized_endpoint,
            )
            LOGGER.info(
                "Scenario adopted method=%s endpoint=%s",
                normalized_method,
                normalized_endpoint,
            )
            return self._context

    @contextmanager
    def session(self) -> Iterator[SQLiteMemoryStore]:
        """Hold the store exclusively for the duration of the block."""

        with self._lock:
            yield self._store

    def schema_text(self) -> str:
        with self.session() as store:
            return render_schema(self._introspector.snapshot(store))
