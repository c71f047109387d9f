from __future__ import annotations
"""Provider adapter contract shared by all Wavespeed endpoint families."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Generic, Mapping, TypeVar

from genrelay.config import Settings

R = TypeVar("R")

# Request-level keys that never belong in a provider body
_RESERVED_PAYLOAD_KEYS = {"taskId", "task_id"}


@dataclass(frozen=True)
class UpstreamCall:
    """Everything needed to issue one provider request."""

    method: str
    url: str
    timeout: float
    label: str
    json: dict[str, Any] | None = field(default=None)


class ProviderAdapter(ABC, Generic[R]):
    """Builds one provider's request and interprets its response envelope."""

    service_name: str = "unknown"

    def __init__(self, settings: Settings):
        self.settings = settings

    @abstractmethod
    def build_call(self, request: R) -> UpstreamCall:
        ...

    @abstractmethod
    def interpret(self, data: Any) -> Any:
        """Turn the decoded provider JSON into the gateway payload."""
        ...


def merge_extra(payload: dict[str, Any], extra: Mapping[str, Any]) -> dict[str, Any]:
    """Overlay caller-supplied provider overrides onto the default body."""
    merged = dict(payload)
    for key, value in extra.items():
        if key not in _RESERVED_PAYLOAD_KEYS:
            merged[key] = value
    return merged


def normalize_job_envelope(data: Any) -> dict[str, Any]:
    """Flatten a task envelope into predictable fields.

    Wavespeed answers ``{"code", "message", "data": {"id", "status", "outputs", ...}}``
    but some paths return the inner object directly.
    """
    inner = data.get("data") if isinstance(data, dict) and isinstance(data.get("data"), dict) else data
    if not isinstance(inner, dict):
        inner = {}

    outputs = inner.get("outputs") or []
    if not isinstance(outputs, list):
        outputs = [outputs]

    return {
        "task_id": inner.get("id") or inner.get("task_id"),
        "status": inner.get("status") or inner.get("state"),
        "outputs": [str(o) for o in outputs if o],
        "error": inner.get("error") or None,
        "provider_response": data,
    }
