"""Per-call capability bundle supplied by the host."""
from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

LOGGER = logging.getLogger(__name__)


class Telemetry(ABC):
    """Sink for structured operational events."""

    @abstractmethod
    def log_event(self, name: str, attributes: Mapping[str, Any]) -> None:
        ...


class LoggingTelemetry(Telemetry):
    def log_event(self, name: str, attributes: Mapping[str, Any]) -> None:
        LOGGER.info("event %s %s", name, dict(attributes))


class RecordingTelemetry(Telemetry):
    """Keeps events in memory; handy for tests and local debugging."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    def log_event(self, name: str, attributes: Mapping[str, Any]) -> None:
        self.events.append((name, dict(attributes)))

    def names(self) -> List[str]:
        return [name for name, _ in self.events]


def environ_secret_lookup(key: str) -> Optional[str]:
    return os.environ.get(key)


@dataclass(slots=True)
class DispatchContext:
    tenant_id: Optional[str] = None
    user_id: Optional[str] = None
    secret_lookup: Callable[[str], Optional[str]] = environ_secret_lookup
    telemetry: Telemetry = field(default_factory=LoggingTelemetry)

    def secret(self, key: str) -> Optional[str]:
        return self.secret_lookup(key)

    def log_event(self, name: str, **attributes: Any) -> None:
        attributes.setdefault("tenant_id", self.tenant_id)
        try:
            self.telemetry.log_event(name, attributes)
        except Exception:  # pragma: no cover - sink failures are logged only
            LOGGER.exception("Telemetry sink failed for event %s", name)


def system_context() -> DispatchContext:
    """Context used by scheduled jobs that run outside any request."""
    return DispatchContext(tenant_id="system", user_id=None)
