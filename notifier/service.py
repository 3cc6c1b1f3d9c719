"""Process-wide engine wiring shared by the web app and the task worker."""
from __future__ import annotations

import logging
import threading
from typing import Optional

from .channels import build_channel
from .config import DispatchSettings
from .digest import build_digest_queue
from .engine import DispatchEngine

LOGGER = logging.getLogger(__name__)

_engine: Optional[DispatchEngine] = None
_engine_lock = threading.Lock()


def build_engine(settings: Optional[DispatchSettings] = None) -> DispatchEngine:
    settings = settings or DispatchSettings.from_env()
    channel = build_channel(settings)
    LOGGER.info(
        "Dispatch engine ready (backend=%s, digests=%s, rate_limit=%d/min, suppression=%s)",
        settings.delivery_backend,
        settings.digest_backend,
        settings.rate_limit_per_minute,
        settings.enable_suppression,
    )
    return DispatchEngine(channel, settings=settings, digest_queue=build_digest_queue(settings))


def get_engine() -> DispatchEngine:
    global _engine
    with _engine_lock:
        if _engine is None:
            _engine = build_engine()
        return _engine


def set_engine(engine: Optional[DispatchEngine]) -> None:
    """Install (or with ``None``, reset) the process engine."""
    global _engine
    with _engine_lock:
        _engine = engine
