"""Notification dispatch: validation, templating, policy and delivery."""
from __future__ import annotations

from .channels import DeliveryChannel, MemoryChannel, SmtpChannel, WebhookChannel
from .config import DispatchSettings
from .context import DispatchContext, LoggingTelemetry, RecordingTelemetry, Telemetry
from .engine import DispatchEngine
from .models import DispatchResult, NotificationRequest, OutboundMessage

__version__ = "1.0.0"

__all__ = [
    "DeliveryChannel",
    "DispatchContext",
    "DispatchEngine",
    "DispatchResult",
    "DispatchSettings",
    "LoggingTelemetry",
    "MemoryChannel",
    "NotificationRequest",
    "OutboundMessage",
    "RecordingTelemetry",
    "SmtpChannel",
    "Telemetry",
    "WebhookChannel",
]
