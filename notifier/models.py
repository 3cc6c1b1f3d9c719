from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Union

ContextValue = Union[str, int, float, bool, None, List["ContextValue"], Dict[str, "ContextValue"]]
Context = Dict[str, ContextValue]


def normalize_context(value: Any) -> ContextValue:
    """Coerce an arbitrary payload tree into the template context variant."""
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, Mapping):
        return {str(key): normalize_context(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [normalize_context(item) for item in value]
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


@dataclass(slots=True)
class NotificationRequest:
    """A single notification as submitted by the caller."""

    to: Optional[str] = None
    from_address: Optional[str] = None
    cc: Optional[str] = None
    bcc: Optional[str] = None
    reply_to: Optional[str] = None
    subject: Optional[str] = None
    body: Optional[str] = None
    template: Optional[str] = None
    context: Context = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "NotificationRequest":
        context = normalize_context(payload.get("context") or {})
        if not isinstance(context, dict):
            context = {}
        return cls(
            to=payload.get("to"),
            from_address=payload.get("from") or payload.get("from_address"),
            cc=payload.get("cc"),
            bcc=payload.get("bcc"),
            reply_to=payload.get("reply_to") or payload.get("replyTo"),
            subject=payload.get("subject"),
            body=payload.get("body"),
            template=payload.get("template"),
            context=context,
        )


@dataclass(frozen=True, slots=True)
class TemplatePair:
    subject: str
    body: str


@dataclass(frozen=True, slots=True)
class PreferenceRecord:
    """Delivery preferences for one normalized recipient address."""

    suppressed: bool = False
    digest_only: bool = False
    frequency: str = "realtime"
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "suppressed": self.suppressed,
            "digest_only": self.digest_only,
            "frequency": self.frequency,
        }
        if self.updated_at is not None:
            data["updated_at"] = self.updated_at.isoformat()
        return data


@dataclass(slots=True)
class RateLimitWindow:
    count: int
    window_start: float


@dataclass(frozen=True, slots=True)
class QueuedItem:
    template: Optional[str]
    context: Context
    queued_at: datetime
    subject: Optional[str] = None
    body: Optional[str] = None


@dataclass(slots=True)
class OutboundMessage:
    """Structured payload passed to concrete delivery channels."""

    to: str
    from_address: str
    subject: str
    body: str
    cc: Optional[str] = None
    bcc: Optional[str] = None
    reply_to: Optional[str] = None


@dataclass(slots=True)
class DispatchResult:
    """Uniform outcome of every engine operation."""

    success: bool
    fields: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    error_kind: Optional[str] = None
    downstream: bool = False

    @classmethod
    def ok(cls, **fields: Any) -> "DispatchResult":
        return cls(success=True, fields=fields)

    @classmethod
    def failure(cls, error: str, kind: str, *, downstream: bool = False, **fields: Any) -> "DispatchResult":
        return cls(success=False, fields=fields, error=error, error_kind=kind, downstream=downstream)

    def __getitem__(self, key: str) -> Any:
        return self.to_dict()[key]

    def get(self, key: str, default: Any = None) -> Any:
        return self.to_dict().get(key, default)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"success": self.success, **self.fields}
        if not self.success:
            data["error"] = self.error
            data["error_kind"] = self.error_kind
        return data
