"""Dispatch engine: policy and orchestration for outbound notifications.

Every public operation takes a key-value payload plus a ``DispatchContext``
and returns a ``DispatchResult``. Nothing raises past this boundary.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from .channels import DeliveryChannel
from .config import DispatchSettings
from .context import DispatchContext
from .digest import DigestQueue, InMemoryDigestQueue
from .errors import (
    DeliveryError,
    MissingContent,
    MissingEmail,
    NotifierError,
    TemplateSyntaxError,
    ValidationError,
)
from .models import DispatchResult, NotificationRequest, OutboundMessage
from .preferences import InMemoryPreferenceStore, PreferenceStore, normalize_address
from .rate_limit import FixedWindowRateLimiter, RateLimiter
from .templates import TemplateRenderer, validate_template
from .validation import validate_request

LOGGER = logging.getLogger(__name__)

SUPPRESSION_REASON = "User has opted out of email notifications"


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _require_mapping(payload: Any) -> Mapping[str, Any]:
    if payload is None:
        return {}
    if not isinstance(payload, Mapping):
        raise ValidationError("Request payload must be a JSON object")
    return payload


class DispatchEngine:
    def __init__(
        self,
        channel: DeliveryChannel,
        *,
        settings: Optional[DispatchSettings] = None,
        renderer: Optional[TemplateRenderer] = None,
        preferences: Optional[PreferenceStore] = None,
        rate_limiter: Optional[RateLimiter] = None,
        digest_queue: Optional[DigestQueue] = None,
    ):
        self.settings = settings or DispatchSettings()
        self.channel = channel
        self.renderer = renderer or TemplateRenderer()
        self.preferences = preferences or InMemoryPreferenceStore()
        self.rate_limiter = rate_limiter or FixedWindowRateLimiter(
            limit=self.settings.rate_limit_per_minute,
            window_seconds=self.settings.rate_limit_window_seconds,
        )
        self.digest_queue = digest_queue or InMemoryDigestQueue()

    # ------------------------------------------------------------------ helpers
    def _run(self, operation: str, fn: Callable[..., DispatchResult], *args: Any) -> DispatchResult:
        try:
            return fn(*args)
        except DeliveryError as exc:
            LOGGER.error("%s: delivery failed: %s", operation, exc)
            return DispatchResult.failure(f"Email delivery error: {exc}", exc.kind, downstream=True)
        except NotifierError as exc:
            LOGGER.warning("%s rejected: %s", operation, exc)
            return DispatchResult.failure(str(exc), exc.kind)
        except Exception as exc:
            LOGGER.exception("Unexpected failure in %s", operation)
            return DispatchResult.failure(f"Unexpected error: {exc}", "UnknownFailure")

    def _deliver(self, message: OutboundMessage, context: DispatchContext) -> None:
        # No engine lock is held here; channels may block on the network.
        try:
            self.channel.deliver(message, context)
        except DeliveryError:
            raise
        except Exception as exc:
            raise DeliveryError(str(exc)) from exc

    # --------------------------------------------------------------- operations
    def send(self, payload: Mapping[str, Any], context: Optional[DispatchContext] = None) -> DispatchResult:
        return self._run("send", self._send, payload, context or DispatchContext())

    def _send(self, payload: Mapping[str, Any], context: DispatchContext) -> DispatchResult:
        request = NotificationRequest.from_payload(_require_mapping(payload))
        validate_request(request)

        # The budget check precedes suppression; only delivered sends are recorded.
        self.rate_limiter.admit()

        if self.settings.enable_suppression and self.preferences.is_suppressed(request.to):
            LOGGER.info("Email suppressed for %s per user preferences", request.to)
            context.log_event("email.suppressed", to=request.to)
            return DispatchResult.ok(suppressed=True, to=request.to, reason=SUPPRESSION_REASON)

        subject, body = self.renderer.render(request)
        message = OutboundMessage(
            to=request.to,
            from_address=request.from_address or self.settings.default_from_address,
            subject=subject,
            body=body,
            cc=request.cc,
            bcc=request.bcc,
            reply_to=request.reply_to,
        )
        self._deliver(message, context)
        self.rate_limiter.record()

        LOGGER.info("Email sent to %s: %s", request.to, subject)
        context.log_event(
            "email.sent",
            to=request.to,
            subject=subject,
            template=request.template,
            user_id=context.user_id,
        )
        return DispatchResult.ok(to=request.to, subject=subject, sent_at=_utcnow_iso())

    def queue_for_digest(self, payload: Mapping[str, Any], context: Optional[DispatchContext] = None) -> DispatchResult:
        return self._run("queue_for_digest", self._queue_for_digest, payload, context or DispatchContext())

    def _queue_for_digest(self, payload: Mapping[str, Any], context: DispatchContext) -> DispatchResult:
        request = NotificationRequest.from_payload(_require_mapping(payload))
        validate_request(request)

        count = self.digest_queue.enqueue(
            request.to,
            request.template,
            request.context,
            subject=request.subject,
            body=request.body,
        )
        context.log_event("email.digest.queued", to=request.to, template=request.template, queued_count=count)
        return DispatchResult.ok(to=request.to, queued_count=count, queued_at=_utcnow_iso())

    def flush_digests(self, context: Optional[DispatchContext] = None) -> DispatchResult:
        return self._run("flush_digests", self._flush_digests, context or DispatchContext())

    def _flush_digests(self, context: DispatchContext) -> DispatchResult:
        # Snapshot-and-clear first: enqueues during delivery land in the next cycle.
        batches = self.digest_queue.drain()
        sent: List[Dict[str, Any]] = []
        failed: List[Dict[str, Any]] = []

        for recipient, items in batches.items():
            subject = f"{self.settings.digest_subject_prefix} - {len(items)} updates"
            try:
                body = self.renderer.render_digest(items)
                self._deliver(
                    OutboundMessage(
                        to=recipient,
                        from_address=self.settings.default_from_address,
                        subject=subject,
                        body=body,
                    ),
                    context,
                )
            except NotifierError as exc:
                LOGGER.error("Digest for %s dropped (%d items): %s", recipient, len(items), exc)
                failed.append({"to": recipient, "count": len(items), "error": str(exc)})
                continue
            sent.append({"to": recipient, "count": len(items)})

        LOGGER.info("Sent %d digests (%d failed)", len(sent), len(failed))
        context.log_event("email.digest.sent", count=len(sent), failed=len(failed))
        return DispatchResult.ok(
            digests_sent=len(sent),
            sent_at=_utcnow_iso(),
            digests=sent,
            failed=failed,
        )

    def update_preference(self, payload: Mapping[str, Any], context: Optional[DispatchContext] = None) -> DispatchResult:
        return self._run("update_preference", self._update_preference, payload, context or DispatchContext())

    def _update_preference(self, payload: Mapping[str, Any], context: DispatchContext) -> DispatchResult:
        payload = _require_mapping(payload)
        email = normalize_address(payload.get("email"))
        record = self.preferences.update(
            email,
            suppressed=payload.get("suppressed"),
            digest_only=payload.get("digest_only"),
            frequency=payload.get("frequency"),
        )
        context.log_event("email.preferences.updated", email=email, suppressed=record.suppressed)
        return DispatchResult.ok(
            email=email,
            preferences=record.to_dict(),
            updated_at=record.updated_at.isoformat(timespec="seconds"),
        )

    def check_preference(self, payload: Mapping[str, Any], context: Optional[DispatchContext] = None) -> DispatchResult:
        return self._run("check_preference", self._check_preference, payload, context or DispatchContext())

    def _check_preference(self, payload: Mapping[str, Any], context: DispatchContext) -> DispatchResult:
        email = normalize_address(_require_mapping(payload).get("email"))
        if not email:
            raise MissingEmail("Email address is required")
        return DispatchResult.ok(email=email, preferences=self.preferences.get(email).to_dict())

    def validate_template(self, payload: Mapping[str, Any], context: Optional[DispatchContext] = None) -> DispatchResult:
        return self._run("validate_template", self._validate_template, payload, context or DispatchContext())

    def _validate_template(self, payload: Mapping[str, Any], context: DispatchContext) -> DispatchResult:
        text = _require_mapping(payload).get("template")
        if text is None or text == "":
            raise MissingContent("Template body is required")
        try:
            validate_template(str(text), self.renderer.env)
        except TemplateSyntaxError as exc:
            return DispatchResult.failure(str(exc), exc.kind, valid=False)
        return DispatchResult.ok(valid=True, message="Template syntax is valid")


__all__ = ["DispatchEngine", "SUPPRESSION_REASON"]
