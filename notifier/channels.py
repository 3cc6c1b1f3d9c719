from __future__ import annotations

import json
import logging
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage
from typing import List, Optional

import requests

from .config import DispatchSettings
from .context import DispatchContext
from .errors import DeliveryError
from .models import OutboundMessage

LOGGER = logging.getLogger(__name__)


class DeliveryChannel(ABC):
    """Narrow send-or-fail interface the engine delivers through."""

    name = "channel"

    @abstractmethod
    def deliver(self, message: OutboundMessage, context: Optional[DispatchContext] = None) -> None:
        """Send ``message`` or raise ``DeliveryError``."""


def build_email(message: OutboundMessage) -> EmailMessage:
    email = EmailMessage()
    email["Subject"] = message.subject
    email["From"] = message.from_address
    email["To"] = message.to
    if message.cc:
        email["Cc"] = message.cc
    if message.reply_to:
        email["Reply-To"] = message.reply_to
    email.set_content(message.body)
    return email


class SmtpChannel(DeliveryChannel):
    name = "smtp"

    def __init__(self, settings: DispatchSettings):
        self.settings = settings

    def _credentials(self, context: Optional[DispatchContext]):
        username = self.settings.smtp_username
        password = self.settings.smtp_password
        if context is not None:
            username = username or context.secret("SMTP_USERNAME")
            password = password or context.secret("SMTP_PASSWORD")
        return username, password

    def _connection(self, context: Optional[DispatchContext]) -> smtplib.SMTP:
        settings = self.settings
        server = smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=settings.smtp_timeout)
        try:
            if settings.smtp_use_tls:
                server.starttls()
            username, password = self._credentials(context)
            if username and password:
                server.login(username, password)
        except Exception:
            server.quit()
            raise
        return server

    def deliver(self, message: OutboundMessage, context: Optional[DispatchContext] = None) -> None:
        email = build_email(message)
        # Bcc stays off the headers; it only widens the envelope.
        recipients = [addr for addr in (message.to, message.cc, message.bcc) if addr]
        try:
            with self._connection(context) as server:
                server.send_message(email, to_addrs=recipients)
        except (smtplib.SMTPException, OSError) as exc:
            raise DeliveryError(str(exc)) from exc
        LOGGER.info("Sent email '%s' to %s", message.subject, message.to)


class WebhookChannel(DeliveryChannel):
    """Posts each message to a chat-style JSON webhook."""

    name = "webhook"

    def __init__(self, settings: DispatchSettings):
        if not settings.webhook_url:
            raise ValueError("WEBHOOK_URL must be set for the webhook delivery backend")
        self.settings = settings

    def deliver(self, message: OutboundMessage, context: Optional[DispatchContext] = None) -> None:
        payload = {
            "username": self.settings.webhook_bot_name,
            "to": message.to,
            "content": f"**{message.subject}**\n{message.body}",
        }
        headers = {"Content-Type": "application/json"}
        try:
            resp = requests.post(
                self.settings.webhook_url,
                headers=headers,
                data=json.dumps(payload),
                timeout=self.settings.webhook_timeout,
            )
        except requests.RequestException as exc:
            raise DeliveryError(str(exc)) from exc
        if resp.status_code >= 400:
            LOGGER.error("Webhook responded with %s: %s", resp.status_code, resp.text[:120])
            raise DeliveryError(f"webhook responded with HTTP {resp.status_code}")
        LOGGER.info("Posted notification '%s' for %s to webhook", message.subject, message.to)


class MemoryChannel(DeliveryChannel):
    """Collects messages instead of sending them."""

    name = "memory"

    def __init__(self) -> None:
        self.deliveries: List[OutboundMessage] = []

    def deliver(self, message: OutboundMessage, context: Optional[DispatchContext] = None) -> None:
        self.deliveries.append(message)
        LOGGER.debug("Captured message '%s' to %s", message.subject, message.to)

    def clear(self) -> None:
        self.deliveries.clear()


def build_channel(settings: DispatchSettings) -> DeliveryChannel:
    if settings.delivery_backend == "webhook":
        return WebhookChannel(settings)
    if settings.delivery_backend == "memory":
        return MemoryChannel()
    if not settings.smtp_configured:
        LOGGER.warning("SMTP credentials not configured; relying on per-call secrets")
    return SmtpChannel(settings)
