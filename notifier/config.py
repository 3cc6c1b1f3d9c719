"""Shared configuration defaults for the notification dispatcher."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_PREFERENCES = {
    "suppressed": False,
    "digest_only": False,
    "frequency": "realtime",
}

VALID_FREQUENCIES = {"realtime", "hourly", "daily", "weekly"}
VALID_BACKENDS = {"smtp", "webhook", "memory"}
VALID_DIGEST_BACKENDS = {"redis", "memory"}

TRUTHY = {"1", "true", "yes", "on"}


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in TRUTHY


@dataclass(slots=True)
class DispatchSettings:
    """Observable knobs of the dispatch engine and its delivery backends."""

    rate_limit_per_minute: int = 20
    rate_limit_window_seconds: float = 60.0
    enable_suppression: bool = True
    default_from_address: str = "notifications@example.com"
    digest_subject_prefix: str = "Digest"
    delivery_backend: str = "smtp"

    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_tls: bool = True
    smtp_timeout: float = 10.0

    webhook_url: Optional[str] = None
    webhook_timeout: float = 5.0
    webhook_bot_name: str = "Notifier"

    digest_backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    digest_key_prefix: str = "notifier:digest:"

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_username and self.smtp_password)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "DispatchSettings":
        env = os.environ if environ is None else environ
        base_domain = env.get("BASE_DOMAIN", "example.com")
        backend = env.get("DELIVERY_BACKEND", "smtp").strip().lower()
        if backend not in VALID_BACKENDS:
            raise ValueError(f"Unknown DELIVERY_BACKEND '{backend}'")
        digest_backend = env.get("DIGEST_BACKEND", "redis").strip().lower()
        if digest_backend not in VALID_DIGEST_BACKENDS:
            raise ValueError(f"Unknown DIGEST_BACKEND '{digest_backend}'")
        return cls(
            rate_limit_per_minute=int(env.get("RATE_LIMIT_PER_MINUTE", "20")),
            rate_limit_window_seconds=float(env.get("RATE_LIMIT_WINDOW_SECONDS", "60")),
            enable_suppression=_flag(env.get("ENABLE_SUPPRESSION"), True),
            default_from_address=env.get("EMAIL_FROM") or f"notifications@{base_domain}",
            digest_subject_prefix=env.get("DIGEST_SUBJECT_PREFIX", "Digest"),
            delivery_backend=backend,
            smtp_host=env.get("SMTP_HOST", "localhost"),
            smtp_port=int(env.get("SMTP_PORT", "587")),
            smtp_username=env.get("SMTP_USERNAME") or None,
            smtp_password=env.get("SMTP_PASSWORD") or None,
            smtp_use_tls=_flag(env.get("SMTP_USE_TLS"), True),
            smtp_timeout=float(env.get("SMTP_TIMEOUT", "10")),
            webhook_url=env.get("WEBHOOK_URL") or None,
            webhook_timeout=float(env.get("WEBHOOK_TIMEOUT", "5")),
            webhook_bot_name=env.get("WEBHOOK_BOT_NAME", "Notifier"),
            digest_backend=digest_backend,
            redis_url=env.get("REDIS_URL", "redis://localhost:6379/0"),
            digest_key_prefix=env.get("DIGEST_KEY_PREFIX", "notifier:digest:"),
        )
