"""Error taxonomy for the dispatch engine.

Every failure the engine reports carries a ``kind`` matching the class name so
adapters can map it onto their transport (HTTP status, task state, ...).
"""
from __future__ import annotations

from typing import Optional


class NotifierError(Exception):
    """Base class for all errors surfaced by the dispatch engine."""

    downstream = False

    @property
    def kind(self) -> str:
        return type(self).__name__


class ValidationError(NotifierError):
    """The request is structurally incomplete or malformed."""


class MissingRecipient(ValidationError):
    pass


class InvalidAddress(ValidationError):
    pass


class MissingContent(ValidationError):
    pass


class MissingEmail(ValidationError):
    pass


class InvalidPreference(ValidationError):
    pass


class TemplateError(NotifierError):
    """Template lookup or parsing failed."""


class TemplateNotFound(TemplateError):
    def __init__(self, template_id: str):
        super().__init__(f"Template '{template_id}' not found")
        self.template_id = template_id


class TemplateSyntaxError(TemplateError):
    def __init__(self, diagnostic: str, lineno: Optional[int] = None):
        message = f"Invalid template syntax: {diagnostic}"
        if lineno is not None:
            message = f"{message} (line {lineno})"
        super().__init__(message)
        self.diagnostic = diagnostic
        self.lineno = lineno


class RateLimitExceeded(NotifierError):
    def __init__(self, limit: int):
        super().__init__(f"Rate limit exceeded ({limit}/min)")
        self.limit = limit


class DeliveryError(NotifierError):
    """The message was admitted but the outbound channel failed."""

    downstream = True


class UnknownFailure(NotifierError):
    pass
