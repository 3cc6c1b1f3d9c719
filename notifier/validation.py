from __future__ import annotations

import re

from .errors import InvalidAddress, MissingContent, MissingRecipient
from .models import NotificationRequest

ADDRESS_PATTERN = re.compile(r"[^@\s]+@[^@\s]+\.[^@\s]+")


def is_valid_address(address: object) -> bool:
    if not isinstance(address, str):
        return False
    return ADDRESS_PATTERN.fullmatch(address) is not None


def validate_request(request: NotificationRequest) -> None:
    """Raise a ``ValidationError`` subclass if the request cannot be dispatched."""
    if not request.to:
        raise MissingRecipient("Recipient (to) is required")
    if not is_valid_address(request.to):
        raise InvalidAddress("Invalid email address")
    if request.template is None and request.subject is None:
        raise MissingContent("Either template or subject is required")
    if request.template is None and request.body is None:
        raise MissingContent("Either template or body is required")


__all__ = ["ADDRESS_PATTERN", "is_valid_address", "validate_request"]
