from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Optional

from .config import DEFAULT_PREFERENCES, VALID_FREQUENCIES
from .errors import InvalidPreference, MissingEmail
from .models import PreferenceRecord

LOGGER = logging.getLogger(__name__)


def normalize_address(address: Optional[str]) -> str:
    return str(address or "").strip().lower()


def _flag(name: str, value: object) -> bool:
    if value is None:
        return DEFAULT_PREFERENCES[name]
    if not isinstance(value, bool):
        raise InvalidPreference(f"Invalid {name} value {value!r} (expected true or false)")
    return value


class PreferenceStore(ABC):
    """Recipient delivery preferences keyed by normalized address."""

    @abstractmethod
    def update(
        self,
        address: Optional[str],
        *,
        suppressed: Optional[bool] = None,
        digest_only: Optional[bool] = None,
        frequency: Optional[str] = None,
    ) -> PreferenceRecord:
        ...

    @abstractmethod
    def get(self, address: Optional[str]) -> PreferenceRecord:
        ...

    def is_suppressed(self, address: Optional[str]) -> bool:
        return self.get(address).suppressed


class InMemoryPreferenceStore(PreferenceStore):
    def __init__(self) -> None:
        self._records: Dict[str, PreferenceRecord] = {}
        self._lock = threading.Lock()

    def update(
        self,
        address: Optional[str],
        *,
        suppressed: Optional[bool] = None,
        digest_only: Optional[bool] = None,
        frequency: Optional[str] = None,
    ) -> PreferenceRecord:
        key = normalize_address(address)
        if not key:
            raise MissingEmail("Email address is required")

        frequency = str(frequency or DEFAULT_PREFERENCES["frequency"]).strip().lower()
        if frequency not in VALID_FREQUENCIES:
            allowed = ", ".join(sorted(VALID_FREQUENCIES))
            raise InvalidPreference(f"Invalid frequency '{frequency}' (expected one of: {allowed})")

        # Full replacement: omitted fields fall back to defaults, not to the old record.
        record = PreferenceRecord(
            suppressed=_flag("suppressed", suppressed),
            digest_only=_flag("digest_only", digest_only),
            frequency=frequency,
            updated_at=datetime.now(timezone.utc),
        )
        with self._lock:
            self._records[key] = record
        LOGGER.info("Updated preferences for %s (suppressed=%s, frequency=%s)", key, record.suppressed, frequency)
        return record

    def get(self, address: Optional[str]) -> PreferenceRecord:
        key = normalize_address(address)
        with self._lock:
            record = self._records.get(key)
        return record if record is not None else PreferenceRecord()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
