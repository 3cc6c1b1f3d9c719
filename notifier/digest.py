from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import redis

from .config import DispatchSettings
from .models import Context, QueuedItem

LOGGER = logging.getLogger(__name__)


class DigestQueue(ABC):
    """Per-recipient backlog of notifications awaiting a combined digest."""

    @abstractmethod
    def enqueue(
        self,
        address: str,
        template: Optional[str],
        context: Context,
        *,
        subject: Optional[str] = None,
        body: Optional[str] = None,
    ) -> int:
        """Append one item and return the recipient's queued count."""

    @abstractmethod
    def drain(self) -> Dict[str, List[QueuedItem]]:
        """Atomically remove and return every non-empty queue."""

    @abstractmethod
    def pending(self, address: str) -> int:
        ...


class InMemoryDigestQueue(DigestQueue):
    # Keys are the raw addresses as submitted; no normalization.

    def __init__(self) -> None:
        self._queues: Dict[str, List[QueuedItem]] = {}
        self._lock = threading.Lock()

    def enqueue(
        self,
        address: str,
        template: Optional[str],
        context: Context,
        *,
        subject: Optional[str] = None,
        body: Optional[str] = None,
    ) -> int:
        item = QueuedItem(
            template=template,
            context=dict(context or {}),
            queued_at=datetime.now(timezone.utc),
            subject=subject,
            body=body,
        )
        with self._lock:
            queue = self._queues.setdefault(address, [])
            queue.append(item)
            count = len(queue)
        LOGGER.debug("Queued digest item for %s (%d pending)", address, count)
        return count

    def drain(self) -> Dict[str, List[QueuedItem]]:
        with self._lock:
            snapshot = {address: items for address, items in self._queues.items() if items}
            self._queues = {}
        return snapshot

    def pending(self, address: str) -> int:
        with self._lock:
            return len(self._queues.get(address, ()))


def _dump_item(item: QueuedItem) -> str:
    return json.dumps({
        "template": item.template,
        "context": item.context,
        "queued_at": item.queued_at.isoformat(),
        "subject": item.subject,
        "body": item.body,
    })


def _load_item(raw: Any) -> QueuedItem:
    data = json.loads(raw)
    return QueuedItem(
        template=data.get("template"),
        context=data.get("context") or {},
        queued_at=datetime.fromisoformat(data["queued_at"]),
        subject=data.get("subject"),
        body=data.get("body"),
    )


class RedisDigestQueue(DigestQueue):
    """Digest backlog shared by every process pointing at the same Redis.

    Each recipient has a list of JSON items plus membership in an index set.
    Enqueue and per-recipient drain each run in a MULTI transaction, so an item
    is either part of the drained batch or left for the next flush.
    """

    def __init__(self, redis_client: redis.Redis, prefix: str = "notifier:digest:"):
        self._redis = redis_client
        self._prefix = prefix
        self._index = f"{prefix}recipients"

    def _key(self, address: str) -> str:
        return f"{self._prefix}queue:{address}"

    def enqueue(
        self,
        address: str,
        template: Optional[str],
        context: Context,
        *,
        subject: Optional[str] = None,
        body: Optional[str] = None,
    ) -> int:
        item = QueuedItem(
            template=template,
            context=dict(context or {}),
            queued_at=datetime.now(timezone.utc),
            subject=subject,
            body=body,
        )
        pipe = self._redis.pipeline(transaction=True)
        pipe.rpush(self._key(address), _dump_item(item))
        pipe.sadd(self._index, address)
        count, _ = pipe.execute()
        LOGGER.debug("Queued digest item for %s in redis (%d pending)", address, count)
        return int(count)

    def drain(self) -> Dict[str, List[QueuedItem]]:
        snapshot: Dict[str, List[QueuedItem]] = {}
        for member in self._redis.smembers(self._index):
            address = member.decode() if isinstance(member, bytes) else member
            pipe = self._redis.pipeline(transaction=True)
            pipe.lrange(self._key(address), 0, -1)
            pipe.delete(self._key(address))
            pipe.srem(self._index, address)
            entries, _, _ = pipe.execute()
            if entries:
                snapshot[address] = [_load_item(entry) for entry in entries]
        return snapshot

    def pending(self, address: str) -> int:
        return int(self._redis.llen(self._key(address)))


def build_digest_queue(settings: DispatchSettings) -> DigestQueue:
    if settings.digest_backend == "redis":
        client = redis.Redis.from_url(settings.redis_url, decode_responses=True)
        return RedisDigestQueue(client, prefix=settings.digest_key_prefix)
    LOGGER.warning("Using a process-local digest queue; scheduled flushes in other processes will not see it")
    return InMemoryDigestQueue()
