from __future__ import annotations

import logging

from celery import shared_task

from .context import system_context
from .digest import InMemoryDigestQueue
from .service import get_engine

LOGGER = logging.getLogger(__name__)


@shared_task(name="notifier.tasks.flush_digests")
def flush_digests() -> int:
    engine = get_engine()
    if isinstance(engine.digest_queue, InMemoryDigestQueue):
        LOGGER.warning("Flushing a process-local digest queue; set DIGEST_BACKEND=redis to share it with the web app")
    result = engine.flush_digests(system_context())
    if not result.success:
        LOGGER.error("Scheduled digest flush failed: %s", result.error)
        return 0
    LOGGER.info("Scheduled digest flush sent %d digests", result["digests_sent"])
    return int(result["digests_sent"])
