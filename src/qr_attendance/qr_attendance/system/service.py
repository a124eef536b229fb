from __future__ import annotations

import logging
from typing import Callable, Dict, Mapping

from ..common.datetime_utils import now_local
from ..write_queue import KeyedConcurrentQueue

logger = logging.getLogger(__name__)


class HealthService:
    """Process health: queue stats merged with store counters."""

    def __init__(
        self,
        queues: Mapping[str, KeyedConcurrentQueue],
        store_counts: Callable[[], Dict[str, int]],
        *,
        clock: Callable = now_local,
    ):
        self._queues = dict(queues)
        self._store_counts = store_counts
        self._clock = clock

    def report(self) -> dict:
        status = "ok"
        try:
            store = self._store_counts()
        except Exception as e:
            logger.warning("Health check could not read the store: %s", e)
            status = "degraded"
            store = {"error": "store unavailable"}

        return {
            "status": status,
            "timestamp": self._clock().isoformat(),
            "queues": {name: queue.stats() for name, queue in self._queues.items()},
            "store": store,
        }
