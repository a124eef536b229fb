"""Keyed concurrent write queue.

Tasks that share a key run strictly one after another in submission order
(including across retries); tasks under different keys run in parallel, up to
``concurrency`` lanes at a time. Used to push slow spreadsheet writes out of the
request path without letting two writes to the same sheet race.

The queue lives on one asyncio event loop. ``enqueue`` may be called either
from that loop or from other threads (Flask workers); the lane table and
counters are guarded by a lock and every lane is drained by exactly one
coroutine at a time.

An item counts as pending from admission until it succeeds or fails for good:
waiting in a lane, running, and sleeping before a retry all count against
``max_size``.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Dict, Hashable, Optional, Set, Union

from ..core.constants import (
    DEFAULT_QUEUE_CONCURRENCY,
    DEFAULT_QUEUE_MAX_SIZE,
    DEFAULT_QUEUE_RETRIES,
    DEFAULT_QUEUE_RETRY_DELAY_MS,
)
from ..core.exceptions import QueueFullError

logger = logging.getLogger(__name__)

# Shared lane for work enqueued without a key: everything in it is globally ordered.
DEFAULT_LANE = "__default__"

Task = Callable[[], Union[Awaitable[Any], Any]]
SuccessCallback = Callable[[], Any]
FailureCallback = Callable[[BaseException], Any]


@dataclass
class QueueItem:
    task: Task
    label: str
    key: Hashable
    retry_count: int = 0
    on_success: Optional[SuccessCallback] = None
    on_failure: Optional[FailureCallback] = None


class KeyedConcurrentQueue:
    def __init__(
        self,
        *,
        name: str = "queue",
        concurrency: int = DEFAULT_QUEUE_CONCURRENCY,
        max_size: int = DEFAULT_QUEUE_MAX_SIZE,
        retries: int = DEFAULT_QUEUE_RETRIES,
        retry_delay_ms: float = DEFAULT_QUEUE_RETRY_DELAY_MS,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.name = name
        self._concurrency = max(1, int(concurrency))
        self._max_size = max(0, int(max_size))
        self._retries = max(0, int(retries))
        self._retry_delay_ms = max(0.0, float(retry_delay_ms))
        self._loop = loop

        self._lock = threading.Lock()
        self._lanes: Dict[Hashable, Deque[QueueItem]] = {}
        self._active: Set[Hashable] = set()
        self._pending = 0
        self._processed = 0
        self._failed = 0
        self._drains: Set[asyncio.Task] = set()

    def enqueue(
        self,
        task: Task,
        label: str = "queue-task",
        key: Hashable = DEFAULT_LANE,
        *,
        on_success: Optional[SuccessCallback] = None,
        on_failure: Optional[FailureCallback] = None,
    ) -> bool:
        """Admit ``task`` under ``key``; return False (and call ``on_failure``) when full."""

        if key is None:
            key = DEFAULT_LANE

        loop, in_loop = self._resolve_loop()
        with self._lock:
            admitted = self._pending < self._max_size
            if admitted:
                lane = self._lanes.get(key)
                if lane is None:
                    lane = self._lanes[key] = deque()
                lane.append(
                    QueueItem(task=task, label=label, key=key, on_success=on_success, on_failure=on_failure)
                )
                self._pending += 1

        if not admitted:
            logger.warning("[%s] Queue full (%d pending), rejected %r", self.name, self._max_size, label)
            _invoke(on_failure, QueueFullError(f"{self.name} is full ({self._max_size} pending items)"), label=label)
            return False

        if in_loop:
            self._pump()
        else:
            loop.call_soon_threadsafe(self._pump)
        return True

    def stats(self) -> dict:
        with self._lock:
            return {
                "queued": self._pending,
                "active": len(self._active),
                "lanes": len(self._lanes),
                "processed": self._processed,
                "failed": self._failed,
            }

    def __len__(self) -> int:
        with self._lock:
            return self._pending

    def backoff_delay_ms(self, attempt: int) -> float:
        """Wait before 1-based retry ``attempt``: base, 2x base, 4x base, ..."""
        return self._retry_delay_ms * (2 ** (attempt - 1))

    async def join(self) -> None:
        """Wait until every lane has drained. Must be awaited on the queue's loop."""

        while True:
            drains = [t for t in self._drains if not t.done()]
            if not drains:
                with self._lock:
                    idle = not self._lanes and not self._active
                if idle:
                    return
                # A cross-thread pump may still be scheduled; let it run.
                await asyncio.sleep(0)
                continue
            await asyncio.gather(*drains, return_exceptions=True)

    def _resolve_loop(self) -> tuple[asyncio.AbstractEventLoop, bool]:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if self._loop is None:
            if running is None:
                raise RuntimeError(f"{self.name} has no event loop: bind one or enqueue from a running loop")
            self._loop = running
        return self._loop, running is self._loop

    def _pump(self) -> None:
        """Start a drain for every waiting lane while slots are free."""

        if self._loop.is_closed():
            return

        started = []
        with self._lock:
            for key, lane in self._lanes.items():
                if len(self._active) >= self._concurrency:
                    break
                if key in self._active or not lane:
                    continue
                self._active.add(key)
                started.append(key)

        for key in started:
            drain = self._loop.create_task(self._drain_lane(key))
            self._drains.add(drain)
            drain.add_done_callback(self._drains.discard)

    async def _drain_lane(self, key: Hashable) -> None:
        try:
            while True:
                with self._lock:
                    lane = self._lanes.get(key)
                    if not lane:
                        self._lanes.pop(key, None)
                        break
                    item = lane.popleft()
                await self._run_item(item)
        finally:
            with self._lock:
                self._active.discard(key)
            self._pump()

    async def _run_item(self, item: QueueItem) -> None:
        try:
            result = item.task()
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            if item.retry_count < self._retries:
                item.retry_count += 1
                delay_ms = self.backoff_delay_ms(item.retry_count)
                logger.warning(
                    "[%s] Retrying %r (%d/%d) in %.0fms: %s",
                    self.name,
                    item.label,
                    item.retry_count,
                    self._retries,
                    delay_ms,
                    exc,
                )
                await asyncio.sleep(delay_ms / 1000.0)
                with self._lock:
                    # Front of its own lane: it must go before later siblings.
                    self._lanes.setdefault(item.key, deque()).appendleft(item)
                return

            with self._lock:
                self._pending -= 1
                self._failed += 1
            logger.error("[%s] Failed %r after %d retries: %s", self.name, item.label, self._retries, exc)
            _invoke(item.on_failure, exc, label=item.label)
            return

        with self._lock:
            self._pending -= 1
            self._processed += 1
        _invoke(item.on_success, label=item.label)


def _invoke(callback: Optional[Callable[..., Any]], *args: Any, label: str) -> None:
    if callback is None:
        return
    try:
        callback(*args)
    except Exception:
        logger.exception("Queue callback for %r raised", label)
