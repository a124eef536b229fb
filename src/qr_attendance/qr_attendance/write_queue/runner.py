"""Background asyncio loop for a threaded Flask process.

Request handlers run on worker threads; the write queues live on a single
event loop owned by a daemon thread. Handlers only enqueue (fire-and-forget),
they never wait for a drain.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from typing import Iterable, Optional

from .keyed_queue import KeyedConcurrentQueue

logger = logging.getLogger(__name__)


class BackgroundLoop:
    def __init__(self, name: str = "write-queue-loop"):
        self.name = name
        self.loop = asyncio.new_event_loop()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> "BackgroundLoop":
        if self.running:
            return self

        def _run() -> None:
            asyncio.set_event_loop(self.loop)
            self.loop.run_forever()

        self._thread = threading.Thread(target=_run, name=self.name, daemon=True)
        self._thread.start()
        logger.info("Started background loop %s", self.name)
        return self

    def stop(self, queues: Iterable[KeyedConcurrentQueue] = (), *, timeout: float = 5.0) -> None:
        """Drain ``queues`` (bounded by ``timeout``) and stop the loop."""

        if not self.running:
            return

        queues = list(queues)
        if queues:
            future = asyncio.run_coroutine_threadsafe(_join_all(queues), self.loop)
            try:
                future.result(timeout=timeout)
            except concurrent.futures.TimeoutError:
                future.cancel()
                logger.warning(
                    "Shutdown: queues still busy after %.1fs: %s",
                    timeout,
                    {q.name: q.stats() for q in queues},
                )

        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout=timeout)
        self._thread = None
        logger.info("Stopped background loop %s", self.name)


async def _join_all(queues: list[KeyedConcurrentQueue]) -> None:
    await asyncio.gather(*(q.join() for q in queues))
    # Success callbacks hand store writes to the default executor; let them land.
    await asyncio.get_running_loop().shutdown_default_executor()
