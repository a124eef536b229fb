from .keyed_queue import DEFAULT_LANE, KeyedConcurrentQueue, QueueItem
from .runner import BackgroundLoop

__all__ = ["DEFAULT_LANE", "KeyedConcurrentQueue", "QueueItem", "BackgroundLoop"]
