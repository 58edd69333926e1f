import logging
import queue
import threading
from typing import Any, List, Optional


class Subscription:
    """Bounded per-subscriber queue; the oldest message is dropped when full."""

    def __init__(self, topic: "Topic", maxsize: int):
        self.topic = topic
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=maxsize)

    def _put(self, message):
        while True:
            try:
                self._queue.put_nowait(message)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                except queue.Empty:
                    pass

    def get(self, timeout: Optional[float] = None):
        """Next message, or None if nothing arrived within timeout."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> List[Any]:
        messages = []
        while True:
            try:
                messages.append(self._queue.get_nowait())
            except queue.Empty:
                return messages

    def close(self):
        self.topic.unsubscribe(self)


class Topic:
    """
    In-process broadcast channel.

    Every published message is delivered to all current subscribers.
    Publishing never blocks on a slow subscriber.
    """

    def __init__(self, name: str, queue_size: int = 10):
        self.name = name
        self.queue_size = queue_size
        self.log = logging.getLogger(f"Topic[{name}]")
        self._lock = threading.Lock()
        self._subscribers: List[Subscription] = []
        self.published_count = 0

    def subscribe(self, queue_size: Optional[int] = None) -> Subscription:
        sub = Subscription(self, queue_size or self.queue_size)
        with self._lock:
            self._subscribers.append(sub)
        self.log.debug(f"Subscriber added ({len(self._subscribers)} total)")
        return sub

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def unsubscribe(self, sub: Subscription):
        with self._lock:
            if sub in self._subscribers:
                self._subscribers.remove(sub)

    def publish(self, message: Any):
        with self._lock:
            subscribers = list(self._subscribers)
            self.published_count += 1
        for sub in subscribers:
            sub._put(message)
