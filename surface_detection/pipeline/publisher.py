import logging
import threading
from typing import Optional

from surface_detection.pipeline.cache import ResultCache
from surface_detection.pipeline.topics import Topic


class PeriodicPublisher:
    """
    Republishes the cached region cloud at a fixed period.

    Best-effort: a tick with no cloud is skipped, so late subscribers
    eventually see the latest cloud without asking for it.
    """

    def __init__(self, cache: ResultCache, topic: Topic, enabled: bool = False, period: float = 1.0):
        if period <= 0:
            raise ValueError(f"Publish period must be positive, got {period}")
        self.log = logging.getLogger("PeriodicPublisher")
        self.cache = cache
        self.topic = topic
        self.enabled = enabled
        self.period = period
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self):
        if not self.enabled:
            self.log.info("Region cloud publishing disabled")
            return
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="region-cloud-publisher", daemon=True)
        self._thread.start()
        self.log.info(f"Publishing region cloud every {self.period:.2f}s on '{self.topic.name}'")

    def stop(self, timeout: Optional[float] = None):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def publish_once(self) -> bool:
        """Publish the cached cloud if there is one; True if something was sent."""
        cloud = self.cache.region_cloud()
        if cloud is None or len(cloud) == 0:
            return False
        self.topic.publish(cloud)
        return True

    def _run(self):
        while not self._stop.wait(self.period):
            try:
                self.publish_once()
            except Exception as e:
                self.log.error(f"Region cloud publish failed: {e}")
