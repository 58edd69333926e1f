import threading
from typing import Optional, Tuple

import numpy as np

from surface_detection.pipeline.messages import DetectionResult


class ResultCache:
    """
    Last successful detection result together with its region cloud.

    Both live in a single tuple that is swapped under a lock, so a reader
    always sees a matching pair.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entry: Tuple[DetectionResult, Optional[np.ndarray]] = (DetectionResult(), None)

    def get(self) -> DetectionResult:
        with self._lock:
            return self._entry[0]

    def region_cloud(self) -> Optional[np.ndarray]:
        with self._lock:
            return self._entry[1]

    def snapshot(self) -> Tuple[DetectionResult, Optional[np.ndarray]]:
        with self._lock:
            return self._entry

    def replace(self, result: DetectionResult, cloud: Optional[np.ndarray]):
        if cloud is not None:
            cloud = np.array(cloud, dtype=np.float64)
            cloud.setflags(write=False)
        with self._lock:
            self._entry = (result, cloud)

    def clear_region_cloud(self):
        with self._lock:
            self._entry = (self._entry[0], None)
