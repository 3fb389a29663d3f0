"""
Shared status board read by the display layer.
"""
import logging
import threading
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)


class StatusBoard:
    """Holds the current status line and the last result image with thread-safe access."""

    def __init__(self, initial: str = "Idle"):
        self._lock = threading.Lock()
        self._status = initial
        self._last_result: Optional[np.ndarray] = None
        self._last_result_name: Optional[str] = None

    @property
    def status(self) -> str:
        with self._lock:
            return self._status

    def set_status(self, text: str):
        with self._lock:
            self._status = text
        logger.info(f"Status: {text}")

    @property
    def last_result(self) -> Optional[np.ndarray]:
        with self._lock:
            return self._last_result

    @property
    def last_result_name(self) -> Optional[str]:
        with self._lock:
            return self._last_result_name

    def set_result(self, image: np.ndarray, name: str):
        with self._lock:
            self._last_result = image
            self._last_result_name = name
