"""
Per-cycle logger.
Prefixes every record with the cycle id and an optional details dict.
"""

import logging
import time
from typing import Any, Dict, Optional

# One logger for all cycles; the cycle id lives in the message
logger = logging.getLogger("frame_relay.cycle")


class CycleLogger:
    """Logger for a single capture -> result cycle."""

    def __init__(self, cycle_id: str):
        """
        Initialize a cycle logger.

        Args:
            cycle_id: Short id of the cycle being logged
        """
        self.cycle_id = cycle_id
        self._start_time = time.monotonic()

    def _log(self, level: int, message: str, details: Optional[Dict[str, Any]] = None):
        details_str = f" | {details}" if details else ""
        logger.log(level, f"[{self.cycle_id}] {message}{details_str}")

    def info(self, message: str, details: Optional[Dict[str, Any]] = None):
        self._log(logging.INFO, message, details)

    def warning(self, message: str, details: Optional[Dict[str, Any]] = None):
        self._log(logging.WARNING, message, details)

    def error(self, message: str, details: Optional[Dict[str, Any]] = None):
        self._log(logging.ERROR, message, details)

    def debug(self, message: str, details: Optional[Dict[str, Any]] = None):
        self._log(logging.DEBUG, message, details)

    def elapsed_ms(self) -> float:
        return (time.monotonic() - self._start_time) * 1000

    def fail(self, message: str, error: Optional[Exception] = None):
        """Log a cycle failure."""
        details = {}
        if error:
            details["error_type"] = type(error).__name__
            details["error_message"] = str(error)
        self.error(message, details if details else None)
