"""
Run state machine

Two flags describe the relay: ``working`` (a cycle thread exists) and
``loop_requested`` (the operator wants cycles to keep coming). They are only
changed through the methods below, each of which takes the same lock, so a
check and the update that depends on it never interleave with another
caller.

Phases: idle -> working -> working + loop_requested, and back.
"""
import threading
from enum import Enum
from typing import Optional


class RunPhase(str, Enum):
    """Observable phase of the relay"""
    IDLE = "idle"
    WORKING = "working"
    LOOPING = "looping"


class RunState:
    """Lock-protected ``working`` / ``loop_requested`` pair."""

    def __init__(self):
        self._cond = threading.Condition()
        self._working = False
        self._loop_requested = False

    @property
    def working(self) -> bool:
        with self._cond:
            return self._working

    @property
    def loop_requested(self) -> bool:
        with self._cond:
            return self._loop_requested

    @property
    def phase(self) -> RunPhase:
        with self._cond:
            if not self._working:
                return RunPhase.IDLE
            return RunPhase.LOOPING if self._loop_requested else RunPhase.WORKING

    def try_begin(self) -> bool:
        """Claim the worker slot. Returns False if a cycle is already running."""
        with self._cond:
            if self._working:
                return False
            self._working = True
            return True

    def request_loop(self) -> bool:
        """Ask for looping. Returns True if the caller must start a new worker."""
        with self._cond:
            self._loop_requested = True
            if self._working:
                return False
            self._working = True
            return True

    def cancel_loop(self):
        with self._cond:
            self._loop_requested = False

    def should_continue(self) -> bool:
        """Decide, after a cycle, whether the worker keeps going.

        When it does not, ``working`` is released in the same critical
        section, so a concurrent ``request_loop`` either sees the worker
        still running and folds into it, or sees it gone and starts anew.
        """
        with self._cond:
            if self._loop_requested:
                return True
            self._working = False
            self._cond.notify_all()
            return False

    def finish(self):
        """Release the worker slot. Safe to call more than once."""
        with self._cond:
            self._working = False
            self._cond.notify_all()

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no cycle is running. Returns False on timeout."""
        with self._cond:
            return self._cond.wait_for(lambda: not self._working, timeout=timeout)
