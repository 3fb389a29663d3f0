"""
Run Controller

Single-run and loop control over the orchestrator. At most one worker thread
runs cycles at any time; start requests made while it is running are either
rejected (single run) or folded into it (loop). Stopping only clears the loop
request, and the cycle in flight always runs to completion.

After every cycle, single or looped, the worker checks ``loop_requested`` to
decide whether another cycle follows, so ``start_loop()`` during a single run
turns that run into a loop.
"""
import logging
import threading
import time
from typing import Callable, Optional

from .orchestrator import CycleOutcome, IterationOrchestrator
from .run_state import RunPhase, RunState

logger = logging.getLogger(__name__)


class RunController:
    """Owns the run state and the background worker."""

    def __init__(
        self,
        orchestrator: IterationOrchestrator,
        state: Optional[RunState] = None,
        pacing: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize controller.

        Args:
            orchestrator: Runs the actual cycles
            state: Run state (a new one if None)
            pacing: Delay between looped cycles (settings.loop_pacing if None)
            sleep: Sleep function used for pacing
        """
        self.orchestrator = orchestrator
        self.state = state or RunState()
        self.pacing = orchestrator.settings.loop_pacing if pacing is None else pacing
        self._sleep = sleep
        self._worker: Optional[threading.Thread] = None

    @property
    def working(self) -> bool:
        return self.state.working

    @property
    def loop_requested(self) -> bool:
        return self.state.loop_requested

    @property
    def phase(self) -> RunPhase:
        return self.state.phase

    def start_single_run(self) -> bool:
        """Run one cycle in the background. Returns False if one is already running."""
        if not self.state.try_begin():
            logger.info("Single run ignored: a cycle is already running")
            return False
        self._spawn()
        return True

    def start_loop(self) -> bool:
        """Request looping. Returns True if a new worker was started."""
        if not self.state.request_loop():
            logger.info("Loop requested; the running worker will keep going")
            return False
        self._spawn()
        return True

    def stop_loop(self):
        """Stop looping after the current cycle."""
        self.state.cancel_loop()
        logger.info("Loop stop requested")

    def health_check(self) -> threading.Thread:
        """Run the health check on its own short-lived thread."""
        thread = threading.Thread(
            target=self.orchestrator.check_health,
            name="frame-relay-health",
            daemon=True,
        )
        thread.start()
        return thread

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until the worker has exited. Returns False on timeout."""
        return self.state.wait_idle(timeout)

    def _spawn(self):
        self._worker = threading.Thread(target=self._run, name="frame-relay-cycle", daemon=True)
        try:
            self._worker.start()
        except RuntimeError:
            self.state.cancel_loop()
            self.state.finish()
            raise

    def _run(self):
        # should_continue() releases the slot itself when it ends the loop
        released = False
        try:
            while True:
                report = self.orchestrator.run_cycle()
                if report.outcome is CycleOutcome.UNREACHABLE:
                    # Looping against a missing server would only spin
                    self.state.cancel_loop()

                if not self.state.should_continue():
                    released = True
                    return
                self._sleep(self.pacing)
                if not self.state.should_continue():
                    released = True
                    return
        except Exception as e:
            logger.exception(f"Cycle worker crashed: {e}")
            self.state.cancel_loop()
            self.orchestrator.status.set_status(f"Error: {e}")
        finally:
            if not released:
                self.state.finish()
