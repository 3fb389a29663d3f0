"""
Unit tests for the run controller and its state machine.

Cycles are simulated by a scripted orchestrator that can be held on a gate,
so the tests can issue operator requests while a cycle is in flight.
"""
import threading
import time

import pytest

from conftest import ScriptedOrchestrator
from frame_relay.controller import RunController
from frame_relay.orchestrator import CycleOutcome, IterationOrchestrator
from frame_relay.run_state import RunPhase, RunState

WAIT = 5.0


def _controller(orchestrator):
    return RunController(orchestrator, pacing=0.0)


@pytest.mark.unit
class TestRunState:
    """Tests for RunState transitions."""

    def test_initially_idle(self):
        """Test a new state is idle with no loop request."""
        state = RunState()

        assert not state.working
        assert not state.loop_requested
        assert state.phase is RunPhase.IDLE

    def test_try_begin_is_exclusive(self):
        """Test only the first claim succeeds."""
        state = RunState()

        assert state.try_begin()
        assert not state.try_begin()
        assert state.phase is RunPhase.WORKING

    def test_request_loop_folds_into_running_worker(self):
        """Test a loop request while working does not ask for a new worker."""
        state = RunState()
        state.try_begin()

        assert not state.request_loop()
        assert state.loop_requested
        assert state.phase is RunPhase.LOOPING

    def test_should_continue_releases_when_not_looping(self):
        """Test ending the worker clears working in the same step."""
        state = RunState()
        state.try_begin()

        assert not state.should_continue()
        assert not state.working

    def test_should_continue_keeps_looping(self):
        """Test a loop request keeps the worker alive."""
        state = RunState()
        state.request_loop()

        assert state.should_continue()
        assert state.working

    def test_wait_idle_timeout(self):
        """Test wait_idle gives up while a cycle is running."""
        state = RunState()
        state.try_begin()

        assert not state.wait_idle(timeout=0.01)
        state.finish()
        assert state.wait_idle(timeout=0.01)


@pytest.mark.unit
class TestSingleRun:
    """Tests for RunController.start_single_run."""

    def test_runs_one_cycle(self):
        """Test a single run performs exactly one cycle and returns to idle."""
        orchestrator = ScriptedOrchestrator()
        controller = _controller(orchestrator)

        assert controller.start_single_run()
        assert controller.wait_idle(WAIT)

        assert orchestrator.cycles == 1
        assert not controller.working
        assert controller.phase is RunPhase.IDLE

    def test_double_start_runs_once(self):
        """Test two immediate single runs result in one active cycle."""
        gate = threading.Event()
        orchestrator = ScriptedOrchestrator(gate=gate)
        controller = _controller(orchestrator)

        assert controller.start_single_run()
        assert not controller.start_single_run()
        gate.set()
        assert controller.wait_idle(WAIT)

        assert orchestrator.cycles == 1
        assert orchestrator.max_active == 1

    def test_rejected_while_looping(self):
        """Test a single run is ignored while a loop is active."""
        gate = threading.Event()
        orchestrator = ScriptedOrchestrator(gate=gate)
        controller = _controller(orchestrator)
        orchestrator.on_cycle = lambda n: controller.stop_loop() if n == 2 else None

        controller.start_loop()
        assert orchestrator.started.wait(WAIT)
        assert not controller.start_single_run()
        gate.set()
        assert controller.wait_idle(WAIT)

        assert orchestrator.cycles == 2
        assert orchestrator.max_active == 1

    def test_working_cleared_after_crash(self):
        """Test an exception escaping a cycle still frees the worker slot."""
        orchestrator = ScriptedOrchestrator()

        def boom(n):
            raise RuntimeError("boom")

        orchestrator.on_cycle = boom
        controller = _controller(orchestrator)

        controller.start_single_run()
        assert controller.wait_idle(WAIT)

        assert not controller.working
        assert orchestrator.status.status == "Error: boom"
        assert controller.start_single_run()
        assert controller.wait_idle(WAIT)


@pytest.mark.unit
class TestLoop:
    """Tests for start_loop / stop_loop."""

    def test_loop_repeats_until_stopped(self):
        """Test cycles keep coming until stop_loop is called."""
        orchestrator = ScriptedOrchestrator()
        controller = _controller(orchestrator)
        orchestrator.on_cycle = lambda n: controller.stop_loop() if n == 4 else None

        assert controller.start_loop()
        assert controller.wait_idle(WAIT)

        assert orchestrator.cycles == 4
        assert not controller.loop_requested

    def test_stop_then_completion_starts_nothing(self):
        """Test stop_loop during a cycle means no further cycle starts."""
        gate = threading.Event()
        orchestrator = ScriptedOrchestrator(gate=gate)
        controller = _controller(orchestrator)

        controller.start_loop()
        assert orchestrator.started.wait(WAIT)
        controller.stop_loop()
        gate.set()
        assert controller.wait_idle(WAIT)

        assert orchestrator.cycles == 1

    def test_stop_is_not_preemptive(self):
        """Test the in-flight cycle finishes after stop_loop."""
        gate = threading.Event()
        orchestrator = ScriptedOrchestrator(gate=gate)
        controller = _controller(orchestrator)

        controller.start_loop()
        assert orchestrator.started.wait(WAIT)
        controller.stop_loop()

        assert controller.working
        gate.set()
        assert controller.wait_idle(WAIT)

    def test_second_start_loop_folds(self):
        """Test start_loop while looping does not spawn another worker."""
        gate = threading.Event()
        orchestrator = ScriptedOrchestrator(gate=gate)
        controller = _controller(orchestrator)
        orchestrator.on_cycle = lambda n: controller.stop_loop() if n == 2 else None

        assert controller.start_loop()
        assert orchestrator.started.wait(WAIT)
        assert not controller.start_loop()
        gate.set()
        assert controller.wait_idle(WAIT)

        assert orchestrator.cycles == 2
        assert orchestrator.max_active == 1

    def test_loop_during_single_run_continues(self):
        """Test start_loop during a single run turns it into a loop."""
        gate = threading.Event()
        orchestrator = ScriptedOrchestrator(gate=gate)
        controller = _controller(orchestrator)
        orchestrator.on_cycle = lambda n: controller.stop_loop() if n == 3 else None

        controller.start_single_run()
        assert orchestrator.started.wait(WAIT)
        assert not controller.start_loop()
        gate.set()
        assert controller.wait_idle(WAIT)

        assert orchestrator.cycles == 3

    def test_unreachable_stops_loop(self):
        """Test an unreachable server clears the loop request."""
        orchestrator = ScriptedOrchestrator(outcomes=[CycleOutcome.DONE, CycleOutcome.UNREACHABLE])
        controller = _controller(orchestrator)

        controller.start_loop()
        assert controller.wait_idle(WAIT)

        assert orchestrator.cycles == 2
        assert not controller.loop_requested
        assert not controller.working

    @pytest.mark.parametrize("outcome", [CycleOutcome.FAILED, CycleOutcome.TIMED_OUT, CycleOutcome.DECODE_FAILED])
    def test_other_failures_keep_looping(self, outcome):
        """Test failures other than unreachable leave the loop request alone."""
        orchestrator = ScriptedOrchestrator(outcomes=[outcome, outcome])
        controller = _controller(orchestrator)
        orchestrator.on_cycle = lambda n: controller.stop_loop() if n == 3 else None

        controller.start_loop()
        assert controller.wait_idle(WAIT)

        assert orchestrator.cycles == 3

    def test_pacing_between_cycles(self):
        """Test the pacing delay is applied between looped cycles."""
        sleeps = []
        orchestrator = ScriptedOrchestrator()
        controller = RunController(orchestrator, pacing=0.2, sleep=sleeps.append)
        orchestrator.on_cycle = lambda n: controller.stop_loop() if n == 3 else None

        controller.start_loop()
        assert controller.wait_idle(WAIT)

        assert sleeps == [0.2, 0.2]

    def test_pacing_defaults_to_settings(self):
        """Test the pacing delay comes from settings."""
        controller = RunController(ScriptedOrchestrator())

        assert controller.pacing == 0.2


@pytest.mark.unit
class TestControllerWithServer:
    """Controller driving a real orchestrator against the fake server."""

    @pytest.mark.parametrize("path", ["/upload/image", "/prompt", "/history/pid1", "/view"])
    def test_refusal_clears_preexisting_loop(self, settings, frame_source, transport, comfy_server,
                                             fake_clock, tmp_path, path):
        """Test connection refusal in any step ends a loop that was already requested."""
        comfy_server.refused_paths.add(path)
        orchestrator = IterationOrchestrator(
            settings, frame_source, transport=transport,
            sleep=fake_clock.sleep, clock=fake_clock, temp_dir=tmp_path / "tmp",
        )
        controller = RunController(orchestrator, pacing=0.0)

        controller.start_loop()
        assert controller.wait_idle(WAIT)

        assert not controller.loop_requested
        assert not controller.working
        assert orchestrator.status.status == "Cannot reach ComfyUI at http://comfy.test:8188"
        assert comfy_server.paths().count("/upload/image") == 1

    @pytest.mark.parametrize("path", ["/upload/image", "/prompt", "/history/pid1", "/view"])
    def test_timeout_keeps_loop_running(self, settings, frame_source, transport, comfy_server,
                                        fake_clock, tmp_path, path):
        """Test a timed-out cycle is followed by another one while looping."""
        comfy_server.timeout_paths.add(path)
        orchestrator = IterationOrchestrator(
            settings, frame_source, transport=transport,
            sleep=fake_clock.sleep, clock=fake_clock, temp_dir=tmp_path / "tmp",
        )
        controller = RunController(orchestrator, pacing=0.0)

        controller.start_loop()
        deadline = time.monotonic() + WAIT
        while comfy_server.paths().count("/upload/image") < 2 and time.monotonic() < deadline:
            time.sleep(0.01)

        assert comfy_server.paths().count("/upload/image") >= 2
        assert controller.loop_requested
        assert orchestrator.status.status != "Cannot reach ComfyUI at http://comfy.test:8188"

        controller.stop_loop()
        assert controller.wait_idle(WAIT)
        assert not controller.working


@pytest.mark.unit
class TestHealthCheck:
    """Tests for RunController.health_check."""

    def test_runs_in_background_without_claiming_worker(self):
        """Test the health check does not touch the run state."""
        orchestrator = ScriptedOrchestrator()
        controller = _controller(orchestrator)

        thread = controller.health_check()
        thread.join(WAIT)

        assert orchestrator.health_checks == 1
        assert not controller.working
        assert orchestrator.status.status == "Server OK: {}"
