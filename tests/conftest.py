"""
Shared fixtures for all tests.

Provides sample frames, a fake clock, and an in-process fake of the ComfyUI
REST surface served through ``httpx.MockTransport``.
"""
import json
import sys
import threading
from io import BytesIO
from pathlib import Path

import httpx
import numpy as np
import pytest
from PIL import Image

# Add src to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from frame_relay.capture import FrameSource
from frame_relay.config import RelaySettings
from frame_relay.orchestrator import CycleOutcome, CycleReport
from frame_relay.status import StatusBoard
from frame_relay.transport import Transport


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without network or devices")


# =============================================================================
# Image Fixtures
# =============================================================================

@pytest.fixture(scope="session")
def sample_frame():
    """Generate a small random BGR frame."""
    np.random.seed(42)
    return np.random.randint(0, 255, (48, 64, 3), dtype=np.uint8)


@pytest.fixture(scope="session")
def png_bytes(sample_frame):
    """Encode the sample frame as PNG bytes."""
    buffer = BytesIO()
    Image.fromarray(sample_frame[:, :, ::-1]).save(buffer, format="PNG")
    return buffer.getvalue()


class StaticFrameSource(FrameSource):
    """Frame source returning a fixed frame (or None)."""

    def __init__(self, frame):
        self.frame = frame

    def current_frame(self):
        return self.frame


@pytest.fixture
def frame_source(sample_frame):
    return StaticFrameSource(sample_frame)


# =============================================================================
# Clock Fixtures
# =============================================================================

class FakeClock:
    """Monotonic clock advanced only by its own sleep()."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


# =============================================================================
# Fake ComfyUI server
# =============================================================================

class FakeComfyServer:
    """Scriptable stand-in for the ComfyUI endpoints the relay uses."""

    def __init__(self, png: bytes):
        self.requests = []
        self.submitted = []
        self.refused_paths = set()
        self.timeout_paths = set()

        self.upload_status = 200
        self.upload_body = {"name": "frame123.png", "subfolder": "", "type": "input"}

        self.prompt_status = 200
        self.prompt_body = {"prompt_id": "pid1", "number": 1, "node_errors": {}}

        self.history_calls = 0
        self.ready_after = 0
        self.output = {"filename": "out.png", "subfolder": "", "type": "output"}

        self.view_status = 200
        self.view_body = png

        self.queue_body = '{"exec_info": {"queue_remaining": 0}}'

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path in self.refused_paths:
            raise httpx.ConnectError("[Errno 111] Connection refused", request=request)

        if path in self.timeout_paths:
            raise httpx.ReadTimeout("timed out", request=request)

        if path == "/upload/image":
            return self._json(self.upload_status, self.upload_body)

        if path == "/prompt":
            self.submitted.append(json.loads(request.content))
            return self._json(self.prompt_status, self.prompt_body)

        if path.startswith("/history/"):
            self.history_calls += 1
            job_id = path.rsplit("/", 1)[-1]
            if self.ready_after is None or self.history_calls <= self.ready_after:
                return httpx.Response(200, json={})
            return httpx.Response(200, json={
                job_id: {"outputs": {"9": {"images": [self.output]}}}
            })

        if path == "/view":
            return httpx.Response(self.view_status, content=self.view_body)

        if path == "/queue/status":
            return self._json(200, self.queue_body)

        return httpx.Response(404, text="Not Found")

    @staticmethod
    def _json(status, body):
        if isinstance(body, (dict, list)):
            return httpx.Response(status, json=body)
        return httpx.Response(status, text=body)

    def paths(self):
        return [r.url.path for r in self.requests]


@pytest.fixture
def comfy_server(png_bytes):
    return FakeComfyServer(png_bytes)


@pytest.fixture
def transport(comfy_server):
    client = httpx.Client(transport=httpx.MockTransport(comfy_server.handler))
    t = Transport(client)
    yield t
    t.close()


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at the fake server with a short poll timeout."""
    return RelaySettings(
        server_url="http://comfy.test:8188/",
        capture_dir=str(tmp_path / "captures"),
        poll_timeout=3.0,
    )


# =============================================================================
# Controller Fixtures
# =============================================================================

class ScriptedOrchestrator:
    """Orchestrator stand-in that counts cycles and can block on a gate."""

    def __init__(self, outcomes=None, gate=None):
        self.settings = RelaySettings()
        self.status = StatusBoard()
        self.outcomes = list(outcomes or [])
        self.gate = gate
        self.on_cycle = None
        self.started = threading.Event()
        self.cycles = 0
        self.active = 0
        self.max_active = 0
        self.health_checks = 0
        self._lock = threading.Lock()

    def run_cycle(self):
        with self._lock:
            self.cycles += 1
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            n = self.cycles
        self.started.set()
        try:
            if self.gate is not None:
                self.gate.wait(5)
            if self.on_cycle is not None:
                self.on_cycle(n)
            outcome = self.outcomes[n - 1] if n <= len(self.outcomes) else CycleOutcome.DONE
            return CycleReport(cycle_id=str(n), outcome=outcome)
        finally:
            with self._lock:
                self.active -= 1

    def check_health(self):
        self.health_checks += 1
        self.status.set_status("Server OK: {}")
        return "Server OK: {}"


@pytest.fixture
def scripted_orchestrator():
    return ScriptedOrchestrator()
