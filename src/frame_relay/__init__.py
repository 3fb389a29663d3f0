"""
frame_relay
===========
Captures a still frame, sends it through a ComfyUI-compatible job service
and brings the generated image back, once or in a loop.
"""
from .config import RelaySettings, get_settings
from .controller import RunController
from .orchestrator import CycleOutcome, CycleReport, IterationOrchestrator
from .run_state import RunPhase, RunState
from .status import StatusBoard

__version__ = "0.1.0"

__all__ = [
    "RelaySettings",
    "get_settings",
    "RunController",
    "IterationOrchestrator",
    "CycleOutcome",
    "CycleReport",
    "RunPhase",
    "RunState",
    "StatusBoard",
]
