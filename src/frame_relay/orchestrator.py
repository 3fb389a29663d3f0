"""
Iteration Orchestrator

Runs one capture -> upload -> submit -> poll -> download cycle against the
service and keeps the shared status board up to date.

Pipeline:
1. Capture a frame and save it locally
2. Upload it to the service's input folder
3. Build the job document around the uploaded name
4. Submit the job
5. Poll the job history for the designated output node
6. Download and decode the produced image

Every failure is caught here and turned into a status line; the caller only
sees a CycleReport.
"""
import logging
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from .artifact_store import ArtifactStoreClient
from .capture import FrameSource, save_frame_now
from .config import RelaySettings
from .cycle_logger import CycleLogger
from .exceptions import CaptureError, TransportUnreachable
from .job_document import JobDocumentBuilder, load_workflow
from .poller import JobPoller
from .status import StatusBoard
from .submitter import JobSubmitter
from .transport import Transport

logger = logging.getLogger(__name__)


class CycleOutcome(str, Enum):
    """Terminal outcome of one cycle"""
    DONE = "done"
    DECODE_FAILED = "decode_failed"
    TIMED_OUT = "timed_out"
    UNREACHABLE = "unreachable"
    FAILED = "failed"


@dataclass
class CycleReport:
    """What happened during one cycle."""
    cycle_id: str
    outcome: CycleOutcome
    job_id: Optional[str] = None
    filename: Optional[str] = None
    error: Optional[str] = None
    processing_time_ms: float = 0.0


class IterationOrchestrator:
    """Composes the service clients into one end-to-end cycle."""

    def __init__(
        self,
        settings: RelaySettings,
        frame_source: Optional[FrameSource],
        status: Optional[StatusBoard] = None,
        transport: Optional[Transport] = None,
        builder: Optional[JobDocumentBuilder] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        temp_dir: Optional[Path] = None,
    ):
        """Initialize orchestrator.

        Args:
            settings: Relay settings
            frame_source: Where frames come from (None for health checks only)
            status: Shared status board (a new one if None)
            transport: HTTP transport (a default httpx-backed one if None)
            builder: Job document builder (from settings.workflow_path if None)
            sleep: Sleep function used between polls
            clock: Monotonic clock used for the poll timeout
            temp_dir: Directory for downloaded results
        """
        self.settings = settings
        self.frame_source = frame_source
        self.status = status or StatusBoard()
        self.transport = transport or Transport()
        self.builder = builder or self._default_builder(settings)

        self.store = ArtifactStoreClient(self.transport, settings, temp_dir=temp_dir)
        self.submitter = JobSubmitter(self.transport, settings)
        self.poller = JobPoller(self.transport, settings, sleep=sleep, clock=clock)

    @staticmethod
    def _default_builder(settings: RelaySettings) -> JobDocumentBuilder:
        template = None
        if settings.workflow_path:
            template = load_workflow(settings.workflow_path, settings.input_node, settings.output_node)
        return JobDocumentBuilder(template, input_path=(settings.input_node, "inputs", "image"))

    def run_cycle(self) -> CycleReport:
        """Run one full cycle. Never raises."""
        report = CycleReport(cycle_id=uuid.uuid4().hex[:8], outcome=CycleOutcome.FAILED)
        log = CycleLogger(report.cycle_id)
        log.info("Cycle started")

        try:
            self._run_steps(report, log)
        except TransportUnreachable as e:
            report.outcome = CycleOutcome.UNREACHABLE
            report.error = str(e)
            log.fail("Service unreachable", e)
            self.status.set_status(f"Cannot reach ComfyUI at {self.settings.base_url}")
        except Exception as e:
            report.outcome = CycleOutcome.FAILED
            report.error = str(e)
            log.fail("Cycle failed", e)
            self.status.set_status(f"Error: {e}")

        report.processing_time_ms = log.elapsed_ms()
        log.info("Cycle finished", {
            "outcome": report.outcome.value,
            "job_id": report.job_id,
            "processing_time_ms": round(report.processing_time_ms, 1),
        })
        return report

    def _run_steps(self, report: CycleReport, log: CycleLogger):
        # Step 1: Capture
        self.status.set_status("Capturing...")
        if self.frame_source is None:
            raise CaptureError("No frame source configured")
        frame = self.frame_source.current_frame()
        if frame is None:
            raise CaptureError("No frame available")
        local_path = save_frame_now(frame, Path(self.settings.capture_dir))
        log.debug("Frame saved", {"path": str(local_path)})

        # Step 2: Upload
        self.status.set_status("Uploading...")
        remote_name = self.store.upload(local_path)

        # Step 3-4: Build and submit
        self.status.set_status("Queuing...")
        document = self.builder.build(remote_name)
        report.job_id = self.submitter.submit(document)
        log.info("Job submitted", {"job_id": report.job_id, "input": remote_name})

        # Step 5: Poll
        self.status.set_status("Generating...")
        descriptor = self.poller.poll(
            report.job_id,
            timeout=self.settings.poll_timeout,
            output_key=self.settings.output_node,
        )
        if descriptor is None:
            report.outcome = CycleOutcome.TIMED_OUT
            log.warning("No result before timeout")
            self.status.set_status("Timed out waiting for result.")
            return

        # Step 6: Download
        report.filename = descriptor.filename
        image = self.store.download(self.store.view_url(descriptor), descriptor.filename)
        if image is None:
            report.outcome = CycleOutcome.DECODE_FAILED
            self.status.set_status("Failed to load result image.")
            return

        self.status.set_result(image, descriptor.filename)
        report.outcome = CycleOutcome.DONE
        self.status.set_status(f"Done: {descriptor.filename}")

    def check_health(self) -> str:
        """Query the service queue and publish the answer as the status line."""
        try:
            response = self.transport.request(
                "GET",
                f"{self.settings.base_url}/queue/status",
                params={"client_id": self.builder.client_id},
                connect_timeout=self.settings.health_timeout,
                read_timeout=self.settings.health_timeout,
            )
        except TransportUnreachable:
            message = f"Cannot reach ComfyUI at {self.settings.base_url}"
        except Exception as e:
            message = f"Health check failed: {e}"
        else:
            if response.status_code == 200:
                message = f"Server OK: {response.text}"
            else:
                message = f"Server responded HTTP {response.status_code}: {response.text}"

        self.status.set_status(message)
        return message
