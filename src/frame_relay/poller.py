"""
Job Poller

Queries ``/history/{job_id}`` until the designated output node reports an
image or the overall timeout elapses. A timeout is an ordinary outcome and
comes back as ``None``; transport failures propagate to the caller.
"""
import logging
import time
from typing import Any, Callable, Optional

from tenacity import Retrying, retry_if_result, wait_fixed

from .config import RelaySettings
from .models import OutputDescriptor
from .transport import Transport

logger = logging.getLogger(__name__)


def find_output(history: Any, job_id: str, output_key: str) -> Optional[OutputDescriptor]:
    """Extract the first image descriptor of ``output_key`` from a history payload."""
    if not isinstance(history, dict):
        return None
    entry = history.get(job_id)
    if not isinstance(entry, dict):
        return None
    outputs = entry.get("outputs")
    if not isinstance(outputs, dict):
        return None
    node = outputs.get(output_key)
    if not isinstance(node, dict):
        return None
    images = node.get("images")
    if not isinstance(images, list) or not images or not isinstance(images[0], dict):
        return None
    filename = images[0].get("filename")
    if not isinstance(filename, str) or not filename:
        return None
    return OutputDescriptor.from_entry(images[0])


class JobPoller:
    """Waits for a job's designated output."""

    def __init__(
        self,
        transport: Transport,
        settings: RelaySettings,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.transport = transport
        self.settings = settings
        self._sleep = sleep
        self._clock = clock

    def poll(
        self,
        job_id: str,
        timeout: Optional[float] = None,
        output_key: Optional[str] = None,
    ) -> Optional[OutputDescriptor]:
        """Poll until the output appears or ``timeout`` seconds have passed.

        Args:
            job_id: Id returned by the submitter
            timeout: Overall wait (settings.poll_timeout if None)
            output_key: Node id to watch (settings.output_node if None)

        Returns:
            The first image descriptor of the output node, or None on timeout
        """
        timeout = self.settings.poll_timeout if timeout is None else timeout
        output_key = self.settings.output_node if output_key is None else output_key
        if timeout <= 0:
            logger.warning(f"Job {job_id} not polled: timeout is {timeout}s")
            return None
        started = self._clock()

        def _elapsed(retry_state) -> bool:
            return self._clock() - started >= timeout

        retrying = Retrying(
            stop=_elapsed,
            wait=wait_fixed(self.settings.poll_interval),
            retry=retry_if_result(lambda result: result is None),
            retry_error_callback=lambda retry_state: None,
            sleep=self._sleep,
        )
        descriptor = retrying(self._check_once, job_id, output_key)

        if descriptor is None:
            logger.warning(f"Job {job_id} produced no output on node {output_key} within {timeout:.0f}s")
        else:
            logger.info(f"Job {job_id} finished: {descriptor.filename}")
        return descriptor

    def _check_once(self, job_id: str, output_key: str) -> Optional[OutputDescriptor]:
        response = self.transport.request(
            "GET",
            f"{self.settings.base_url}/history/{job_id}",
            connect_timeout=self.settings.connect_timeout,
            read_timeout=self.settings.poll_read_timeout,
        )
        if response.status_code != 200:
            logger.debug(f"History for {job_id} returned HTTP {response.status_code}")
            return None
        try:
            history = response.json()
        except ValueError:
            logger.debug(f"History for {job_id} is not JSON")
            return None
        return find_output(history, job_id, output_key)
