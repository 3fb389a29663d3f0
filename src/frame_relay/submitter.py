"""
Job Submitter

POSTs a job document to ``/prompt`` and returns the job id.
"""
import logging

from .config import RelaySettings
from .exceptions import MalformedResponse
from .job_document import JobDocument
from .transport import Transport

logger = logging.getLogger(__name__)


class JobSubmitter:
    """Queues job documents on the service."""

    def __init__(self, transport: Transport, settings: RelaySettings):
        self.transport = transport
        self.settings = settings

    def submit(self, document: JobDocument) -> str:
        """Submit a document and return its job id.

        Raises:
            MalformedResponse: If the response carries no ``prompt_id``
        """
        response = self.transport.request(
            "POST",
            f"{self.settings.base_url}/prompt",
            json=document.to_payload(),
            connect_timeout=self.settings.connect_timeout,
            read_timeout=self.settings.submit_read_timeout,
        )

        raw = response.text
        try:
            data = response.json()
        except ValueError:
            data = None

        prompt_id = data.get("prompt_id") if isinstance(data, dict) else None
        if not isinstance(prompt_id, str) or not prompt_id:
            logger.error(f"Submission rejected (HTTP {response.status_code}): {raw}")
            raise MalformedResponse(f"Bad submission response: {raw}", body=raw)

        logger.info(f"Queued job {prompt_id}")
        return prompt_id
