"""
Exception hierarchy for the frame relay.

Every failure raised inside a cycle is caught at the cycle boundary by the
orchestrator and turned into a status line; nothing here is expected to
reach the operator as a traceback.
"""
from typing import Optional


class RelayError(Exception):
    """Base class for all frame relay errors."""
    pass


class TransportError(RelayError):
    """An HTTP call failed before a response was received."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class TransportUnreachable(TransportError):
    """The service refused the connection or the host could not be reached."""
    pass


class TransportTimeout(TransportError):
    """A connect or read timeout elapsed."""
    pass


class MalformedResponse(RelayError):
    """The service answered, but a required field was missing or unreadable."""

    def __init__(self, message: str, body: str = ""):
        super().__init__(message)
        self.body = body


class UploadRejected(RelayError):
    """The upload endpoint answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str = ""):
        super().__init__(f"Upload failed (HTTP {status_code}): {body}")
        self.status_code = status_code
        self.body = body


class CaptureError(RelayError):
    """No frame could be acquired or persisted."""
    pass
