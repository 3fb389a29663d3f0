"""
HTTP Transport

Thin synchronous wrapper over ``httpx.Client`` used by every service call.
Each call carries its own connect/read timeouts. Non-2xx responses are
returned to the caller untouched so error bodies can be logged; only
failures that produce no response at all are raised, classified as
unreachable, timeout or generic transport errors.
"""
import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from .exceptions import TransportError, TransportTimeout, TransportUnreachable

logger = logging.getLogger(__name__)


@dataclass
class TransportResponse:
    """Status code and raw body of a completed HTTP exchange."""
    status_code: int
    content: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.content)


class Transport:
    """Issues HTTP requests with per-call timeouts."""

    def __init__(self, client: Optional[httpx.Client] = None):
        """Initialize transport.

        Args:
            client: Preconfigured httpx client (a default one is created if None)
        """
        self._client = client or httpx.Client()

    def close(self):
        self._client.close()

    def request(
        self,
        method: str,
        url: str,
        *,
        connect_timeout: float,
        read_timeout: float,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Any] = None,
        files: Optional[Dict[str, Any]] = None,
    ) -> TransportResponse:
        """Send a request and read the whole response body.

        Args:
            method: HTTP method
            url: Absolute URL
            connect_timeout: Seconds allowed to establish the connection
            read_timeout: Seconds allowed between received bytes
            headers: Extra request headers
            params: Query parameters
            json: Body serialized as JSON
            files: Multipart file parts, as accepted by httpx

        Returns:
            TransportResponse with the status code and body

        Raises:
            TransportUnreachable: Connection refused or host unreachable
            TransportTimeout: Connect or read timeout
            TransportError: Any other failure before a response arrived
        """
        logger.debug(f"{method} {url}")
        timeout = httpx.Timeout(read_timeout, connect=connect_timeout)
        with self._translate_errors(url):
            response = self._client.request(
                method,
                url,
                headers=headers,
                params=params,
                json=json,
                files=files,
                timeout=timeout,
            )
            return TransportResponse(response.status_code, response.content)

    def download_to(
        self,
        url: str,
        dest: Path,
        *,
        connect_timeout: float,
        read_timeout: float,
        headers: Optional[Dict[str, str]] = None,
    ) -> TransportResponse:
        """Stream a binary GET response into ``dest``.

        The file is only written for HTTP 200. For any other status the body
        is read into the returned response instead, for diagnostics.
        """
        logger.debug(f"GET {url} -> {dest}")
        timeout = httpx.Timeout(read_timeout, connect=connect_timeout)
        with self._translate_errors(url):
            with self._client.stream("GET", url, headers=headers, timeout=timeout) as response:
                if response.status_code != 200:
                    return TransportResponse(response.status_code, response.read())

                with open(dest, "wb") as f:
                    for chunk in response.iter_bytes():
                        f.write(chunk)
                return TransportResponse(response.status_code)

    @staticmethod
    @contextmanager
    def _translate_errors(url: str):
        """Map httpx exceptions onto the relay's transport errors."""
        try:
            yield
        # ConnectTimeout is a TimeoutException, not a ConnectError
        except httpx.TimeoutException as e:
            raise TransportTimeout(f"Timed out talking to {url}: {e}", url=url) from e
        except httpx.ConnectError as e:
            raise TransportUnreachable(f"Cannot connect to {url}: {e}", url=url) from e
        except httpx.HTTPError as e:
            raise TransportError(f"HTTP error for {url}: {e}", url=url) from e
