"""
Artifact Store Client

Uploads captured frames to the service's input folder and fetches produced
images back through ``/view``.
"""
import logging
import mimetypes
import os
import tempfile
from pathlib import Path
from typing import Optional
from urllib.parse import quote

import cv2
import numpy as np
from PIL import Image

from .config import RelaySettings
from .exceptions import UploadRejected
from .models import OutputDescriptor
from .transport import Transport

logger = logging.getLogger(__name__)

RESULT_TEMP_STEM = "frame_relay_result"

_TEMP_EXTENSIONS = {
    "png": ".png",
    "jpg": ".jpg",
    "jpeg": ".jpg",
    "gif": ".gif",
    "bmp": ".bmp",
    "tif": ".tif",
    "tiff": ".tif",
}


def temp_suffix_for(filename_hint: str) -> str:
    """Pick the temp file extension matching ``filename_hint`` (``.png`` if unknown)."""
    ext = os.path.splitext(filename_hint or "")[1].lstrip(".").lower()
    return _TEMP_EXTENSIONS.get(ext, ".png")


def decode_image(path: Path) -> Optional[np.ndarray]:
    """Decode an image file into a BGR array, or None if it is unusable."""
    try:
        image = cv2.imread(str(path), cv2.IMREAD_COLOR)
        if image is not None:
            return image

        # OpenCV has no GIF reader
        with Image.open(path) as pil_image:
            rgb = np.array(pil_image.convert("RGB"))
        return cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR)
    except Exception as e:
        logger.warning(f"Could not decode {path}: {e}")
        return None


class ArtifactStoreClient:
    """Moves images to and from the service."""

    def __init__(
        self,
        transport: Transport,
        settings: RelaySettings,
        temp_dir: Optional[Path] = None,
    ):
        """Initialize client.

        Args:
            transport: Shared HTTP transport
            settings: Relay settings (base URL and timeouts)
            temp_dir: Where downloaded results are written (system temp if None)
        """
        self.transport = transport
        self.settings = settings
        self.temp_dir = Path(temp_dir or tempfile.gettempdir())

    def upload(self, local_path: Path) -> str:
        """Upload a local image and return the name the service assigned it.

        The response is parsed permissively: ``name`` is preferred, then the
        first entry of ``files``; if neither is readable the local base name
        is used, since the upload itself went through.

        Raises:
            UploadRejected: If the service answers with a non-2xx status
        """
        local_path = Path(local_path)
        content_type = mimetypes.guess_type(local_path.name)[0] or "image/png"

        with open(local_path, "rb") as f:
            response = self.transport.request(
                "POST",
                f"{self.settings.base_url}/upload/image",
                files={"image": (local_path.name, f, content_type)},
                connect_timeout=self.settings.connect_timeout,
                read_timeout=self.settings.upload_read_timeout,
            )

        if not response.ok:
            logger.error(f"Upload of {local_path.name} failed (HTTP {response.status_code}): {response.text}")
            raise UploadRejected(response.status_code, response.text)

        name = self._parse_upload_name(response)
        if name is None:
            logger.warning(f"Upload response had no name, using {local_path.name}: {response.text}")
            return local_path.name

        logger.info(f"Uploaded {local_path.name} as {name}")
        return name

    @staticmethod
    def _parse_upload_name(response) -> Optional[str]:
        try:
            data = response.json()
        except ValueError:
            return None
        if not isinstance(data, dict):
            return None

        name = data.get("name")
        if isinstance(name, str) and name:
            return name

        files = data.get("files")
        if isinstance(files, list) and files and isinstance(files[0], str) and files[0]:
            return files[0]
        return None

    def view_url(self, descriptor: OutputDescriptor) -> str:
        """Build the ``/view`` URL for a produced image, every component percent-encoded."""
        ref = descriptor.to_ref()
        return (
            f"{self.settings.base_url}/view"
            f"?filename={quote(ref.name, safe='')}"
            f"&subfolder={quote(ref.subfolder or '', safe='')}"
            f"&type={quote(ref.kind or 'output', safe='')}"
        )

    def download(self, url: str, filename_hint: str) -> Optional[np.ndarray]:
        """Download and decode a produced image.

        Args:
            url: Full ``/view`` URL
            filename_hint: Original file name, used to pick the temp extension

        Returns:
            The decoded BGR image, or None if the service did not return it
            or it could not be decoded
        """
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        dest = self.temp_dir / f"{RESULT_TEMP_STEM}{temp_suffix_for(filename_hint)}"
        response = self.transport.download_to(
            url,
            dest,
            headers={"Accept": "image/*", "Cache-Control": "no-cache", "Pragma": "no-cache"},
            connect_timeout=self.settings.connect_timeout,
            read_timeout=self.settings.download_read_timeout,
        )

        if response.status_code != 200:
            logger.warning(f"Download of {filename_hint} failed (HTTP {response.status_code}): {response.text}")
            return None

        image = decode_image(dest)
        if image is None:
            logger.warning(f"Downloaded {filename_hint} but it is not a readable image")
        return image
