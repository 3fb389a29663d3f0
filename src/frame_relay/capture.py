"""
Frame capture adapters

The relay only needs "give me the current frame". Cameras are read through
OpenCV; when no camera delivers a frame the screen is grabbed instead.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import cv2
import numpy as np
from PIL import ImageGrab

from .exceptions import CaptureError

logger = logging.getLogger(__name__)

CAMERA_PREFIX = "camera:"


class FrameSource(ABC):
    """Something that can hand out the current frame."""

    @abstractmethod
    def current_frame(self) -> Optional[np.ndarray]:
        """Return the current BGR frame, or None if none is available."""
        ...

    def close(self):
        pass


class CameraFrameSource(FrameSource):
    """Frames from an OpenCV video device."""

    def __init__(self, capture: "cv2.VideoCapture", name: str):
        self._capture = capture
        self.name = name

    @staticmethod
    def list_devices(max_index: int = 8) -> List[str]:
        """Probe device indices and return the names of those that open."""
        names = []
        for index in range(max_index):
            capture = cv2.VideoCapture(index)
            try:
                if capture.isOpened():
                    names.append(f"{CAMERA_PREFIX}{index}")
            finally:
                capture.release()
        return names

    @classmethod
    def open(cls, name: str) -> "CameraFrameSource":
        """Open a device by name (``camera:<index>`` or a bare index).

        Raises:
            CaptureError: If the device cannot be opened
        """
        index_text = name[len(CAMERA_PREFIX):] if name.startswith(CAMERA_PREFIX) else name
        try:
            index = int(index_text)
        except ValueError:
            raise CaptureError(f"Unknown camera name: {name}")

        capture = cv2.VideoCapture(index)
        if not capture.isOpened():
            capture.release()
            raise CaptureError(f"Cannot open camera {name}")
        logger.info(f"Opened camera {name}")
        return cls(capture, f"{CAMERA_PREFIX}{index}")

    def current_frame(self) -> Optional[np.ndarray]:
        ok, frame = self._capture.read()
        if not ok or frame is None:
            return None
        return frame

    def close(self):
        self._capture.release()


class ScreenFrameSource(FrameSource):
    """Frames grabbed from the screen."""

    def current_frame(self) -> Optional[np.ndarray]:
        try:
            shot = ImageGrab.grab()
        except Exception as e:
            logger.warning(f"Screen grab failed: {e}")
            return None
        rgb = np.array(shot.convert("RGB"))
        return cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR)


class FallbackFrameSource(FrameSource):
    """Tries the primary source first and falls back when it has nothing."""

    def __init__(self, primary: Optional[FrameSource], fallback: FrameSource):
        self.primary = primary
        self.fallback = fallback

    def current_frame(self) -> Optional[np.ndarray]:
        if self.primary is not None:
            frame = self.primary.current_frame()
            if frame is not None:
                return frame
            logger.debug("Primary source has no frame, using fallback")
        return self.fallback.current_frame()

    def close(self):
        if self.primary is not None:
            self.primary.close()
        self.fallback.close()


def open_default_source(camera_device: int = 0) -> FrameSource:
    """Open the configured camera, falling back to screen capture."""
    try:
        camera = CameraFrameSource.open(f"{CAMERA_PREFIX}{camera_device}")
    except CaptureError as e:
        logger.warning(f"{e}; capturing the screen instead")
        camera = None
    return FallbackFrameSource(camera, ScreenFrameSource())


def save_frame_now(frame: np.ndarray, directory: Path) -> Path:
    """Write ``frame`` as a PNG with a timestamp-derived name and return its path.

    Raises:
        CaptureError: If the image could not be written
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    stem = f"capture_{datetime.now().strftime('%Y%m%d_%H%M%S_%f')}"
    path = directory / f"{stem}.png"
    counter = 1
    while path.exists():
        path = directory / f"{stem}_{counter}.png"
        counter += 1
    if not cv2.imwrite(str(path), frame):
        raise CaptureError(f"Could not write frame to {path}")
    return path
