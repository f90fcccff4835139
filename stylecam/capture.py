from __future__ import annotations

import logging
import threading
import time
from typing import Optional, Protocol, Tuple

import cv2
import numpy as np

logger = logging.getLogger(__name__)


class FrameSource(Protocol):
    def latest(self) -> Optional[np.ndarray]: ...


class CameraDevice:
    """Reads the webcam on a daemon thread; ``latest()`` returns the newest BGR frame.

    A camera that cannot be opened (no device, no permission) is not fatal:
    ``latest()`` just keeps returning ``None``.
    """

    def __init__(self, index: int = 0, width: int = 640, height: int = 480) -> None:
        self._index = index
        self._width = width
        self._height = height
        self._frame: Optional[np.ndarray] = None
        self._lock = threading.Lock()
        self._running = False
        self._cap: Optional[cv2.VideoCapture] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def opened(self) -> bool:
        return self._cap is not None

    def start(self) -> "CameraDevice":
        cap = cv2.VideoCapture(self._index)
        if not cap.isOpened():
            cap.release()
            logger.warning("Camera %d unavailable; capture will return no frames", self._index)
            return self
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self._width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self._height)
        cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
        self._cap = cap
        self._running = True
        self._thread = threading.Thread(target=self._reader, name="stylecam-camera", daemon=True)
        self._thread.start()
        return self

    def _reader(self) -> None:
        cap = self._cap
        while self._running and cap is not None:
            ok, frame = cap.read()
            if ok and frame is not None:
                with self._lock:
                    self._frame = frame
            else:
                time.sleep(0.05)

    def latest(self) -> Optional[np.ndarray]:
        with self._lock:
            return None if self._frame is None else self._frame.copy()

    def release(self) -> None:
        self._running = False
        if self._thread is not None:
            self._thread.join(timeout=1.0)
            self._thread = None
        if self._cap is not None:
            self._cap.release()
            self._cap = None


class FrameCapturer:
    """Snapshots the newest webcam frame as a mirrored JPEG of the render size."""

    def __init__(
        self,
        device: Optional[FrameSource],
        size: Tuple[int, int] = (300, 225),
        quality: int = 80,
        mirror: bool = True,
    ) -> None:
        self.device = device
        self.size = (int(size[0]), int(size[1]))
        self.quality = int(quality)
        self.mirror = mirror

    def capture(self) -> Optional[bytes]:
        if self.device is None:
            return None
        frame = self.device.latest()
        if frame is None or frame.size == 0:
            return None
        if self.mirror:
            frame = cv2.flip(frame, 1)
        if (frame.shape[1], frame.shape[0]) != self.size:
            frame = cv2.resize(frame, self.size, interpolation=cv2.INTER_AREA)
        ok, buf = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, self.quality])
        if not ok:
            logger.debug("JPEG encode failed; skipping frame")
            return None
        return buf.tobytes()
