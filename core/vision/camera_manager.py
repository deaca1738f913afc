"""OpenCV camera used as the scan loop's frame source."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Optional, Protocol

import cv2
import numpy as np


logger = logging.getLogger(__name__)


class CameraError(RuntimeError):
    """Raised when the camera cannot be opened or read."""


class CaptureProvider(Protocol):
    def open(self, index: int) -> cv2.VideoCapture:
        ...


class OpenCVCaptureProvider:
    def open(self, index: int) -> cv2.VideoCapture:
        capture = cv2.VideoCapture(index)
        if not capture or not capture.isOpened():
            raise CameraError(f"Cannot open camera index {index}")
        return capture


@dataclass(frozen=True)
class CameraConfig:
    index: int = 0
    width: Optional[int] = 640
    height: Optional[int] = 480
    warmup_frames: int = 3
    buffer_size: Optional[int] = 2


class CameraManager:
    """Opens the capture lazily and hands out BGR frames.

    ``read`` is called from a worker thread by the scan loop, so the capture
    handle is guarded by a lock.
    """

    def __init__(self, config: Optional[CameraConfig] = None, provider: Optional[CaptureProvider] = None):
        self.config = config or CameraConfig()
        self.provider = provider or OpenCVCaptureProvider()
        self._capture: Optional[cv2.VideoCapture] = None
        self._lock = threading.Lock()

    def start(self) -> None:
        with self._lock:
            self._ensure_open()

    def _ensure_open(self) -> cv2.VideoCapture:
        capture = self._capture
        if capture is not None and capture.isOpened():
            return capture
        capture = self.provider.open(self.config.index)
        self._configure(capture)
        self._capture = capture
        return capture

    def _configure(self, capture: cv2.VideoCapture) -> None:
        cfg = self.config
        if cfg.width:
            capture.set(cv2.CAP_PROP_FRAME_WIDTH, cfg.width)
        if cfg.height:
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, cfg.height)
        if cfg.buffer_size is not None and hasattr(cv2, "CAP_PROP_BUFFERSIZE"):
            capture.set(cv2.CAP_PROP_BUFFERSIZE, cfg.buffer_size)

        logger.info(
            "[Camera] Ready: %sx%s @ %.2f fps",
            int(capture.get(cv2.CAP_PROP_FRAME_WIDTH)),
            int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            capture.get(cv2.CAP_PROP_FPS) or 0,
        )

        ok = 0
        for _ in range(max(0, cfg.warmup_frames)):
            ret, _frame = capture.read()
            if ret:
                ok += 1
            time.sleep(0.05)
        if cfg.warmup_frames:
            logger.debug("[Camera] Warmup frames ok=%s/%s", ok, cfg.warmup_frames)

    def read(self) -> np.ndarray:
        with self._lock:
            capture = self._ensure_open()
            ret, frame = capture.read()
        if not ret or frame is None:
            raise CameraError("Unable to read frame from camera")
        return frame

    def stop(self) -> None:
        with self._lock:
            capture, self._capture = self._capture, None
        if capture is not None:
            capture.release()
            logger.info("[Camera] Released")
