"""Single-face capture for registration."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

import numpy as np

from core.vision.detector import Detector


class FaceCaptureError(RuntimeError):
    """Raised when no usable single face was seen within the attempt budget."""


async def capture_single_descriptor(
    detector: Detector,
    frame_source: Any,
    *,
    attempts: int = 30,
    interval: float = 0.1,
    sleep: Optional[Callable[[float], Any]] = None,
    logger: Optional[logging.Logger] = None,
) -> np.ndarray:
    """Read frames until exactly one face is visible and return its descriptor.

    Frames with no face or with several faces are skipped; the caller owns the
    frame source lifecycle.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")
    log = logger or logging.getLogger(__name__)
    sleep = sleep or asyncio.sleep

    await asyncio.to_thread(detector.warmup)
    reason = "Wajah tidak terdeteksi"
    for attempt in range(1, attempts + 1):
        frame = await asyncio.to_thread(frame_source.read)
        faces = await detector.detect_faces(frame)
        if len(faces) == 1:
            log.info("[Capture] Face captured on attempt %d", attempt)
            return faces[0].descriptor
        if faces:
            reason = f"Terdeteksi {len(faces)} wajah, hanya satu wajah yang diperbolehkan"
            log.debug("[Capture] %d faces in frame, retrying", len(faces))
        if attempt < attempts:
            await sleep(interval)
    raise FaceCaptureError(reason)
