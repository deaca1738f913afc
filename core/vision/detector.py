"""Face detection + 128-d descriptor extraction."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional, Protocol

import cv2
import numpy as np

from core.types import FrameObservation, Rect


class DetectorUnavailable(RuntimeError):
    """Raised when the detector cannot run at all (missing library or models)."""


class Detector(Protocol):
    def warmup(self) -> None:
        ...

    async def detect_faces(self, frame: np.ndarray) -> List[FrameObservation]:
        ...


class FaceRecognitionDetector:
    """dlib detector and embedder through the ``face_recognition`` package."""

    def __init__(
        self,
        *,
        model: str = "hog",
        upsample: int = 1,
        num_jitters: int = 1,
        scale: float = 1.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if model not in ("hog", "cnn"):
            raise ValueError(f"Unsupported detector model: {model}")
        if not 0 < scale <= 1.0:
            raise ValueError("scale must be in (0, 1]")
        self.model = model
        self.upsample = max(0, int(upsample))
        self.num_jitters = max(1, int(num_jitters))
        self.scale = float(scale)
        self._logger = logger or logging.getLogger(__name__)
        self._fr: Any = None

    def warmup(self) -> None:
        if self._fr is not None:
            return
        try:
            import face_recognition
        # face_recognition calls quit() when face_recognition_models is missing
        except (ImportError, SystemExit) as exc:
            raise DetectorUnavailable(f"face_recognition could not be loaded: {exc}") from exc
        self._fr = face_recognition
        self._logger.info("[Detector] face_recognition ready (model=%s)", self.model)

    async def detect_faces(self, frame: np.ndarray) -> List[FrameObservation]:
        self.warmup()
        return await asyncio.to_thread(self._detect, frame)

    def _detect(self, frame: np.ndarray) -> List[FrameObservation]:
        if frame is None or frame.size == 0:
            return []
        small = frame
        if self.scale < 1.0:
            small = cv2.resize(frame, (0, 0), fx=self.scale, fy=self.scale)
        rgb = cv2.cvtColor(small, cv2.COLOR_BGR2RGB)

        locations = self._fr.face_locations(
            rgb,
            number_of_times_to_upsample=self.upsample,
            model=self.model,
        )
        if not locations:
            return []
        encodings = self._fr.face_encodings(
            rgb,
            known_face_locations=locations,
            num_jitters=self.num_jitters,
        )

        inv = 1.0 / self.scale
        observations: List[FrameObservation] = []
        for (top, right, bottom, left), encoding in zip(locations, encodings):
            box = Rect(
                x=left * inv,
                y=top * inv,
                width=(right - left) * inv,
                height=(bottom - top) * inv,
            )
            observations.append(
                FrameObservation(box=box, descriptor=np.asarray(encoding, dtype=np.float32))
            )
        return observations
