"""Motion-based liveness heuristic.

A face counts as live once enough frames have been observed and the face
centre has travelled far enough across the recent window. Distance is the
path length through the window, so back-and-forth jitter adds up instead of
cancelling out.

This is a weak signal: a photo panned in front of the camera satisfies it.
It exists to filter out a photo held perfectly still, nothing more.
"""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, Sequence, Union

import numpy as np

from core.types import PositionSample

PositionLike = Union[PositionSample, Sequence[float]]


@dataclass(frozen=True)
class LivenessStatus:
    verified: bool
    frame_count: int
    movement: float
    progress: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "verified": self.verified,
            "frame_count": self.frame_count,
            "movement": self.movement,
            "progress": self.progress,
        }


class MotionLivenessTracker:
    def __init__(
        self,
        movement_threshold: float = 5.0,
        frame_threshold: int = 15,
        window_capacity: int = 30,
    ) -> None:
        if movement_threshold < 0:
            raise ValueError("movement_threshold must be >= 0")
        if frame_threshold < 1:
            raise ValueError("frame_threshold must be >= 1")
        if window_capacity < 2:
            raise ValueError("window_capacity must be >= 2")
        self.movement_threshold = float(movement_threshold)
        self.frame_threshold = int(frame_threshold)
        self.window_capacity = int(window_capacity)

        self._samples: Deque[PositionSample] = deque(maxlen=self.window_capacity)
        self._frame_count = 0
        self._verified = False

    @property
    def verified(self) -> bool:
        return self._verified

    @property
    def frame_count(self) -> int:
        return self._frame_count

    @property
    def samples(self) -> list:
        return list(self._samples)

    def update(self, position: PositionLike) -> bool:
        """Record one face position; True only on the tick liveness is first reached."""
        x, y = position
        self._samples.append(PositionSample(float(x), float(y)))
        self._frame_count += 1

        if self._verified:
            return False
        if self._frame_count < self.frame_threshold:
            return False
        if self.movement() <= self.movement_threshold:
            return False

        self._verified = True
        return True

    def reset(self) -> None:
        self._samples.clear()
        self._frame_count = 0
        self._verified = False

    def movement(self) -> float:
        if len(self._samples) < 2:
            return 0.0
        points = np.asarray(self._samples, dtype=np.float64)
        steps = np.diff(points, axis=0)
        return float(np.hypot(steps[:, 0], steps[:, 1]).sum())

    def progress(self) -> float:
        return min(self._frame_count / self.frame_threshold, 1.0)

    def status(self) -> LivenessStatus:
        return LivenessStatus(
            verified=self._verified,
            frame_count=self._frame_count,
            movement=self.movement(),
            progress=self.progress(),
        )
