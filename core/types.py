"""Shared value types for the face-scan attendance pipeline."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, NamedTuple, Optional

import numpy as np

DESCRIPTOR_SIZE = 128
UNKNOWN_LABEL = "unknown"


def as_descriptor(values: Any) -> np.ndarray:
    """Return a read-only float32 copy of ``values`` shaped ``(DESCRIPTOR_SIZE,)``."""
    vec = np.array(values, dtype=np.float32).reshape(-1)
    if vec.shape[0] != DESCRIPTOR_SIZE:
        raise ValueError(
            f"Descriptor must have {DESCRIPTOR_SIZE} values, got {vec.shape[0]}"
        )
    if not np.all(np.isfinite(vec)):
        raise ValueError("Descriptor contains non-finite values")
    vec.flags.writeable = False
    return vec


class PositionSample(NamedTuple):
    x: float
    y: float


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> PositionSample:
        return PositionSample(self.x + self.width / 2.0, self.y + self.height / 2.0)


@dataclass(frozen=True, eq=False)
class FrameObservation:
    """One detected face for the current tick."""

    box: Rect
    descriptor: np.ndarray

    @property
    def position(self) -> PositionSample:
        return self.box.center


@dataclass(frozen=True, eq=False)
class EnrolledIdentity:
    label: str
    descriptor: np.ndarray
    student_id: Optional[str] = None
    record_id: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "descriptor", as_descriptor(self.descriptor))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.record_id,
            "nama": self.label,
            "nim": self.student_id,
        }


@dataclass(frozen=True)
class MatchResult:
    label: str
    distance: float
    identity: Optional[EnrolledIdentity] = field(default=None, compare=False)

    @classmethod
    def unknown(cls, distance: float = math.inf) -> "MatchResult":
        return cls(label=UNKNOWN_LABEL, distance=float(distance))

    @property
    def is_known(self) -> bool:
        return self.identity is not None


@dataclass
class AttendanceSession:
    committed: bool = False
    identity: Optional[EnrolledIdentity] = None
    attempts: int = 0
    committed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "committed": self.committed,
            "identity": self.identity.to_dict() if self.identity else None,
            "attempts": self.attempts,
            "committed_at": self.committed_at.isoformat() if self.committed_at else None,
        }
