"""Tunable parameters for the scan pipeline."""
from __future__ import annotations

import os
from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping, Optional


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class ScanConfig:
    # Liveness thresholds are empirical defaults (5 px of path over >= 15 frames).
    movement_threshold: float = 5.0
    frame_threshold: int = 15
    window_capacity: int = 30
    match_threshold: float = 0.6
    tick_interval_ms: int = 100
    liveness_enabled: bool = True
    countdown_seconds: int = 3
    countdown_interval: float = 1.0
    max_consecutive_failures: int = 50

    def __post_init__(self) -> None:
        if self.movement_threshold < 0:
            raise ValueError("movement_threshold must be >= 0")
        if self.frame_threshold < 1:
            raise ValueError("frame_threshold must be >= 1")
        if self.window_capacity < 2:
            raise ValueError("window_capacity must be >= 2")
        if self.match_threshold < 0:
            raise ValueError("match_threshold must be >= 0")
        if self.tick_interval_ms < 1:
            raise ValueError("tick_interval_ms must be >= 1")
        if self.countdown_seconds < 0 or self.countdown_interval < 0:
            raise ValueError("countdown settings must be >= 0")
        if self.max_consecutive_failures < 1:
            raise ValueError("max_consecutive_failures must be >= 1")

    @property
    def tick_interval(self) -> float:
        return self.tick_interval_ms / 1000.0

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ScanConfig":
        """Build a config from ``SCAN_*`` environment variables."""
        env = os.environ if environ is None else environ
        casts = {
            "movement_threshold": float,
            "frame_threshold": int,
            "window_capacity": int,
            "match_threshold": float,
            "tick_interval_ms": int,
            "liveness_enabled": _env_bool,
            "countdown_seconds": int,
            "countdown_interval": float,
            "max_consecutive_failures": int,
        }
        values: Dict[str, Any] = {}
        for name, cast in casts.items():
            raw = env.get(f"SCAN_{name.upper()}")
            if raw is None or raw.strip() == "":
                continue
            values[name] = cast(raw)
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
