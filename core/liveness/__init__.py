from .tracker import LivenessStatus, MotionLivenessTracker

__all__ = ["LivenessStatus", "MotionLivenessTracker"]
