"""Attendance decision pipeline: coordinator, feedback, stores and tick loop."""

from .coordinator import AttendanceCoordinator, ScanState
from .feedback import (
    BroadcastFeedbackSink,
    BroadcastNavigator,
    CompositeFeedbackSink,
    FeedbackEvent,
    FeedbackKind,
    LoggingFeedbackSink,
    render_feedback,
)
from .scan_loop import ScanLoop
from .stores import (
    AttendanceStoreError,
    DatabaseAttendanceStore,
    HttpAttendanceStore,
)

__all__ = [
    "AttendanceCoordinator",
    "ScanState",
    "BroadcastFeedbackSink",
    "BroadcastNavigator",
    "CompositeFeedbackSink",
    "FeedbackEvent",
    "FeedbackKind",
    "LoggingFeedbackSink",
    "render_feedback",
    "ScanLoop",
    "AttendanceStoreError",
    "DatabaseAttendanceStore",
    "HttpAttendanceStore",
]
