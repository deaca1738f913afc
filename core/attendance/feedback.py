"""Feedback events emitted by the coordinator and their display rendering."""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

from core.types import EnrolledIdentity


class FeedbackKind(str, enum.Enum):
    WAITING = "waiting"
    VERIFYING = "verifying"
    VERIFIED = "verified"
    UNRECOGNIZED = "unrecognized"
    SUBMITTING = "submitting"
    COMMITTED = "committed"
    ERROR = "error"


@dataclass(frozen=True)
class FeedbackEvent:
    kind: FeedbackKind
    progress: Optional[float] = None
    label: Optional[str] = None
    countdown: Optional[int] = None
    message: Optional[str] = None
    fatal: bool = False

    @classmethod
    def waiting(cls) -> "FeedbackEvent":
        return cls(FeedbackKind.WAITING)

    @classmethod
    def verifying(cls, progress: float) -> "FeedbackEvent":
        return cls(FeedbackKind.VERIFYING, progress=round(float(progress), 4))

    @classmethod
    def verified(cls) -> "FeedbackEvent":
        return cls(FeedbackKind.VERIFIED)

    @classmethod
    def unrecognized(cls) -> "FeedbackEvent":
        return cls(FeedbackKind.UNRECOGNIZED)

    @classmethod
    def submitting(cls, label: str) -> "FeedbackEvent":
        return cls(FeedbackKind.SUBMITTING, label=label)

    @classmethod
    def committed(cls, label: str, countdown: int) -> "FeedbackEvent":
        return cls(FeedbackKind.COMMITTED, label=label, countdown=int(countdown))

    @classmethod
    def error(cls, message: str, fatal: bool = False) -> "FeedbackEvent":
        return cls(FeedbackKind.ERROR, message=message, fatal=fatal)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"kind": self.kind.value}
        for key in ("progress", "label", "countdown", "message"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        if self.kind is FeedbackKind.ERROR:
            payload["fatal"] = self.fatal
        return payload


class FeedbackSink(Protocol):
    def emit(self, event: FeedbackEvent) -> None:
        ...


@dataclass(frozen=True)
class RenderDescription:
    text: str
    tone: str
    progress: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "tone": self.tone, "progress": self.progress}


def render_feedback(event: FeedbackEvent) -> RenderDescription:
    """Map a feedback event to what the status box should show."""
    kind = event.kind
    if kind is FeedbackKind.WAITING:
        return RenderDescription("Point your face at the camera...", "info")
    if kind is FeedbackKind.VERIFYING:
        percent = int(round((event.progress or 0.0) * 100))
        return RenderDescription(
            f"Checking liveness, move your head slightly ({percent}%)",
            "info",
            progress=event.progress,
        )
    if kind is FeedbackKind.VERIFIED:
        return RenderDescription("Liveness confirmed", "success", progress=1.0)
    if kind is FeedbackKind.UNRECOGNIZED:
        return RenderDescription("Face not recognized, please register first", "error")
    if kind is FeedbackKind.SUBMITTING:
        return RenderDescription(f"{event.label} recognized, recording attendance...", "info")
    if kind is FeedbackKind.COMMITTED:
        return RenderDescription(
            f"{event.label} - attendance recorded! Redirecting in {event.countdown}...",
            "success",
        )
    prefix = "Scanner stopped" if event.fatal else "Error"
    return RenderDescription(f"{prefix}: {event.message}", "error")


class LoggingFeedbackSink:
    """Writes rendered feedback to a logger (console kiosk)."""

    _LEVELS = {"info": logging.INFO, "success": logging.INFO, "error": logging.WARNING}

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or logging.getLogger("face_recognition")

    def emit(self, event: FeedbackEvent) -> None:
        view = render_feedback(event)
        self._logger.log(self._LEVELS.get(view.tone, logging.INFO), "[Scan] %s", view.text)


class BroadcastFeedbackSink:
    """Publishes feedback as ``scan_feedback`` events through an SSE broadcaster."""

    def __init__(self, broadcaster: Any) -> None:
        self._broadcaster = broadcaster

    def emit(self, event: FeedbackEvent) -> None:
        payload = event.to_dict()
        payload["render"] = render_feedback(event).to_dict()
        self._broadcaster.broadcast_event({"type": "scan_feedback", "data": payload})


class CompositeFeedbackSink:
    def __init__(self, sinks: Iterable[FeedbackSink]) -> None:
        self._sinks: List[FeedbackSink] = list(sinks)

    def emit(self, event: FeedbackEvent) -> None:
        for sink in self._sinks:
            sink.emit(event)


Navigator = Callable[[EnrolledIdentity], None]


class BroadcastNavigator:
    """Tells connected pages to move on to the attendee's status page."""

    def __init__(self, broadcaster: Any, url_template: str = "/status/{nim}") -> None:
        self._broadcaster = broadcaster
        self._url_template = url_template

    def __call__(self, identity: EnrolledIdentity) -> None:
        url = self._url_template.format(nim=identity.student_id or identity.label)
        self._broadcaster.broadcast_event(
            {"type": "navigate", "data": {"url": url, "nama": identity.label, "nim": identity.student_id}}
        )
