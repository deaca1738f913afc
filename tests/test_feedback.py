import logging

import pytest

from app.models import EventBroadcaster
from core.attendance.feedback import (
    BroadcastFeedbackSink,
    BroadcastNavigator,
    CompositeFeedbackSink,
    FeedbackEvent,
    FeedbackKind,
    LoggingFeedbackSink,
    render_feedback,
)

from conftest import RecordingSink, make_identity


class ListBroadcaster:
    def __init__(self):
        self.events = []

    def broadcast_event(self, event_data):
        self.events.append(event_data)


@pytest.mark.parametrize(
    "event, text, tone",
    [
        (FeedbackEvent.waiting(), "Point your face at the camera...", "info"),
        (FeedbackEvent.verified(), "Liveness confirmed", "success"),
        (FeedbackEvent.unrecognized(), "Face not recognized, please register first", "error"),
        (FeedbackEvent.submitting("Alice"), "Alice recognized, recording attendance...", "info"),
        (
            FeedbackEvent.committed("Alice", 2),
            "Alice - attendance recorded! Redirecting in 2...",
            "success",
        ),
        (FeedbackEvent.error("timeout"), "Error: timeout", "error"),
        (FeedbackEvent.error("no camera", fatal=True), "Scanner stopped: no camera", "error"),
    ],
)
def test_render_feedback(event, text, tone):
    view = render_feedback(event)
    assert view.text == text
    assert view.tone == tone


def test_render_verifying_shows_percent_and_progress():
    view = render_feedback(FeedbackEvent.verifying(7 / 15))

    assert view.text == "Checking liveness, move your head slightly (47%)"
    assert view.progress == pytest.approx(0.4667)


def test_events_compare_by_value():
    assert FeedbackEvent.verifying(0.5) == FeedbackEvent.verifying(0.5)
    assert FeedbackEvent.committed("A", 3) != FeedbackEvent.committed("A", 2)


def test_event_to_dict_omits_empty_fields():
    assert FeedbackEvent.waiting().to_dict() == {"kind": "waiting"}
    assert FeedbackEvent.committed("A", 1).to_dict() == {"kind": "committed", "label": "A", "countdown": 1}
    assert FeedbackEvent.error("x").to_dict() == {"kind": "error", "message": "x", "fatal": False}


def test_logging_sink_writes_rendered_text(caplog):
    caplog.set_level(logging.INFO, logger="face_recognition")

    LoggingFeedbackSink().emit(FeedbackEvent.submitting("Alice"))

    assert "[Scan] Alice recognized, recording attendance..." in caplog.text


def test_broadcast_sink_publishes_scan_feedback():
    broadcaster = ListBroadcaster()

    BroadcastFeedbackSink(broadcaster).emit(FeedbackEvent.verified())

    event = broadcaster.events[0]
    assert event["type"] == "scan_feedback"
    assert event["data"]["kind"] == FeedbackKind.VERIFIED.value
    assert event["data"]["render"]["tone"] == "success"


def test_composite_sink_fans_out():
    first, second = RecordingSink(), RecordingSink()

    CompositeFeedbackSink([first, second]).emit(FeedbackEvent.waiting())

    assert first.kinds == second.kinds == ["waiting"]


def test_broadcast_navigator_points_to_status_page():
    broadcaster = ListBroadcaster()
    navigate = BroadcastNavigator(broadcaster)

    navigate(make_identity("Alice", student_id="20210001"))

    assert broadcaster.events == [
        {"type": "navigate", "data": {"url": "/status/20210001", "nama": "Alice", "nim": "20210001"}}
    ]


def test_broadcast_sink_reaches_sse_clients():
    broadcaster = EventBroadcaster()
    client = broadcaster.add_client()

    BroadcastFeedbackSink(broadcaster).emit(FeedbackEvent.waiting())

    message = client.get_nowait()
    assert message.startswith("event: scan_feedback\n")
    assert '"kind": "waiting"' in message
