import asyncio

from core.attendance.coordinator import AttendanceCoordinator, ScanState
from core.attendance.stores import AttendanceStoreError
from core.config import ScanConfig
from core.liveness import MotionLivenessTracker
from core.recognition import IdentityMatcher

from conftest import FakeStore, make_descriptor, make_identity, observation_at

ALICE = make_identity("Alice", make_descriptor(0.1), student_id="001", record_id=1)
NO_LIVENESS = ScanConfig(liveness_enabled=False)


def build(store, sink, sleep, config=None, navigated=None):
    config = config or ScanConfig()
    return AttendanceCoordinator(
        tracker=MotionLivenessTracker(
            movement_threshold=config.movement_threshold,
            frame_threshold=config.frame_threshold,
            window_capacity=config.window_capacity,
        ),
        matcher=IdentityMatcher(match_threshold=config.match_threshold),
        store=store,
        sink=sink,
        config=config,
        navigator=navigated.append if navigated is not None else None,
        sleep=sleep,
    )


def moving_face(i, descriptor=None):
    return observation_at(100 + (i % 2) * 10, 100, descriptor if descriptor is not None else make_descriptor(0.1))


def test_live_known_face_commits_once_then_counts_down(sink, fake_sleep):
    store = FakeStore([ALICE])
    navigated = []
    coord = build(store, sink, fake_sleep, navigated=navigated)

    async def scenario():
        for i in range(15):
            await coord.process(moving_face(i))
        assert coord.state is ScanState.SUBMITTING
        await coord.wait_until_finished()

    asyncio.run(scenario())

    assert sink.kinds == (
        ["waiting"] + ["verifying"] * 14 + ["verified", "submitting"] + ["committed"] * 3
    )
    assert [e.countdown for e in sink.events[-3:]] == [3, 2, 1]
    assert fake_sleep.calls == [1.0, 1.0, 1.0]
    assert navigated == [ALICE]
    assert store.commits == [ALICE]
    assert coord.state is ScanState.COMMITTED
    assert coord.session.committed is True
    assert coord.session.identity is ALICE
    assert coord.session.attempts == 1


def test_verifying_progress_is_reported_per_frame(sink, fake_sleep):
    coord = build(FakeStore([ALICE]), sink, fake_sleep)

    async def scenario():
        for i in range(3):
            await coord.process(moving_face(i))

    asyncio.run(scenario())

    progress = [e.progress for e in sink.events if e.kind.value == "verifying"]
    assert progress == [round(1 / 15, 4), round(2 / 15, 4), round(3 / 15, 4)]


def test_identities_are_not_loaded_before_liveness(sink, fake_sleep):
    store = FakeStore([ALICE])
    coord = build(store, sink, fake_sleep)

    async def scenario():
        for i in range(10):
            await coord.process(moving_face(i))

    asyncio.run(scenario())

    assert store.fetch_calls == 0
    assert coord.state is ScanState.VERIFYING


def test_concurrent_ticks_never_submit_twice(sink, fake_sleep):
    async def scenario():
        gate = asyncio.Event()
        store = FakeStore([ALICE], commit_gate=gate)
        coord = build(store, sink, fake_sleep, config=NO_LIVENESS)

        for i in range(5):
            await coord.process(moving_face(i))
            await asyncio.sleep(0)
        assert coord.in_flight is True
        assert coord.state is ScanState.SUBMITTING
        assert len(store.commits) == 1

        gate.set()
        await coord.wait_until_finished()
        for i in range(5):
            await coord.process(moving_face(i))
        return coord, store

    coord, store = asyncio.run(scenario())

    assert len(store.commits) == 1
    assert coord.in_flight is False
    assert coord.state is ScanState.COMMITTED
    assert sink.kinds.count("submitting") == 1


def test_commit_failure_releases_latch_and_retries(sink, fake_sleep):
    store = FakeStore([ALICE], results=[False, True])
    coord = build(store, sink, fake_sleep, config=NO_LIVENESS)

    async def scenario():
        await coord.process(moving_face(0))
        await coord.wait_for_commit()
        assert coord.state is ScanState.FAILED
        assert coord.in_flight is False
        await coord.process(moving_face(1))
        await coord.wait_until_finished()

    asyncio.run(scenario())

    assert sink.kinds == [
        "waiting", "verified", "submitting", "error", "submitting",
        "committed", "committed", "committed",
    ]
    assert sink.events[3].fatal is False
    assert len(store.commits) == 2
    assert coord.session.attempts == 2
    assert coord.state is ScanState.COMMITTED


def test_commit_exception_is_reported(sink, fake_sleep):
    store = FakeStore([ALICE], results=[AttendanceStoreError("server down")])
    coord = build(store, sink, fake_sleep, config=NO_LIVENESS)

    async def scenario():
        await coord.process(moving_face(0))
        await coord.wait_for_commit()

    asyncio.run(scenario())

    assert coord.state is ScanState.FAILED
    assert sink.events[-1].message == "Attendance failed: server down"


def test_unknown_face_is_reported_once_and_not_committed(sink, fake_sleep):
    store = FakeStore([make_identity("Alice", make_descriptor(0.0))])
    coord = build(store, sink, fake_sleep, config=NO_LIVENESS)

    async def scenario():
        for i in range(4):
            await coord.process(moving_face(i, make_descriptor(0.5)))

    asyncio.run(scenario())

    assert sink.kinds == ["waiting", "verified", "unrecognized"]
    assert store.commits == []
    assert store.fetch_calls == 1
    assert coord.state is ScanState.VERIFIED
    assert coord.snapshot()["last_match"]["label"] == "unknown"


def test_empty_enrolled_set_is_unrecognized(sink, fake_sleep):
    store = FakeStore([])
    coord = build(store, sink, fake_sleep, config=NO_LIVENESS)

    asyncio.run(coord.process(moving_face(0)))

    assert sink.kinds[-1] == "unrecognized"
    assert store.commits == []


def test_losing_the_face_resets_liveness(sink, fake_sleep):
    coord = build(FakeStore([ALICE]), sink, fake_sleep)

    async def scenario():
        for i in range(5):
            await coord.process(moving_face(i))
        await coord.process(None)

    asyncio.run(scenario())

    assert coord.state is ScanState.OBSERVING
    assert sink.kinds[-1] == "waiting"
    assert coord.snapshot()["liveness"]["frame_count"] == 0


def test_load_failure_emits_error_and_retries_next_tick(sink, fake_sleep):
    store = FakeStore([ALICE], fetch_error=AttendanceStoreError("offline"))
    coord = build(store, sink, fake_sleep, config=NO_LIVENESS)

    async def scenario():
        await coord.process(moving_face(0))
        await coord.process(moving_face(1))
        store.fetch_error = None
        await coord.process(moving_face(2))
        await coord.wait_until_finished()

    asyncio.run(scenario())

    assert store.fetch_calls == 3
    assert sink.kinds[:3] == ["waiting", "verified", "error"]
    assert "offline" in sink.events[2].message
    assert coord.state is ScanState.COMMITTED


def test_halt_is_fatal_and_stops_processing(sink, fake_sleep):
    store = FakeStore([ALICE])
    coord = build(store, sink, fake_sleep, config=NO_LIVENESS)
    coord.start()
    coord.halt("Camera unavailable: no device")

    asyncio.run(coord.process(moving_face(0)))

    assert coord.state is ScanState.HALTED
    assert coord.finished is True
    assert coord.halt_reason == "Camera unavailable: no device"
    assert sink.events[-1].fatal is True
    assert store.fetch_calls == 0


def test_halt_after_commit_is_ignored(sink, fake_sleep):
    coord = build(FakeStore([ALICE]), sink, fake_sleep, config=NO_LIVENESS)

    async def scenario():
        await coord.process(moving_face(0))
        await coord.wait_until_finished()

    asyncio.run(scenario())
    coord.halt("late failure")

    assert coord.state is ScanState.COMMITTED
    assert coord.halt_reason is None


def test_close_cancels_countdown_and_navigation(sink, fake_sleep):
    navigated = []
    coord = build(FakeStore([ALICE]), sink, fake_sleep, config=NO_LIVENESS, navigated=navigated)

    async def scenario():
        await coord.process(moving_face(0))
        await coord.wait_for_commit()
        coord.close()
        await coord.wait_until_finished()

    asyncio.run(scenario())

    assert coord.session.committed is True
    assert navigated == []
    assert "committed" not in sink.kinds


def test_from_config_applies_thresholds(sink):
    config = ScanConfig(frame_threshold=3, countdown_seconds=0)
    navigated = []
    coord = AttendanceCoordinator.from_config(
        config, store=FakeStore([ALICE]), sink=sink, navigator=navigated.append
    )

    async def scenario():
        for i in range(3):
            await coord.process(moving_face(i))
        await coord.wait_until_finished()

    asyncio.run(scenario())

    assert sink.kinds == ["waiting", "verifying", "verifying", "verified", "submitting", "committed"]
    assert sink.events[-1].countdown == 0
    assert navigated == [ALICE]


def test_face_lost_while_submitting_keeps_commit_outcome(sink, fake_sleep):
    async def scenario():
        gate = asyncio.Event()
        store = FakeStore([ALICE], commit_gate=gate)
        coord = build(store, sink, fake_sleep)

        for i in range(15):
            await coord.process(moving_face(i))
        await asyncio.sleep(0)
        assert coord.in_flight is True

        await coord.process(None)
        assert coord.state is ScanState.SUBMITTING
        assert coord.snapshot()["liveness"]["frame_count"] == 0

        gate.set()
        await coord.wait_until_finished()
        return coord, store

    coord, store = asyncio.run(scenario())

    assert coord.state is ScanState.COMMITTED
    assert coord.session.committed is True
    assert "waiting" not in sink.kinds[1:]
    assert len(store.commits) == 1


def test_failed_commit_with_face_lost_ends_in_failed(sink, fake_sleep):
    async def scenario():
        gate = asyncio.Event()
        store = FakeStore([ALICE], results=[False], commit_gate=gate)
        coord = build(store, sink, fake_sleep)

        for i in range(15):
            await coord.process(moving_face(i))
        await asyncio.sleep(0)
        await coord.process(None)
        gate.set()
        await coord.wait_for_commit()
        return coord

    coord = asyncio.run(scenario())

    assert coord.state is ScanState.FAILED
    assert coord.in_flight is False
    assert coord.session.committed is False
    assert sink.kinds[-1] == "error"


def test_retry_after_failure_with_liveness_does_not_repeat_verified(sink, fake_sleep):
    store = FakeStore([ALICE], results=[False, True])
    coord = build(store, sink, fake_sleep)

    async def scenario():
        for i in range(15):
            await coord.process(moving_face(i))
        await coord.wait_for_commit()
        assert coord.state is ScanState.FAILED
        await coord.process(moving_face(15))
        await coord.wait_until_finished()

    asyncio.run(scenario())

    assert sink.kinds == (
        ["waiting"] + ["verifying"] * 14
        + ["verified", "submitting", "error", "submitting"]
        + ["committed"] * 3
    )
    assert coord.session.attempts == 2
    assert coord.state is ScanState.COMMITTED


def test_liveness_regained_during_failed_commit_is_announced(sink, fake_sleep):
    async def scenario():
        gate = asyncio.Event()
        store = FakeStore([ALICE], results=[False, True], commit_gate=gate)
        coord = build(store, sink, fake_sleep)

        for i in range(15):
            await coord.process(moving_face(i))
        await asyncio.sleep(0)
        await coord.process(None)
        for i in range(15):
            await coord.process(moving_face(i))
        assert coord.state is ScanState.SUBMITTING

        gate.set()
        await coord.wait_for_commit()
        assert coord.state is ScanState.FAILED

        await coord.process(moving_face(15))
        await coord.wait_until_finished()
        return coord

    coord = asyncio.run(scenario())

    assert sink.kinds == (
        ["waiting"] + ["verifying"] * 14
        + ["verified", "submitting", "error", "verified", "submitting"]
        + ["committed"] * 3
    )
    assert coord.state is ScanState.COMMITTED
