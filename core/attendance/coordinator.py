"""Attendance state machine driven one detection tick at a time."""
from __future__ import annotations

import asyncio
import enum
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from core.attendance.feedback import FeedbackEvent, FeedbackSink, Navigator
from core.attendance.stores import AttendanceStore
from core.config import ScanConfig
from core.liveness.tracker import MotionLivenessTracker
from core.recognition.matcher import IdentityMatcher
from core.types import AttendanceSession, EnrolledIdentity, FrameObservation, MatchResult

SleepFn = Callable[[float], Any]


class ScanState(str, enum.Enum):
    IDLE = "idle"
    OBSERVING = "observing"
    VERIFYING = "verifying"
    VERIFIED = "verified"
    SUBMITTING = "submitting"
    COMMITTED = "committed"
    FAILED = "failed"
    HALTED = "halted"


TERMINAL_STATES = frozenset({ScanState.COMMITTED, ScanState.HALTED})


class AttendanceCoordinator:
    """Owns liveness, matching and the one-shot attendance commit for a session.

    All mutable scan state (tracker window, enrolled set, submission latch,
    session) belongs to this object and is only touched from the event loop
    that calls :meth:`process`.
    """

    def __init__(
        self,
        *,
        tracker: MotionLivenessTracker,
        matcher: IdentityMatcher,
        store: AttendanceStore,
        sink: FeedbackSink,
        config: Optional[ScanConfig] = None,
        navigator: Optional[Navigator] = None,
        sleep: Optional[SleepFn] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._tracker = tracker
        self._matcher = matcher
        self._store = store
        self._sink = sink
        self._config = config or ScanConfig()
        self._navigator = navigator
        self._sleep = sleep or asyncio.sleep
        self._logger = logger or logging.getLogger(__name__)

        self.session = AttendanceSession()
        self._state = ScanState.IDLE
        self._in_flight = False
        self._verified_announced = False
        self._commit_task: Optional[asyncio.Task] = None
        self._countdown_task: Optional[asyncio.Task] = None
        self._load_lock = asyncio.Lock()
        self._last_event: Optional[FeedbackEvent] = None
        self._last_match: Optional[MatchResult] = None
        self._halt_reason: Optional[str] = None
        self._closed = False
        self._ticks = 0

    @classmethod
    def from_config(
        cls,
        config: ScanConfig,
        *,
        store: AttendanceStore,
        sink: FeedbackSink,
        navigator: Optional[Navigator] = None,
        logger: Optional[logging.Logger] = None,
    ) -> "AttendanceCoordinator":
        return cls(
            tracker=MotionLivenessTracker(
                movement_threshold=config.movement_threshold,
                frame_threshold=config.frame_threshold,
                window_capacity=config.window_capacity,
            ),
            matcher=IdentityMatcher(match_threshold=config.match_threshold, logger=logger),
            store=store,
            sink=sink,
            config=config,
            navigator=navigator,
            logger=logger,
        )

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------
    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def halt_reason(self) -> Optional[str]:
        return self._halt_reason

    @property
    def finished(self) -> bool:
        if self._closed or self._state is ScanState.HALTED:
            return True
        if self._state is ScanState.COMMITTED:
            return self._countdown_task is None or self._countdown_task.done()
        return False

    def snapshot(self) -> Dict[str, Any]:
        last_match = None
        if self._last_match is not None:
            last_match = {"label": self._last_match.label, "distance": self._last_match.distance}
        return {
            "state": self._state.value,
            "session": self.session.to_dict(),
            "in_flight": self._in_flight,
            "liveness": self._tracker.status().to_dict(),
            "liveness_enabled": self._config.liveness_enabled,
            "enrolled": self._matcher.count if self._matcher.is_loaded else None,
            "last_match": last_match,
            "last_event": self._last_event.to_dict() if self._last_event else None,
            "halt_reason": self._halt_reason,
            "ticks": self._ticks,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        if self._state is ScanState.IDLE:
            self._set_state(ScanState.OBSERVING)
            self._emit(FeedbackEvent.waiting())

    def halt(self, message: str) -> None:
        """Enter the terminal error state; no further ticks are processed."""
        if self._state is ScanState.HALTED:
            return
        if self._state is ScanState.COMMITTED:
            self._logger.warning("[Scan] Halt after commit ignored: %s", message)
            return
        self._halt_reason = message
        self._set_state(ScanState.HALTED)
        self._logger.error("[Scan] Halted: %s", message)
        self._emit(FeedbackEvent.error(message, fatal=True))

    def close(self) -> None:
        """Tear down. An in-flight commit may still finish but emits nothing."""
        self._closed = True
        if self._countdown_task is not None and not self._countdown_task.done():
            self._countdown_task.cancel()

    async def wait_for_commit(self) -> None:
        if self._commit_task is not None:
            await self._commit_task

    async def wait_until_finished(self) -> None:
        await self.wait_for_commit()
        if self._countdown_task is not None:
            try:
                await self._countdown_task
            except asyncio.CancelledError:
                pass

    # ------------------------------------------------------------------
    # Tick handling
    # ------------------------------------------------------------------
    async def process(self, observation: Optional[FrameObservation]) -> ScanState:
        """Advance the state machine with this tick's face (or ``None``)."""
        self._ticks += 1
        if self._closed or self._state in TERMINAL_STATES:
            return self._state
        if self._state is ScanState.IDLE:
            self.start()

        if observation is None:
            self._tracker.reset()
            self._verified_announced = False
            if not self._in_flight:
                self._set_state(ScanState.OBSERVING)
                self._emit(FeedbackEvent.waiting())
            return self._state

        if self._in_flight:
            if self._config.liveness_enabled:
                self._tracker.update(observation.position)
            return self._state

        if self._config.liveness_enabled:
            self._tracker.update(observation.position)
            if not self._tracker.verified:
                self._set_state(ScanState.VERIFYING)
                self._emit(FeedbackEvent.verifying(self._tracker.progress()))
                return self._state
        # once per face appearance; liveness may be regained while a commit is in flight
        if not self._verified_announced:
            self._verified_announced = True
            self._set_state(ScanState.VERIFIED)
            if self._config.liveness_enabled:
                self._logger.info("[Scan] Liveness verified after %d frames", self._tracker.frame_count)
            self._emit(FeedbackEvent.verified())

        await self._recognize_and_submit(observation)
        return self._state

    async def _recognize_and_submit(self, observation: FrameObservation) -> None:
        if self.session.committed:
            return
        if not self._matcher.is_loaded and not await self._load_identities():
            return
        # another tick may have started a commit while identities were loading
        if self._in_flight or self._closed or self._state in TERMINAL_STATES:
            return

        try:
            match = self._matcher.recognize(observation.descriptor)
        except ValueError as exc:
            self._logger.warning("[Scan] Unusable descriptor: %s", exc)
            return
        self._last_match = match

        if not match.is_known:
            self._set_state(ScanState.VERIFIED)
            self._logger.debug("[Scan] Unrecognized face (distance %.3f)", match.distance)
            self._emit(FeedbackEvent.unrecognized())
            return

        self._logger.info("[Scan] Recognized %s (distance %.3f)", match.label, match.distance)
        self._begin_commit(match.identity)

    async def _load_identities(self) -> bool:
        async with self._load_lock:
            if self._matcher.is_loaded:
                return True
            try:
                identities = await self._store.fetch_enrolled_identities()
            except Exception as exc:
                self._logger.warning("[Scan] Cannot load enrolled identities: %s", exc)
                self._emit(FeedbackEvent.error(f"Cannot load enrolled users: {exc}"))
                return False
            self._matcher.load(identities)
            return True

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------
    def _begin_commit(self, identity: EnrolledIdentity) -> None:
        self._in_flight = True
        self.session.attempts += 1
        self._set_state(ScanState.SUBMITTING)
        self._emit(FeedbackEvent.submitting(identity.label))
        loop = asyncio.get_running_loop()
        self._commit_task = loop.create_task(self._commit(identity))

    async def _commit(self, identity: EnrolledIdentity) -> None:
        error: Optional[str] = None
        try:
            ok = await self._store.commit(identity)
            if not ok:
                error = "attendance was not recorded"
        except Exception as exc:
            ok = False
            error = str(exc) or exc.__class__.__name__
        finally:
            self._in_flight = False

        if ok:
            self.session.committed = True
            self.session.identity = identity
            self.session.committed_at = datetime.now()
            self._set_state(ScanState.COMMITTED)
            self._logger.info(
                "[Scan] Attendance committed for %s (%s) after %d attempt(s)",
                identity.label,
                identity.student_id,
                self.session.attempts,
            )
            if not self._closed:
                self._countdown_task = asyncio.get_running_loop().create_task(self._countdown(identity))
            return

        self._logger.warning("[Scan] Commit failed for %s: %s", identity.label, error)
        if self._closed or self._state is ScanState.HALTED:
            return
        self._set_state(ScanState.FAILED)
        self._emit(FeedbackEvent.error(f"Attendance failed: {error}"))

    async def _countdown(self, identity: EnrolledIdentity) -> None:
        remaining = self._config.countdown_seconds
        if remaining <= 0:
            self._emit(FeedbackEvent.committed(identity.label, 0))
        while remaining > 0:
            self._emit(FeedbackEvent.committed(identity.label, remaining))
            await self._sleep(self._config.countdown_interval)
            remaining -= 1

        if self._navigator is None or self._closed:
            return
        try:
            self._navigator(identity)
        except Exception as exc:
            self._logger.error("[Scan] Navigation failed: %s", exc, exc_info=True)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _set_state(self, state: ScanState) -> None:
        if state is not self._state:
            self._logger.debug("[Scan] %s -> %s", self._state.value, state.value)
            self._state = state

    def _emit(self, event: FeedbackEvent) -> None:
        if self._closed or event == self._last_event:
            return
        self._last_event = event
        try:
            self._sink.emit(event)
        except Exception as exc:
            self._logger.error("[Scan] Feedback sink failed: %s", exc, exc_info=True)
