"""Fixed-period detection loop feeding the attendance coordinator."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Protocol

from core.attendance.coordinator import AttendanceCoordinator
from core.config import ScanConfig
from core.vision.detector import Detector, DetectorUnavailable


class FrameSource(Protocol):
    def start(self) -> Any:
        ...

    def read(self) -> Any:
        ...


class ScanLoop:
    """Runs at most one detection tick at a time on a fixed period.

    A timer fire that lands while the previous tick is still awaiting the
    detector is skipped, never run concurrently.
    """

    def __init__(
        self,
        *,
        coordinator: AttendanceCoordinator,
        detector: Detector,
        frame_source: FrameSource,
        config: Optional[ScanConfig] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.coordinator = coordinator
        self._detector = detector
        self._frame_source = frame_source
        self._config = config or ScanConfig()
        self._logger = logger or logging.getLogger(__name__)

        self._tick_running = False
        self._stopped = False
        self._consecutive_failures = 0
        self.ticks = 0
        self.skipped_ticks = 0
        self.failed_ticks = 0

    @property
    def stopped(self) -> bool:
        return self._stopped

    def stop(self) -> None:
        self._stopped = True

    async def run(self) -> None:
        """Run until the session is committed, halted, or :meth:`stop` is called."""
        try:
            await asyncio.to_thread(self._detector.warmup)
        except DetectorUnavailable as exc:
            self.coordinator.halt(f"Face detector unavailable: {exc}")
            return
        try:
            await asyncio.to_thread(self._frame_source.start)
        except Exception as exc:
            self.coordinator.halt(f"Camera unavailable: {exc}")
            return

        self.coordinator.start()
        loop = asyncio.get_running_loop()
        interval = self._config.tick_interval
        self._logger.info("[ScanLoop] Started (%.0f ms period)", interval * 1000)

        next_fire = loop.time()
        try:
            while not self._stopped and not self.coordinator.finished:
                await self.tick()
                if self.coordinator.session.committed:
                    break
                next_fire += interval
                now = loop.time()
                if next_fire < now:
                    missed = int((now - next_fire) // interval) + 1
                    self.skipped_ticks += missed
                    next_fire += missed * interval
                await asyncio.sleep(max(0.0, next_fire - now))

            if self.coordinator.session.committed and not self._stopped:
                await self.coordinator.wait_until_finished()
        finally:
            if self._stopped:
                self.coordinator.close()
            self._logger.info(
                "[ScanLoop] Stopped in state %s (ticks=%d skipped=%d failed=%d)",
                self.coordinator.state.value,
                self.ticks,
                self.skipped_ticks,
                self.failed_ticks,
            )

    async def tick(self) -> None:
        """Run one detection tick unless another is still in flight."""
        if self._tick_running:
            self.skipped_ticks += 1
            return
        self._tick_running = True
        self.ticks += 1
        try:
            frame = await asyncio.to_thread(self._frame_source.read)
            faces = await self._detector.detect_faces(frame)
        except DetectorUnavailable as exc:
            self.coordinator.halt(f"Face detector unavailable: {exc}")
            self._stopped = True
            return
        except Exception as exc:
            self._on_transient_failure(exc)
            return
        finally:
            self._tick_running = False

        self._consecutive_failures = 0
        if self._stopped:
            return
        await self.coordinator.process(faces[0] if faces else None)

    def _on_transient_failure(self, exc: Exception) -> None:
        self.failed_ticks += 1
        self._consecutive_failures += 1
        self._logger.debug("[ScanLoop] Tick failed: %s", exc)
        if self._consecutive_failures >= self._config.max_consecutive_failures:
            self.coordinator.halt(
                f"Detection failed {self._consecutive_failures} times in a row: {exc}"
            )
            self._stopped = True
