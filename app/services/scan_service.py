"""
Scan Service - chạy vòng quét điểm danh trong tiến trình Flask
Owns one event loop on a daemon thread; HTTP handlers only start, stop and read status.
"""
import asyncio
import logging
import threading
from typing import Any, Dict, Optional, Tuple

from core.attendance.coordinator import AttendanceCoordinator
from core.attendance.feedback import (
    BroadcastFeedbackSink,
    BroadcastNavigator,
    CompositeFeedbackSink,
    LoggingFeedbackSink,
)
from core.attendance.scan_loop import ScanLoop
from core.attendance.stores import DEFAULT_STATUS, DatabaseAttendanceStore
from core.config import ScanConfig
from core.vision.camera_manager import CameraConfig, CameraManager
from core.vision.detector import FaceRecognitionDetector
from logging_config import face_recognition_logger


class ScanService:
    """Service quản lý một phiên quét khuôn mặt tại một thời điểm."""

    def __init__(
        self,
        database,
        broadcaster,
        scan_config: Optional[ScanConfig] = None,
        camera_config: Optional[CameraConfig] = None,
        detector=None,
        frame_source=None,
        store=None,
        status: str = DEFAULT_STATUS,
        status_url_template: str = '/status/{nim}',
        logger: Optional[logging.Logger] = None,
    ):
        self.database = database
        self.broadcaster = broadcaster
        self.scan_config = scan_config or ScanConfig()
        self.camera_config = camera_config or CameraConfig()
        self.status = status
        self.status_url_template = status_url_template
        self.logger = logger or logging.getLogger(__name__)

        self._detector = detector
        self._frame_source = frame_source
        self._store = store

        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._scan_loop: Optional[ScanLoop] = None
        self._ready = threading.Event()
        self._last_error: Optional[str] = None

    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def start(self) -> Tuple[bool, Optional[str]]:
        """
        Bắt đầu một phiên quét mới.
        Returns: (success, error_message)
        """
        with self._lock:
            if self.is_running():
                return False, 'Scan already running'
            self._ready.clear()
            self._last_error = None
            self._thread = threading.Thread(target=self._run, name='scan-loop', daemon=True)
            self._thread.start()
        self._ready.wait(timeout=5.0)
        self.logger.info("[ScanService] Scan started")
        return True, None

    def stop(self, timeout: float = 5.0) -> bool:
        """Dừng phiên quét; tick đang chạy được chờ xong và kết quả bị bỏ."""
        with self._lock:
            thread, loop, scan_loop = self._thread, self._loop, self._scan_loop
            if thread is None or not thread.is_alive():
                return False
            if loop is not None and scan_loop is not None:
                loop.call_soon_threadsafe(scan_loop.stop)
        thread.join(timeout)
        stopped = not thread.is_alive()
        if stopped:
            self.logger.info("[ScanService] Scan stopped")
        else:
            self.logger.warning("[ScanService] Scan thread did not stop within %.1fs", timeout)
        return stopped

    def get_status(self) -> Dict[str, Any]:
        """Ảnh chụp trạng thái hiện tại của phiên quét."""
        scan_loop = self._scan_loop
        status: Dict[str, Any] = {
            'running': self.is_running(),
            'last_error': self._last_error,
            'config': self.scan_config.to_dict(),
            'coordinator': None,
            'ticks': None,
        }
        if scan_loop is not None:
            status['coordinator'] = scan_loop.coordinator.snapshot()
            status['ticks'] = {
                'run': scan_loop.ticks,
                'skipped': scan_loop.skipped_ticks,
                'failed': scan_loop.failed_ticks,
            }
        return status

    def _build_scan_loop(self, frame_source) -> ScanLoop:
        sink = CompositeFeedbackSink([
            LoggingFeedbackSink(),
            BroadcastFeedbackSink(self.broadcaster),
        ])
        store = self._store or DatabaseAttendanceStore(self.database, status=self.status, logger=self.logger)
        coordinator = AttendanceCoordinator.from_config(
            self.scan_config,
            store=store,
            sink=sink,
            navigator=BroadcastNavigator(self.broadcaster, self.status_url_template),
            logger=self.logger,
        )
        return ScanLoop(
            coordinator=coordinator,
            detector=self._detector or FaceRecognitionDetector(logger=self.logger),
            frame_source=frame_source,
            config=self.scan_config,
            logger=self.logger,
        )

    def _run(self):
        try:
            asyncio.run(self._main())
        except Exception as exc:
            self._last_error = str(exc)
            self.logger.error("[ScanService] Scan crashed: %s", exc, exc_info=True)
        finally:
            self._ready.set()

    async def _main(self):
        frame_source = self._frame_source or CameraManager(self.camera_config)
        scan_loop = self._build_scan_loop(frame_source)
        with self._lock:
            self._loop = asyncio.get_running_loop()
            self._scan_loop = scan_loop
        self._ready.set()
        try:
            await scan_loop.run()
        finally:
            stop = getattr(frame_source, 'stop', None)
            if callable(stop):
                await asyncio.to_thread(stop)
            with self._lock:
                self._loop = None

        reason = scan_loop.coordinator.halt_reason
        if reason:
            self._last_error = reason
            face_recognition_logger.log_recognition_error(reason)
