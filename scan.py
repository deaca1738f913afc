"""
Kiosk entry point: quét khuôn mặt một lần và ghi nhận điểm danh.

Usage:
    python scan.py                      # local SQLite database
    python scan.py --api http://host:3000
    python scan.py --no-liveness
    python scan.py register --nama "Budi" --nim 2201001
"""
import argparse
import asyncio
import dataclasses
import logging
import sys

import config
from core.attendance.coordinator import AttendanceCoordinator
from core.attendance.feedback import LoggingFeedbackSink
from core.attendance.scan_loop import ScanLoop
from core.attendance.stores import AttendanceStoreError, DatabaseAttendanceStore, HttpAttendanceStore
from core.config import ScanConfig
from core.vision.camera_manager import CameraConfig, CameraError, CameraManager
from core.vision.capture import FaceCaptureError, capture_single_descriptor
from core.vision.detector import DetectorUnavailable, FaceRecognitionDetector
from logging_config import setup_logging

logger = logging.getLogger('attendance')


def build_parser():
    parser = argparse.ArgumentParser(description="Face-scan attendance kiosk")
    parser.add_argument("--api", default=config.ATTENDANCE_API_URL,
                        help="attendance API base URL (default: local database)")
    parser.add_argument("--camera", type=int, default=config.CAMERA_INDEX)
    parser.add_argument("--model", choices=("hog", "cnn"), default=config.DETECTOR_MODEL)
    parser.add_argument("--status", default=config.ATTENDANCE_STATUS_DEFAULT)
    parser.add_argument("--no-liveness", action="store_true", help="skip the head-movement check")
    parser.add_argument("--log-level", default=config.LOG_LEVEL)

    subparsers = parser.add_subparsers(dest="command")
    register = subparsers.add_parser("register", help="capture one face and register it")
    register.add_argument("--nama", required=True, help="student name")
    register.add_argument("--nim", required=True, help="student number")
    register.add_argument("--attempts", type=int, default=30,
                          help="frames to try before giving up")
    return parser


def build_store(args):
    if args.api:
        logger.info("[Kiosk] Using attendance API at %s", args.api)
        return HttpAttendanceStore(args.api, timeout=config.ATTENDANCE_API_TIMEOUT, status=args.status)
    from database import get_db
    db = get_db()
    logger.info("[Kiosk] Using local database %s", db.db_path)
    return DatabaseAttendanceStore(db, status=args.status)


def build_camera(args):
    return CameraManager(CameraConfig(
        index=args.camera,
        width=config.CAMERA_WIDTH,
        height=config.CAMERA_HEIGHT,
        warmup_frames=config.CAMERA_WARMUP_FRAMES,
        buffer_size=config.CAMERA_BUFFER_SIZE,
    ))


def build_detector(args):
    return FaceRecognitionDetector(
        model=args.model,
        upsample=config.DETECTOR_UPSAMPLE,
        scale=config.DETECTOR_SCALE,
    )


def announce_status_page(identity):
    url = config.STATUS_URL_TEMPLATE.format(nim=identity.student_id or identity.label)
    logger.info("[Kiosk] Attendance page: %s", url)


async def run_kiosk(args):
    scan_config = ScanConfig.from_env()
    if args.no_liveness:
        scan_config = dataclasses.replace(scan_config, liveness_enabled=False)

    coordinator = AttendanceCoordinator.from_config(
        scan_config,
        store=build_store(args),
        sink=LoggingFeedbackSink(),
        navigator=announce_status_page,
    )
    camera = build_camera(args)
    scan_loop = ScanLoop(
        coordinator=coordinator,
        detector=build_detector(args),
        frame_source=camera,
        config=scan_config,
    )
    try:
        await scan_loop.run()
    finally:
        camera.stop()
    return coordinator


async def register_face(args, store=None, detector=None, camera=None):
    """Chụp đúng một khuôn mặt rồi đăng ký descriptor cho NIM"""
    store = store or build_store(args)
    detector = detector or build_detector(args)
    camera = camera or build_camera(args)

    await asyncio.to_thread(camera.start)
    try:
        descriptor = await capture_single_descriptor(detector, camera, attempts=args.attempts)
    finally:
        camera.stop()
    return await store.register(args.nama, args.nim, descriptor)


def run_register(args):
    try:
        user = asyncio.run(register_face(args))
    except KeyboardInterrupt:
        logger.info("[Kiosk] Interrupted")
        return 130
    except (FaceCaptureError, AttendanceStoreError, CameraError, DetectorUnavailable) as exc:
        logger.error("[Kiosk] Registration failed: %s", exc)
        return 1
    logger.info("[Kiosk] Registered %s (%s)", user.get('nama', args.nama), user.get('nim', args.nim))
    return 0


def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging(log_level=args.log_level, log_dir=config.LOG_DIR)

    if args.command == "register":
        return run_register(args)

    try:
        coordinator = asyncio.run(run_kiosk(args))
    except KeyboardInterrupt:
        logger.info("[Kiosk] Interrupted")
        return 130

    session = coordinator.session
    if session.committed:
        logger.info("[Kiosk] %s recorded after %d attempt(s)", session.identity.label, session.attempts)
        return 0
    logger.error("[Kiosk] Scan ended without attendance: %s", coordinator.halt_reason or coordinator.state.value)
    return 1


if __name__ == "__main__":
    sys.exit(main())
