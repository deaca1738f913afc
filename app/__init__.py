"""
App package initialization
Khởi tạo Flask application và cấu hình
"""
import os
import time

from flask import Flask, g, jsonify, request

import config
from core.config import ScanConfig
from core.vision.camera_manager import CameraConfig
from core.vision.detector import FaceRecognitionDetector
from database import get_db
from logging_config import setup_logging, log_request_info, api_logger
from app.models import get_event_broadcaster
from app.services import ScanService


def _register_error_handlers(app):
    """Lỗi trả về theo envelope JSON {success: false, message}"""

    @app.errorhandler(400)
    def bad_request(error):
        return jsonify({'success': False, 'message': getattr(error, 'description', 'Bad request')}), 400

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'success': False, 'message': 'Endpoint tidak ditemukan'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'success': False, 'message': 'Method tidak diizinkan'}), 405

    @app.errorhandler(ValueError)
    def invalid_value(error):
        api_logger.log_error(request.path, str(error), 400)
        return jsonify({'success': False, 'message': str(error)}), 400

    @app.errorhandler(500)
    def internal_error(error):
        original = getattr(error, 'original_exception', None) or error
        api_logger.log_error(request.path, str(original), 500)
        app.logger.error("Unhandled error on %s: %s", request.path, original, exc_info=original)
        return jsonify({'success': False, 'message': 'Terjadi kesalahan server'}), 500


def _register_request_logging(app):
    @app.before_request
    def _log_request():
        g.request_started = time.perf_counter()
        if request.path.startswith('/api/'):
            log_request_info(request)

    @app.after_request
    def _log_response(response):
        started = g.get('request_started')
        if started is not None and request.path.startswith('/api/'):
            api_logger.log_response(request.path, response.status_code, time.perf_counter() - started)
        return response


def create_app(config_overrides=None, database=None, broadcaster=None, scan_service=None):
    """Factory function để tạo Flask application"""
    app = Flask(__name__)

    # Cấu hình cơ bản
    app.config['SECRET_KEY'] = config.SECRET_KEY
    app.config['MAX_CONTENT_LENGTH'] = config.MAX_CONTENT_LENGTH
    app.config['DATABASE_PATH'] = config.DATABASE_PATH
    app.config['LOG_DIR'] = config.LOG_DIR
    app.config['LOG_LEVEL'] = config.LOG_LEVEL
    app.config['SSE_KEEPALIVE_SECONDS'] = config.SSE_KEEPALIVE_SECONDS
    if config_overrides:
        app.config.update(config_overrides)

    # Thiết lập logging (test dùng logging của pytest)
    if not app.testing:
        setup_logging(app, app.config['LOG_LEVEL'], app.config['LOG_DIR'])

    app.logger.info(f"[STARTUP] Working directory: {os.getcwd()}")

    if database is None:
        database = get_db()
    app.logger.info(f"[STARTUP] Database path: {os.path.abspath(database.db_path)}")

    if broadcaster is None:
        broadcaster = get_event_broadcaster(logger=app.logger, queue_size=config.SSE_QUEUE_SIZE)

    if scan_service is None:
        scan_service = ScanService(
            database,
            broadcaster,
            scan_config=ScanConfig.from_env(),
            camera_config=CameraConfig(
                index=config.CAMERA_INDEX,
                width=config.CAMERA_WIDTH,
                height=config.CAMERA_HEIGHT,
                warmup_frames=config.CAMERA_WARMUP_FRAMES,
                buffer_size=config.CAMERA_BUFFER_SIZE,
            ),
            detector=FaceRecognitionDetector(
                model=config.DETECTOR_MODEL,
                upsample=config.DETECTOR_UPSAMPLE,
                scale=config.DETECTOR_SCALE,
                logger=app.logger,
            ),
            status=config.ATTENDANCE_STATUS_DEFAULT,
            status_url_template=config.STATUS_URL_TEMPLATE,
            logger=app.logger,
        )

    app.extensions['attendance.database'] = database
    app.extensions['attendance.broadcaster'] = broadcaster
    app.extensions['attendance.scan_service'] = scan_service

    _register_request_logging(app)
    _register_error_handlers(app)

    # Đăng ký blueprints
    from app.routes import register_blueprints
    register_blueprints(app)

    return app
