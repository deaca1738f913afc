# config.py - Configuration and constants for the attendance system

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Flask app configuration
SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
MAX_CONTENT_LENGTH = 1 * 1024 * 1024  # descriptors only, no uploads
HOST = os.getenv('HOST', '0.0.0.0')
PORT = int(os.getenv('PORT', '3000'))
DEBUG = os.getenv('FLASK_DEBUG', '0') == '1'

# Data directory
DATA_DIR = Path(os.getenv('DATA_DIR', 'data'))
DATABASE_PATH = os.getenv('DATABASE_PATH', str(DATA_DIR / 'attendance_system.db'))
LOG_DIR = os.getenv('LOG_DIR', 'logs')
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

# Camera configuration
CAMERA_INDEX = int(os.getenv('CAMERA_INDEX', '0'))
CAMERA_WIDTH = int(os.getenv('CAMERA_WIDTH', '640'))
CAMERA_HEIGHT = int(os.getenv('CAMERA_HEIGHT', '480'))
CAMERA_WARMUP_FRAMES = int(os.getenv('CAMERA_WARMUP_FRAMES', '3'))
CAMERA_BUFFER_SIZE = int(os.getenv('CAMERA_BUFFER_SIZE', '2'))

# Face detector
DETECTOR_MODEL = os.getenv('DETECTOR_MODEL', 'hog')
DETECTOR_UPSAMPLE = int(os.getenv('DETECTOR_UPSAMPLE', '1'))
DETECTOR_SCALE = float(os.getenv('DETECTOR_SCALE', '1.0'))

# Attendance
ATTENDANCE_STATUS_DEFAULT = os.getenv('ATTENDANCE_STATUS_DEFAULT', 'Hadir')
ATTENDANCE_API_URL = os.getenv('ATTENDANCE_API_URL', '')  # empty -> local database
ATTENDANCE_API_TIMEOUT = float(os.getenv('ATTENDANCE_API_TIMEOUT', '5'))
STATUS_URL_TEMPLATE = os.getenv('STATUS_URL_TEMPLATE', '/status/{nim}')

# SSE
SSE_QUEUE_SIZE = int(os.getenv('SSE_QUEUE_SIZE', '64'))
SSE_KEEPALIVE_SECONDS = float(os.getenv('SSE_KEEPALIVE_SECONDS', '15'))
