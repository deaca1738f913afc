"""
Cấu hình logging cho hệ thống điểm danh (attendance logging setup)
"""

import logging
import logging.handlers
from datetime import datetime
from pathlib import Path

_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(lineno)d - %(message)s'


def setup_logging(app=None, log_level='INFO', log_dir='logs', max_log_size=10*1024*1024, backup_count=5):
    """
    Thiết lập logging cho ứng dụng Flask hoặc kiosk CLI

    Args:
        app: Flask app instance (None cho CLI)
        log_level: Mức độ log (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Thư mục chứa file log
        max_log_size: Kích thước tối đa của file log (bytes)
        backup_count: Số lượng file log backup
    """

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    level = getattr(logging, str(log_level).upper(), logging.INFO)

    formatter = logging.Formatter(_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

    # File handler với rotation
    file_handler = logging.handlers.RotatingFileHandler(
        log_dir / 'attendance_system.log',
        maxBytes=max_log_size,
        backupCount=backup_count,
        encoding='utf-8'
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    # Handler cho file lỗi
    error_handler = logging.handlers.RotatingFileHandler(
        log_dir / 'errors.log',
        maxBytes=max_log_size,
        backupCount=backup_count,
        encoding='utf-8'
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Xóa handlers cũ nếu có
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)
    root_logger.addHandler(error_handler)

    for name in ('face_recognition', 'database', 'api'):
        logging.getLogger(name).setLevel(level)

    startup = app.logger if app is not None else logging.getLogger('attendance')
    if app is not None:
        app.logger.setLevel(level)

    startup.info("=" * 50)
    startup.info("ATTENDANCE SYSTEM STARTUP")
    startup.info("Timestamp: %s", datetime.now().isoformat())
    startup.info("Log Level: %s", logging.getLevelName(level))
    startup.info("Log Directory: %s", log_dir.absolute())
    startup.info("=" * 50)


class FaceRecognitionLogger:
    """Logger chuyên dụng cho face recognition"""

    def __init__(self):
        self.logger = logging.getLogger('face_recognition')

    def log_face_registered(self, name, student_id):
        """Log đăng ký khuôn mặt"""
        self.logger.info(f"Face registered - Name: {name}, Student ID: {student_id}")

    def log_attendance_marked(self, name, student_id, created=True):
        """Log điểm danh"""
        if created:
            self.logger.info(f"Attendance marked - Name: {name}, Student ID: {student_id}")
        else:
            self.logger.info(f"Attendance already recorded today - Name: {name}, Student ID: {student_id}")

    def log_recognition_error(self, error_message):
        """Log lỗi nhận diện"""
        self.logger.error(f"Recognition error - {error_message}")


class DatabaseLogger:
    """Logger chuyên dụng cho database operations"""

    def __init__(self):
        self.logger = logging.getLogger('database')

    def log_query(self, query_type, table, duration=None):
        """Log truy vấn database"""
        duration_info = f", Duration: {duration:.3f}s" if duration else ""
        self.logger.debug(f"DB Query - Type: {query_type}, Table: {table}{duration_info}")

    def log_error(self, operation, error_message):
        """Log lỗi database"""
        self.logger.error(f"DB Error - Operation: {operation}, Error: {error_message}")


class APILogger:
    """Logger chuyên dụng cho API calls"""

    def __init__(self):
        self.logger = logging.getLogger('api')

    def log_request(self, method, endpoint, ip_address=None):
        """Log yêu cầu API"""
        ip_info = f", IP: {ip_address}" if ip_address else ""
        self.logger.info(f"API Request - {method} {endpoint}{ip_info}")

    def log_response(self, endpoint, status_code, duration=None):
        """Log phản hồi API"""
        duration_info = f", Duration: {duration:.3f}s" if duration else ""
        self.logger.info(f"API Response - {endpoint}, Status: {status_code}{duration_info}")

    def log_error(self, endpoint, error_message, status_code=500):
        """Log lỗi API"""
        self.logger.error(f"API Error - {endpoint}, Status: {status_code}, Error: {error_message}")


# Các instance logger toàn cục
face_recognition_logger = FaceRecognitionLogger()
database_logger = DatabaseLogger()
api_logger = APILogger()


def get_client_ip(request):
    """Lấy IP address của client"""
    if request.headers.get('X-Forwarded-For'):
        return request.headers.get('X-Forwarded-For').split(',')[0].strip()
    elif request.headers.get('X-Real-IP'):
        return request.headers.get('X-Real-IP')
    else:
        return request.remote_addr


def log_request_info(request):
    """Log thông tin request"""
    ip_address = get_client_ip(request)
    api_logger.log_request(request.method, request.path, ip_address=ip_address)
    return ip_address
