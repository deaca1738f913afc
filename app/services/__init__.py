"""
Services package - dịch vụ chạy nền của ứng dụng Flask
"""
from .scan_service import ScanService

__all__ = [
    'ScanService',
]
