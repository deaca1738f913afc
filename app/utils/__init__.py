"""
Utils package
"""
from .data_utils import (
    get_request_data,
    get_text_field,
    error_response,
    get_database,
    get_broadcaster,
    get_scan_service,
)

__all__ = [
    'get_request_data',
    'get_text_field',
    'error_response',
    'get_database',
    'get_broadcaster',
    'get_scan_service',
]
