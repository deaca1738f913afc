"""
Data utilities
Helper functions cho request parsing và truy cập service của app
"""
from flask import abort, current_app, jsonify, request


def get_request_data():
    """Lấy request data từ JSON hoặc form; body JSON phải là object."""
    if request.is_json:
        data = request.get_json(silent=True)
        if data is None:
            return {}
        if not isinstance(data, dict):
            abort(400, description='Body JSON harus berupa object')
        return data
    return request.form.to_dict()


def get_text_field(data, name, default=''):
    """Đọc một trường dạng chuỗi, ép kiểu giá trị JSON không phải chuỗi"""
    value = data.get(name)
    if value is None or value == '':
        value = default
    return str(value).strip()


def error_response(message, status_code):
    """Phản hồi lỗi theo envelope {success: false, message}"""
    return jsonify({'success': False, 'message': message}), status_code


def get_database():
    return current_app.extensions['attendance.database']


def get_broadcaster():
    return current_app.extensions['attendance.broadcaster']


def get_scan_service():
    return current_app.extensions['attendance.scan_service']
