"""
API routes for attendance
Các API endpoint cho ghi nhận điểm danh và thống kê
"""
from flask import Blueprint, jsonify

from database import DEFAULT_STATUS
from logging_config import face_recognition_logger
from app.utils import get_request_data, get_text_field, get_database, get_broadcaster, error_response

attendance_api_bp = Blueprint('attendance_api', __name__, url_prefix='/api')


@attendance_api_bp.route('/absen', methods=['POST'])
def api_absen():
    """Ghi nhận điểm danh; mỗi NIM một lần mỗi ngày"""
    data = get_request_data()
    nama = get_text_field(data, 'nama')
    nim = get_text_field(data, 'nim')
    status = get_text_field(data, 'status', DEFAULT_STATUS)

    if not nama or not nim:
        return error_response('Nama dan NIM wajib diisi', 400)

    record, created = get_database().mark_attendance(nim, nama, status)
    face_recognition_logger.log_attendance_marked(nama, nim, created=created)
    get_broadcaster().broadcast_attendance_update(record, created=created)

    message = 'Absensi berhasil disimpan' if created else 'Sudah absen hari ini'
    return jsonify({
        'success': True,
        'message': message,
        'created': created,
        'data': record,
    }), 201 if created else 200


@attendance_api_bp.route('/stats', methods=['GET'])
def api_stats():
    """Thống kê điểm danh"""
    return jsonify({'success': True, 'data': get_database().get_attendance_stats()})
