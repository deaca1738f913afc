"""
API routes for users
Các API endpoint cho đăng ký khuôn mặt và quản lý người dùng
"""
from flask import Blueprint, jsonify, current_app

from database import DuplicateStudentError
from logging_config import face_recognition_logger
from app.utils import get_request_data, get_text_field, get_database, error_response

users_api_bp = Blueprint('users_api', __name__, url_prefix='/api')


@users_api_bp.route('/register', methods=['POST'])
def api_register():
    """Đăng ký người dùng mới với descriptor khuôn mặt"""
    data = get_request_data()
    nama = get_text_field(data, 'nama')
    nim = get_text_field(data, 'nim')
    descriptor = data.get('descriptor')

    if not nama or not nim:
        return error_response('Nama dan NIM wajib diisi', 400)
    if not isinstance(descriptor, list):
        return error_response('Descriptor wajib diisi', 400)

    try:
        user = get_database().add_user(nama, nim, descriptor)
    except DuplicateStudentError as exc:
        return error_response(str(exc), 409)
    except ValueError as exc:
        return error_response(f'Descriptor tidak valid: {exc}', 400)

    face_recognition_logger.log_face_registered(nama, nim)
    return jsonify({
        'success': True,
        'message': f'{nama} berhasil diregister',
        'data': user,
    }), 201


@users_api_bp.route('/users', methods=['GET'])
def api_users():
    """Danh sách người dùng"""
    users = get_database().get_all_users()
    return jsonify({'success': True, 'data': users, 'count': len(users)})


@users_api_bp.route('/users/descriptors', methods=['GET'])
def api_user_descriptors():
    """Danh sách người dùng kèm descriptor cho bộ nhận diện"""
    users = get_database().get_user_descriptors()
    return jsonify({'success': True, 'data': users, 'count': len(users)})


@users_api_bp.route('/user/<nim>/absensi', methods=['GET'])
def api_user_attendance(nim):
    """Lịch sử điểm danh của một NIM"""
    db = get_database()
    user = db.get_user_by_student_id(nim)
    if not user:
        return error_response(f'NIM {nim} tidak ditemukan', 404)

    history = db.get_student_attendance_history(nim)
    return jsonify({
        'success': True,
        'data': {
            'absensi': history,
            'userInfo': {'id': user['id'], 'nama': user['nama'], 'nim': user['nim']},
        },
    })


@users_api_bp.route('/user/<int:user_id>', methods=['DELETE'])
def api_delete_user(user_id):
    """Xóa người dùng"""
    if not get_database().delete_user(user_id):
        return error_response('User tidak ditemukan', 404)
    current_app.logger.info("Deleted user %s", user_id)
    return jsonify({'success': True, 'message': 'User berhasil dihapus'})
