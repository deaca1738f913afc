"""
API routes for the in-process scanner
Bật/tắt vòng quét khuôn mặt và xem trạng thái
"""
from flask import Blueprint, jsonify

from app.utils import get_scan_service, error_response

scan_api_bp = Blueprint('scan_api', __name__, url_prefix='/api/scan')


@scan_api_bp.route('/start', methods=['POST'])
def api_scan_start():
    service = get_scan_service()
    ok, error = service.start()
    if not ok:
        return error_response(error, 409)
    return jsonify({'success': True, 'data': service.get_status()}), 202


@scan_api_bp.route('/stop', methods=['POST'])
def api_scan_stop():
    service = get_scan_service()
    if not service.is_running():
        return error_response('Scan is not running', 409)
    stopped = service.stop()
    return jsonify({'success': stopped, 'data': service.get_status()})


@scan_api_bp.route('/status', methods=['GET'])
def api_scan_status():
    return jsonify({'success': True, 'data': get_scan_service().get_status()})
