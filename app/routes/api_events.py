"""
API routes for Server-Sent Events (SSE)
Các API endpoint cho real-time events
"""
from flask import Blueprint, Response, current_app, request, stream_with_context

from app.utils import get_broadcaster

events_api_bp = Blueprint('events_api', __name__, url_prefix='/api/events')


@events_api_bp.route('/stream')
def api_events_stream():
    """Server-Sent Events stream cho thông báo real-time"""
    broadcaster = get_broadcaster()
    client_queue = broadcaster.add_client()
    keepalive = current_app.config.get('SSE_KEEPALIVE_SECONDS', 15.0)
    max_messages = request.args.get('max', type=int)

    return Response(
        stream_with_context(broadcaster.stream(client_queue, keepalive=keepalive, max_messages=max_messages)),
        mimetype='text/event-stream',
        headers={'Cache-Control': 'no-cache', 'X-Accel-Buffering': 'no'},
    )
