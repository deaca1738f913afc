"""
Event Broadcaster - Quản lý Server-Sent Events (SSE)
Fans scan feedback and attendance updates out to connected pages
"""
import queue
import threading
import json
from typing import Iterator, List, Dict, Any, Optional
from datetime import datetime


class EventBroadcaster:
    """Service quản lý SSE events cho thông báo real-time"""

    def __init__(self, logger=None, queue_size: int = 64):
        self.clients: List[queue.Queue] = []
        self.clients_lock = threading.Lock()
        self.logger = logger
        self.queue_size = queue_size

    def add_client(self) -> queue.Queue:
        """Thêm client mới và trả về queue của client đó"""
        client_queue = queue.Queue(maxsize=self.queue_size)

        with self.clients_lock:
            self.clients.append(client_queue)
            total = len(self.clients)

        if self.logger:
            self.logger.info(f"[SSE] New client connected. Total: {total}")

        return client_queue

    def remove_client(self, client_queue: queue.Queue):
        """Xóa client khi disconnect"""
        with self.clients_lock:
            if client_queue not in self.clients:
                return
            self.clients.remove(client_queue)
            remaining = len(self.clients)

        if self.logger:
            self.logger.info(f"[SSE] Client disconnected. Remaining: {remaining}")

    def broadcast_event(self, event_data: Dict[str, Any]):
        """
        Broadcast event đến tất cả clients

        Args:
            event_data: Dictionary chứa event data
                - type: Loại event (vd: 'scan_feedback', 'navigate', 'attendance_updated')
                - data: Dữ liệu của event
                - timestamp: Thời gian (optional, sẽ tự động thêm nếu không có)
        """
        if 'timestamp' not in event_data:
            event_data['timestamp'] = datetime.now().isoformat()

        message = self.format_sse_message(event_data)

        full_clients = []
        with self.clients_lock:
            for client_queue in self.clients:
                try:
                    client_queue.put_nowait(message)
                except queue.Full:
                    full_clients.append(client_queue)
            delivered = len(self.clients) - len(full_clients)

        # Client không đọc kịp được coi là đã ngắt kết nối
        for client_queue in full_clients:
            if self.logger:
                self.logger.warning("[SSE] Client queue full, removing client")
            self.remove_client(client_queue)

        if self.logger and delivered:
            self.logger.debug(
                f"[SSE] Broadcast {event_data.get('type', 'unknown')} to {delivered} clients"
            )

    @staticmethod
    def format_sse_message(event_data: Dict[str, Any]) -> str:
        """Format data thành SSE message format"""
        event_type = event_data.get('type', 'message')

        # SSE format: event: type\ndata: json\n\n
        message_lines = [
            f"event: {event_type}",
            f"data: {json.dumps(event_data)}",
            "",
            "",
        ]

        return "\n".join(message_lines)

    def stream(self, client_queue: queue.Queue, keepalive: float = 15.0,
               max_messages: Optional[int] = None) -> Iterator[str]:
        """Generator SSE cho một client; gửi heartbeat khi không có event"""
        sent = 0
        try:
            yield self.format_sse_message({'type': 'connected', 'data': {}})
            while max_messages is None or sent < max_messages:
                try:
                    message = client_queue.get(timeout=keepalive)
                except queue.Empty:
                    message = self.format_sse_message({'type': 'heartbeat', 'data': {}})
                yield message
                sent += 1
        finally:
            self.remove_client(client_queue)

    def broadcast_attendance_update(self, record: Dict[str, Any], created: bool = True):
        """Broadcast attendance update event"""
        self.broadcast_event({
            'type': 'attendance_updated',
            'data': {
                'record': record,
                'created': created,
            }
        })

    def get_client_count(self) -> int:
        """Lấy số lượng clients đang kết nối"""
        with self.clients_lock:
            return len(self.clients)


# Singleton instance
_broadcaster_instance = None
_broadcaster_lock = threading.Lock()


def get_event_broadcaster(logger=None, queue_size: int = 64) -> EventBroadcaster:
    """Get singleton instance of EventBroadcaster"""
    global _broadcaster_instance

    if _broadcaster_instance is None:
        with _broadcaster_lock:
            if _broadcaster_instance is None:
                _broadcaster_instance = EventBroadcaster(logger=logger, queue_size=queue_size)

    return _broadcaster_instance
