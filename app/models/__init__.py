"""
Models Package - Business logic models
Shared objects owned by the Flask app
"""

from .event_broadcaster import EventBroadcaster, get_event_broadcaster

__all__ = [
    'EventBroadcaster',
    'get_event_broadcaster',
]
