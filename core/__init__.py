"""Framework-free core of the face-scan attendance system.

Liveness tracking, identity matching and the attendance state machine live
here so the Flask app and the kiosk CLI can share them.
"""
