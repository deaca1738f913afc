"""
Routes package
Đăng ký tất cả các blueprints
"""
from .api_users import users_api_bp
from .api_attendance import attendance_api_bp
from .api_events import events_api_bp
from .api_scan import scan_api_bp


def register_blueprints(app):
    """Đăng ký tất cả các blueprints với Flask app."""
    app.register_blueprint(users_api_bp)
    app.register_blueprint(attendance_api_bp)
    app.register_blueprint(events_api_bp)
    app.register_blueprint(scan_api_bp)

    app.logger.info("[STARTUP] Registered blueprints")
