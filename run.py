"""
Application entry point
File khởi chạy ứng dụng Flask
"""
import config
from app import create_app

# Tạo Flask application
app = create_app()

if __name__ == '__main__':
    app.logger.info(f"Starting Flask application on {config.HOST}:{config.PORT}")
    app.logger.info(f"Debug mode: {config.DEBUG}")

    # Chạy ứng dụng; reloader tắt để không khởi tạo ScanService hai lần
    app.run(
        host=config.HOST,
        port=config.PORT,
        debug=config.DEBUG,
        use_reloader=False,
        threaded=True
    )
