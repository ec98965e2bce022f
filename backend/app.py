"""
Simplified Flask Application Entry Point
"""
import os
import sys
import logging
from pathlib import Path
from dotenv import load_dotenv
from werkzeug.exceptions import BadRequest, HTTPException

# Load environment variables from project root .env file
_project_root = Path(__file__).parent.parent
_env_file = _project_root / '.env'
load_dotenv(dotenv_path=_env_file, override=True)

from flask import Flask
from flask_cors import CORS
from config import get_config
from utils.response import error_response
from controllers import worksheet_bp, thumbnail_bp
from services.thumbnail_service import ThumbnailCacheService, PillowThumbnailRenderer


def create_app(config_class=None, config_overrides=None):
    """Application factory"""
    app = Flask(__name__)

    # Load configuration from Config class
    app.config.from_object(config_class or get_config())
    if config_overrides:
        app.config.update(config_overrides)

    # CORS configuration (parse from environment)
    raw_cors = os.getenv('CORS_ORIGINS', 'http://localhost:3000')
    if raw_cors.strip() == '*':
        cors_origins = '*'
    else:
        cors_origins = [o.strip() for o in raw_cors.split(',') if o.strip()]
    app.config['CORS_ORIGINS'] = cors_origins

    # Initialize logging (log to stdout so Docker can capture it)
    log_level = getattr(logging, app.config['LOG_LEVEL'], logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # 设置第三方库的日志级别，避免过多的DEBUG日志
    logging.getLogger('httpcore').setLevel(logging.WARNING)
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('PIL').setLevel(logging.WARNING)
    logging.getLogger('werkzeug').setLevel(logging.INFO)  # Flask开发服务器日志保持INFO

    # Initialize extensions
    CORS(app, origins=cors_origins)

    # 缩略图缓存在进程内共享，由应用持有
    app.extensions['thumbnail_service'] = ThumbnailCacheService(
        renderer=PillowThumbnailRenderer(
            canvas_width=app.config['THUMBNAIL_CANVAS_WIDTH'],
            canvas_height=app.config['THUMBNAIL_CANVAS_HEIGHT'],
            thumbnail_width=app.config['THUMBNAIL_WIDTH'],
            quality=app.config['THUMBNAIL_QUALITY'],
        ),
        max_workers=app.config['MAX_THUMBNAIL_WORKERS'],
    )

    # Register blueprints
    app.register_blueprint(worksheet_bp)
    app.register_blueprint(thumbnail_bp)

    @app.errorhandler(BadRequest)
    def handle_bad_request(e: BadRequest):
        # 确保 400 也返回 JSON
        return error_response('BAD_REQUEST', e.description, 400)

    @app.errorhandler(HTTPException)
    def handle_http_exception(e: HTTPException):
        # 兜底：将常见 HTTP 异常统一为 JSON
        code = f'HTTP_{e.code}'
        return error_response(code, e.description, e.code or 500)

    # Health check endpoint
    @app.route('/health')
    def health_check():
        return {'status': 'ok', 'message': 'Worksheet Editor API is running'}

    # Root endpoint
    @app.route('/')
    def index():
        return {
            'name': 'Worksheet Editor API',
            'version': '1.0.0',
            'description': 'AI-powered worksheet editing with image generation',
            'endpoints': {
                'health': '/health',
                'edit': '/api/worksheets/edit',
                'thumbnails': '/api/thumbnails/<unit_id>'
            }
        }

    return app


# Create app instance
app = create_app()


if __name__ == '__main__':
    # Run development server
    if os.getenv("IN_DOCKER", "0") == "1":
        port = 5000  # 在 docker 内部部署时始终使用 5000 端口.
    else:
        port = int(os.getenv('PORT', 5000))
    debug = os.getenv('FLASK_ENV', 'development') == 'development'

    logging.info(
        "\n"
        f"Worksheet Editor API starting on: http://localhost:{port}\n"
        f"Environment: {os.getenv('FLASK_ENV', 'development')}\n"
        f"Debug mode: {debug}\n"
        f"Text provider: {app.config['AI_PROVIDER_FORMAT']} ({app.config['TEXT_MODEL']})\n"
        f"Image provider: {app.config['IMAGE_PROVIDER_FORMAT']} ({app.config['IMAGE_MODEL']})"
    )

    app.run(host='0.0.0.0', port=port, debug=debug, use_reloader=True)
