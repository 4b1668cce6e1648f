"""
RetroShelf - Game Library Manager
Application Factory and initialization
"""
if __name__ == '__main__':
    # Patch before anything imports socket or threading
    from gevent import monkey
    monkey.patch_all()

import os
import sys
import logging

import flask.cli
flask.cli.show_server_banner = lambda *args: None

from flask import Flask
from flask_socketio import SocketIO
import structlog

from constants import RETROSHELF_DB, BUILD_VERSION, CONFIG_DIR, DATA_DIR
from settings import reload_conf
from db import db, init_db, engine_options
from exceptions import register_exception_handlers
from job_tracker import job_tracker
from library_cache import library_cache
from metrics import init_metrics
from utils import ColoredFormatter, FilterRemoveDateFromWerkzeugLogs

# Routes
from routes.library import library_bp
from routes.metadata import metadata_bp
from routes.system import system_bp
from routes.settings import settings_bp

socketio = SocketIO()

logger = structlog.get_logger('main')


def configure_logging(level=logging.INFO):
    formatter = ColoredFormatter(
        '[%(asctime)s.%(msecs)03d] %(levelname)s (%(module)s) %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    logging.basicConfig(
        level=level,
        handlers=[handler]
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if os.environ.get('LOG_FORMAT') == 'json' else structlog.dev.ConsoleRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Apply filter to hide date from http access logs
    logging.getLogger('werkzeug').addFilter(FilterRemoveDateFromWerkzeugLogs())


def create_app(config_overrides=None):
    """Application factory"""
    app = Flask(__name__)
    app.config["SQLALCHEMY_DATABASE_URI"] = RETROSHELF_DB
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['SQLALCHEMY_ENGINE_OPTIONS'] = engine_options()
    app.config['SOCKETIO_ASYNC_MODE'] = 'gevent'
    if config_overrides:
        app.config.update(config_overrides)

    os.makedirs(CONFIG_DIR, exist_ok=True)
    os.makedirs(DATA_DIR, exist_ok=True)

    db.init_app(app)

    register_exception_handlers(app)

    app.register_blueprint(library_bp)
    app.register_blueprint(metadata_bp)
    app.register_blueprint(system_bp)
    app.register_blueprint(settings_bp)

    init_metrics(app)

    socketio.init_app(app,
        cors_allowed_origins="*",
        async_mode=app.config['SOCKETIO_ASYNC_MODE'],
        engineio_logger=False,
        logger=False
    )
    job_tracker.set_emitter(socketio)

    @socketio.on('connect')
    def handle_connect():
        logger.info('Client connected')

    @socketio.on('disconnect')
    def handle_disconnect():
        logger.info('Client disconnected')

    with app.app_context():
        reload_conf()
        init_db(app)
        library_cache.reload()

    return app


if __name__ == '__main__':
    configure_logging()
    app = create_app()
    logger.info(f'Build Version: {BUILD_VERSION}')
    logger.info('Starting server on port 8465...')
    socketio.run(app, debug=False, use_reloader=False, host="0.0.0.0", port=8465)
