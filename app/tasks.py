import sys
import os

# Add app directory to path BEFORE any imports
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

# Monkey patch gevent BEFORE importing anything else, once per worker process
from gevent import monkey

monkey.patch_all()

import structlog

from celery_app import celery
from celery.signals import worker_process_init
from flask import Flask
from db import db, engine_options, init_db
from job_tracker import job_tracker
from socket_helper import get_socketio_emitter

# Configure structlog for Celery workers to ensure we see output
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
        structlog.processors.JSONRenderer()
        if os.environ.get("LOG_FORMAT") == "json"
        else structlog.dev.ConsoleRenderer(),
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger("main")


def create_app_context():
    """Create a minimal app context for celery tasks"""
    app = Flask(__name__)
    from constants import RETROSHELF_DB

    app.config["SQLALCHEMY_DATABASE_URI"] = RETROSHELF_DB
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options()
    db.init_app(app)
    init_db(app)

    # Set socket emitter for notifications
    job_tracker.set_emitter(get_socketio_emitter())

    return app


@worker_process_init.connect
def worker_startup(sender=None, **kwargs):
    logger.info("Celery worker process starting")


# Lazy initialization of Flask app to avoid errors on import
_flask_app = None


def get_flask_app():
    """Get or create the Flask app context lazily"""
    global _flask_app
    if _flask_app is None:
        logger.info("Creating Flask app context (lazy initialization)...")
        _flask_app = create_app_context()
    return _flask_app


@celery.task(name="tasks.index_metadata_async")
def index_metadata_async(path, job_id=None):
    """Index a LaunchBox Metadata.xml in the worker"""
    logger.info("task_execution_started", task="index_metadata_async", path=path)
    with get_flask_app().app_context():
        from metadata_indexer import index_metadata_job

        count = index_metadata_job(path, job_id=job_id)
        logger.info("task_execution_finished", task="index_metadata_async", count=count)
        return count


@celery.task(name="tasks.import_launchbox_async")
def import_launchbox_async(launchbox_root=None, job_id=None):
    """
    Import LaunchBox platform files in the worker.
    The web process snapshot is refreshed by POST /api/library/reload once the job completes.
    """
    logger.info("task_execution_started", task="import_launchbox_async", root=launchbox_root)
    with get_flask_app().app_context():
        from importer import import_launchbox_job

        result = import_launchbox_job(launchbox_root, job_id=job_id)
        logger.info("task_execution_finished", task="import_launchbox_async", **result)
        return result
