from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
import logging
import sqlite3
from constants import DB_POOL_SIZE, DB_BUSY_TIMEOUT

# Retrieve main logger
logger = logging.getLogger("main")

db = SQLAlchemy()


def to_dict(db_results):
    return {c.name: getattr(db_results, c.name) for c in db_results.__table__.columns}


def engine_options():
    """Engine options for the shared store: a small bounded pool and a busy timeout."""
    return {
        "pool_size": DB_POOL_SIZE,
        "max_overflow": 0,
        "pool_timeout": DB_BUSY_TIMEOUT,
        "connect_args": {"timeout": DB_BUSY_TIMEOUT, "check_same_thread": False},
    }


def init_db(app):
    # Register models on db.metadata before create_all
    import models  # noqa: F401

    with app.app_context():
        @event.listens_for(db.engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            if not isinstance(dbapi_connection, sqlite3.Connection):
                return

            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL;")
            cursor.execute("PRAGMA synchronous=NORMAL;")
            cursor.execute("PRAGMA foreign_keys=ON;")
            cursor.execute(f"PRAGMA busy_timeout={DB_BUSY_TIMEOUT * 1000};")
            cursor.execute("PRAGMA cache_size=-64000;")
            cursor.execute("PRAGMA temp_store=MEMORY;")
            cursor.close()

        logger.info("Initializing database tables...")
        db.create_all()
