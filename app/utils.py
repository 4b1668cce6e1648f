import logging
import re
import hashlib
import zipfile
from datetime import datetime, timezone

import gevent
from flask import current_app, has_app_context

from constants import ILLEGAL_FILENAME_CHARS, HASH_CHUNK_SIZE


# Custom logging formatter to support colors
class ColoredFormatter(logging.Formatter):
    # Define color codes
    COLORS = {
        'DEBUG': '\033[94m',   # Blue
        'INFO': '\033[92m',    # Green
        'WARNING': '\033[93m', # Yellow
        'ERROR': '\033[91m',   # Red
        'CRITICAL': '\033[95m' # Magenta
    }
    RESET = '\033[0m'

    def format(self, record):
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.RESET}"

        return super().format(record)


# Filter to remove date from http access logs
class FilterRemoveDateFromWerkzeugLogs(logging.Filter):
    # '192.168.0.102 - - [30/Jun/2024 01:14:03] "%s" %s %s' -> '192.168.0.102 - "%s" %s %s'
    pattern: re.Pattern = re.compile(r' - - \[.+?] "')

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self.pattern.sub(' - "', str(record.msg))
        return True


_SANITIZE_TABLE = str.maketrans({c: '_' for c in ILLEGAL_FILENAME_CHARS})


def sanitize_filename(name):
    """Replace characters that are illegal in file names with underscores."""
    return name.translate(_SANITIZE_TABLE)


def run_blocking(fn, *args, **kwargs):
    """
    Run a blocking callable on the gevent hub thread pool and wait for it.

    The Flask application context of the caller is pushed in the worker
    thread so that Flask-SQLAlchemy sessions keep working there.
    """
    app = current_app._get_current_object() if has_app_context() else None

    def _call():
        if app is None:
            return fn(*args, **kwargs)
        with app.app_context():
            return fn(*args, **kwargs)

    return gevent.get_hub().threadpool.apply(_call)


def compute_file_md5(filepath):
    """
    MD5 of a ROM file. For zip archives the first member is hashed,
    which is what RetroAchievements expects for zipped ROMs.
    """
    md5 = hashlib.md5()
    if filepath.lower().endswith('.zip'):
        with zipfile.ZipFile(filepath) as archive:
            members = [m for m in archive.infolist() if not m.is_dir()]
            if not members:
                raise ValueError(f"Empty archive: {filepath}")
            with archive.open(members[0]) as fp:
                for chunk in iter(lambda: fp.read(HASH_CHUNK_SIZE), b''):
                    md5.update(chunk)
    else:
        with open(filepath, 'rb') as fp:
            for chunk in iter(lambda: fp.read(HASH_CHUNK_SIZE), b''):
                md5.update(chunk)
    return md5.hexdigest()


def now_utc():
    """Returns current datetime in UTC (aware)"""
    return datetime.now(timezone.utc)
