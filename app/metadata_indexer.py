"""
Bulk indexer for the LaunchBox Metadata.xml export.

The export is a single XML document of several hundred megabytes. It is
stream-parsed with a SAX content handler and written to the `metadata`
table in batches, inside one transaction that replaces the previous
contents of the table.
"""

import os
import time
import logging
from xml.sax import SAXParseException
from xml.sax.handler import ContentHandler

from defusedxml import DefusedXmlException
from defusedxml.sax import make_parser
from sqlalchemy.exc import SQLAlchemyError

from constants import (
    METADATA_RECORD_TAG,
    METADATA_FIELD_TAGS,
    METADATA_BATCH_SIZE,
    METADATA_PROGRESS_INTERVAL,
    XML_READ_CHUNK_SIZE,
)
from db import db
from exceptions import NotFoundException, ParseException, StoreException
from repositories.metadata_repository import MetadataRepository

# Retrieve main logger
logger = logging.getLogger("main")

# Depth of the elements we care about: <LaunchBox> = 1, <Game> = 2, <Name> = 3
RECORD_DEPTH = 2
FIELD_DEPTH = 3


def search_title(title):
    """
    Normalized lookup key for a game title.

    "Metroid Prime (USA)" -> "metroid prime"
    "Pokémon: Blue!" -> "pokémon blue"
    """
    if not title:
        return ""
    text = title.lower()
    cuts = [i for i in (text.find("("), text.find("[")) if i >= 0]
    if cuts:
        text = text[:min(cuts)]
    text = "".join(c for c in text if c.isalnum() or c.isspace())
    return " ".join(text.split())


def _parse_float(value):
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def build_metadata_row(fields):
    """Turn the raw tag -> text mapping of one <Game> into a metadata row, or None without an id."""
    record_id = (fields.get("DatabaseID") or "").strip()
    if not record_id:
        return None

    title = fields.get("Name") or ""
    release_date = fields.get("ReleaseDate")
    if release_date:
        release_date = release_date[:10]
    else:
        release_date = fields.get("ReleaseYear") or None

    return {
        "id": record_id,
        "title": title,
        "search_title": search_title(title),
        "platform": fields.get("Platform") or None,
        "release_date": release_date,
        "developer": fields.get("Developer") or None,
        "publisher": fields.get("Publisher") or None,
        "genres": fields.get("Genres") or None,
        "max_players": fields.get("MaxPlayers") or None,
        "description": fields.get("Overview") or None,
        "rating": fields.get("ESRB") or None,
        "star_rating": _parse_float(fields.get("CommunityRating")),
    }


class MetadataRecordBuilder(ContentHandler):
    """
    SAX handler collecting the direct children of each top-level <Game>.

    Only known field tags at record depth + 1 are captured. Other root
    children and deeper nested elements are ignored.
    """

    def __init__(self, on_record):
        super().__init__()
        self.on_record = on_record
        self.records_parsed = 0
        self._depth = 0
        self._in_record = False
        self._field = None
        self._buffer = []
        self._fields = {}

    def startElement(self, name, attrs):
        self._depth += 1
        if self._depth == RECORD_DEPTH and name == METADATA_RECORD_TAG:
            self._in_record = True
            self._fields = {}
        elif self._in_record and self._depth == FIELD_DEPTH and name in METADATA_FIELD_TAGS:
            self._field = name
            self._buffer = []

    def characters(self, content):
        if self._field is not None and self._depth == FIELD_DEPTH:
            self._buffer.append(content)

    def endElement(self, name):
        if self._in_record and self._depth == FIELD_DEPTH and self._field == name:
            self._fields[name] = "".join(self._buffer).strip()
            self._field = None
            self._buffer = []
        elif self._in_record and self._depth == RECORD_DEPTH and name == METADATA_RECORD_TAG:
            self.records_parsed += 1
            fields, self._fields = self._fields, {}
            self._in_record = False
            self.on_record(fields)
        self._depth -= 1


def _byte_offset(path, line, column):
    """Absolute byte offset of a (1-based line, 0-based character column) position in a UTF-8 file."""
    if line is None or line < 1:
        return None
    offset = 0
    with open(path, "rb") as fp:
        for current, raw in enumerate(fp, start=1):
            if current == line:
                prefix = raw.decode("utf-8", errors="replace")[: max(column or 0, 0)]
                return offset + len(prefix.encode("utf-8", errors="replace"))
            offset += len(raw)
    return offset


class MetadataIndexer:
    """Replaces the metadata table with the contents of one Metadata.xml file."""

    def __init__(self, batch_size=METADATA_BATCH_SIZE, progress_interval=METADATA_PROGRESS_INTERVAL,
                 chunk_size=XML_READ_CHUNK_SIZE):
        self.batch_size = batch_size
        self.progress_interval = progress_interval
        self.chunk_size = chunk_size

    def index(self, path, progress_callback=None, job_id=None):
        """
        Index `path` and return the number of metadata rows afterwards.

        Raises NotFoundException, ParseException or StoreException. On any
        error the transaction is rolled back and the previous rows survive.
        """
        if not os.path.isfile(path):
            raise NotFoundException("metadata file", path)

        from job_tracker import job_tracker
        from metrics import metadata_index_duration_seconds, metadata_rows_indexed_total, metadata_rows

        total_bytes = os.path.getsize(path) or 1
        state = {"rows": 0, "bytes": 0}
        pending = []

        def flush():
            if pending:
                MetadataRepository.insert_batch(list(pending))
                pending.clear()

        def notify():
            count = state["rows"]
            logger.info(f"Indexed {count} metadata records...")
            if progress_callback is not None:
                progress_callback(count)
            if job_id:
                percent = round(min(state["bytes"] / total_bytes, 1.0) * 99, 1)
                job_tracker.update_progress(job_id, percent, current=count,
                                            message=f"{count} metadata records indexed")

        def on_record(fields):
            row = build_metadata_row(fields)
            if row is None:
                return
            pending.append(row)
            state["rows"] += 1
            if len(pending) >= self.batch_size:
                flush()
            if state["rows"] % self.progress_interval == 0:
                notify()

        builder = MetadataRecordBuilder(on_record)
        parser = make_parser()
        parser.setContentHandler(builder)

        logger.info(f"Indexing metadata from {path}...")
        started = time.time()
        try:
            MetadataRepository.delete_all()
            with open(path, "rb") as fp:
                for chunk in iter(lambda: fp.read(self.chunk_size), b""):
                    state["bytes"] += len(chunk)
                    parser.feed(chunk)
            parser.close()
            flush()
            count = MetadataRepository.count()
            db.session.commit()
        except SAXParseException as e:
            db.session.rollback()
            metadata_index_duration_seconds.labels(status="error").observe(time.time() - started)
            line, column = e.getLineNumber(), e.getColumnNumber()
            raise ParseException(
                f"Malformed metadata XML: {e.getMessage()}",
                offset=_byte_offset(path, line, column),
                line=line,
                column=column,
                records_parsed=builder.records_parsed,
            ) from e
        except DefusedXmlException as e:
            db.session.rollback()
            metadata_index_duration_seconds.labels(status="error").observe(time.time() - started)
            line, column = parser.getLineNumber(), parser.getColumnNumber()
            raise ParseException(
                f"Forbidden XML construct: {e}",
                offset=_byte_offset(path, line, column),
                line=line,
                column=column,
                records_parsed=builder.records_parsed,
            ) from e
        except SQLAlchemyError as e:
            db.session.rollback()
            metadata_index_duration_seconds.labels(status="error").observe(time.time() - started)
            raise StoreException(f"Failed to write metadata: {e}") from e
        except Exception:
            db.session.rollback()
            metadata_index_duration_seconds.labels(status="error").observe(time.time() - started)
            raise

        duration = time.time() - started
        metadata_index_duration_seconds.labels(status="success").observe(duration)
        metadata_rows_indexed_total.inc(state["rows"])
        metadata_rows.set(count)
        logger.info(f"Metadata index complete: {count} rows from {builder.records_parsed} records in {duration:.1f}s")

        # Cached bundles were resolved against the previous rows
        from redis_cache import invalidate_media_cache
        invalidate_media_cache()

        return count


def index(path, progress_callback=None, job_id=None):
    return MetadataIndexer().index(path, progress_callback=progress_callback, job_id=job_id)


def index_metadata_job(path, job_id=None):
    """Run an index under the job tracker. Returns the row count, re-raising failures."""
    from job_tracker import job_tracker, JobType

    if job_id is None:
        job_id = job_tracker.register_job(JobType.METADATA_INDEX, {"path": path})
    job_tracker.start_job(job_id, JobType.METADATA_INDEX, f"Indexing {os.path.basename(path)}")
    try:
        count = index(path, job_id=job_id)
    except Exception as e:
        job_tracker.fail_job(job_id, str(e))
        raise
    job_tracker.complete_job(job_id, {"count": count})
    return count
