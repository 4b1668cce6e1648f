"""
Repository for MetadataRecord database operations

The indexer owns the bulk replace; the resolver only reads.
"""

from sqlalchemy import func
from sqlalchemy.dialects.sqlite import insert
from db import db
from models.metadata import MetadataRecord


class MetadataRepository:
    """Repository for MetadataRecord database operations"""

    @staticmethod
    def count():
        return db.session.query(func.count(MetadataRecord.id)).scalar() or 0

    @staticmethod
    def get_by_id(record_id):
        return db.session.get(MetadataRecord, record_id)

    @staticmethod
    def delete_all():
        """Delete every row. Caller commits."""
        return db.session.query(MetadataRecord).delete(synchronize_session=False)

    @staticmethod
    def insert_batch(rows):
        """Insert rows keeping the first occurrence of a duplicate id. Caller commits."""
        if not rows:
            return
        stmt = insert(MetadataRecord).values(rows).on_conflict_do_nothing(index_elements=["id"])
        db.session.execute(stmt)

    @staticmethod
    def find_exact_title(title, platform):
        return (
            MetadataRecord.query.filter(MetadataRecord.title == title, MetadataRecord.platform == platform)
            .order_by(MetadataRecord.id)
            .first()
        )

    @staticmethod
    def find_search_title(key, platform):
        return (
            MetadataRecord.query.filter(MetadataRecord.search_title == key, MetadataRecord.platform == platform)
            .order_by(MetadataRecord.id)
            .first()
        )

    @staticmethod
    def find_search_prefix(key, platform):
        """Shortest normalized key starting with `key`, ties broken by id."""
        # Escape LIKE wildcards so the key is matched literally
        escaped = key.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        return (
            MetadataRecord.query.filter(
                MetadataRecord.search_title.like(f"{escaped}%", escape="\\"),
                MetadataRecord.platform == platform,
            )
            .order_by(func.length(MetadataRecord.search_title), MetadataRecord.id)
            .first()
        )
