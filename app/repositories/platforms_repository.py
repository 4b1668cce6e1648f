"""
Repository for Platform database operations
"""

from sqlalchemy.dialects.sqlite import insert
from db import db
from models.platform import Platform


class PlatformsRepository:
    """Repository for Platform database operations"""

    @staticmethod
    def get_by_id(platform_id):
        return db.session.get(Platform, platform_id)

    @staticmethod
    def get_by_name(name):
        return Platform.query.filter_by(name=name).first()

    @staticmethod
    def insert_or_ignore(**values):
        """Insert a platform row unless the id already exists. Caller commits."""
        stmt = insert(Platform).values(**values).on_conflict_do_nothing(index_elements=["id"])
        db.session.execute(stmt)

    @staticmethod
    def delete(platform_id):
        """Delete a platform; games and images go with it through the FK cascade. Caller commits."""
        return Platform.query.filter_by(id=platform_id).delete(synchronize_session=False)
