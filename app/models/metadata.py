"""
Model: MetadataRecord

One row per game of the LaunchBox Metadata.xml export. The table is
wholly replaced on every index run.
"""

from db import db


class MetadataRecord(db.Model):
    __tablename__ = "metadata"

    id = db.Column(db.String, primary_key=True)  # LaunchBox DatabaseID
    title = db.Column(db.String, nullable=False, index=True)
    search_title = db.Column(db.String, nullable=False)
    platform = db.Column(db.String)
    release_date = db.Column(db.String)
    developer = db.Column(db.String)
    publisher = db.Column(db.String)
    genres = db.Column(db.String)
    max_players = db.Column(db.String)
    description = db.Column(db.Text)
    rating = db.Column(db.String)
    star_rating = db.Column(db.Float)  # community rating

    __table_args__ = (db.Index("idx_metadata_search_platform", "search_title", "platform"),)
