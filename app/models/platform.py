"""
Model: Platform
"""

from db import db


class Platform(db.Model):
    __tablename__ = "platforms"

    id = db.Column(db.String, primary_key=True)
    name = db.Column(db.String, nullable=False)
    category = db.Column(db.String, default="Consoles")
    sort_title = db.Column(db.String)
    emulator_id = db.Column(db.String)
    folder_path = db.Column(db.String)
    media_root = db.Column(db.String)

    games = db.relationship("Game", backref="platform", lazy=True, cascade="all, delete-orphan", passive_deletes=True)
