"""
Model: Image
"""

from db import db


class Image(db.Model):
    __tablename__ = "images"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    game_id = db.Column(db.String, db.ForeignKey("games.id", ondelete="CASCADE"), nullable=False, index=True)
    image_type = db.Column(db.String, nullable=False)  # "Box - Front", "Screenshot - Gameplay", ...
    source_path = db.Column(db.String, nullable=False)
    cache_path = db.Column(db.String)
    width = db.Column(db.Integer)
    height = db.Column(db.Integer)
