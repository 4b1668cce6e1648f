"""
Model: Game
"""

from db import db


class Game(db.Model):
    __tablename__ = "games"

    id = db.Column(db.String, primary_key=True)
    platform_id = db.Column(db.String, db.ForeignKey("platforms.id", ondelete="CASCADE"), nullable=False, index=True)
    title = db.Column(db.String, nullable=False)
    sort_title = db.Column(db.String)
    file_path = db.Column(db.String, nullable=False)
    file_exists = db.Column(db.Boolean, default=True)

    # Descriptive metadata
    developer = db.Column(db.String)
    publisher = db.Column(db.String)
    genre = db.Column(db.String)
    play_mode = db.Column(db.String)
    max_players = db.Column(db.String)
    description = db.Column(db.Text)
    rating = db.Column(db.String)
    region = db.Column(db.String)
    release_date = db.Column(db.String)

    # Play statistics
    play_count = db.Column(db.Integer, default=0)
    play_time = db.Column(db.Integer, default=0)  # seconds
    last_played = db.Column(db.DateTime)

    # User flags
    favorite = db.Column(db.Boolean, default=False)
    completed = db.Column(db.Boolean, default=False)
    star_rating = db.Column(db.Float)

    video_path = db.Column(db.String)
    file_hash = db.Column(db.String)
    external_compat_id = db.Column(db.Integer)  # RetroAchievements game id
    scraped = db.Column(db.Boolean, default=False)

    images = db.relationship("Image", backref="game", lazy=True, cascade="all, delete-orphan", passive_deletes=True)

    __table_args__ = (db.Index("idx_games_platform_title", "platform_id", "title"),)
