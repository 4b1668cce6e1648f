"""
Repository for Game database operations
"""

from sqlalchemy.dialects.sqlite import insert
from db import db
from models.game import Game

# Columns refreshed when an imported game already exists
IMPORT_UPDATE_COLUMNS = (
    "title", "sort_title", "file_path", "developer", "publisher", "genre",
    "play_mode", "max_players", "description", "rating", "region", "release_date",
)


class GamesRepository:
    """Repository for Game database operations"""

    @staticmethod
    def get_by_id(game_id):
        return db.session.get(Game, game_id)

    @staticmethod
    def get_by_platform(platform_id):
        return Game.query.filter_by(platform_id=platform_id).all()

    @staticmethod
    def get_or_404(game_id):
        from exceptions import NotFoundException
        game = db.session.get(Game, game_id)
        if game is None:
            raise NotFoundException("game", game_id)
        return game

    @staticmethod
    def insert_or_ignore(**values):
        """Insert a game row unless the id already exists. Returns True when a row was written."""
        stmt = insert(Game).values(**values).on_conflict_do_nothing(index_elements=["id"])
        result = db.session.execute(stmt)
        return result.rowcount > 0

    @staticmethod
    def upsert(**values):
        """Insert a game or refresh its imported columns. User flags and play stats are kept."""
        stmt = insert(Game).values(**values)
        update_cols = {c: stmt.excluded[c] for c in IMPORT_UPDATE_COLUMNS if c in values}
        stmt = stmt.on_conflict_do_update(index_elements=["id"], set_=update_cols)
        db.session.execute(stmt)

    @staticmethod
    def update_fields(game_id, **fields):
        """Update columns of one game. Caller commits."""
        game = GamesRepository.get_or_404(game_id)
        for key, value in fields.items():
            setattr(game, key, value)
        return game

    @staticmethod
    def delete(game_id):
        return Game.query.filter_by(id=game_id).delete(synchronize_session=False)
