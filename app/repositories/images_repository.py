"""
Repository for Image database operations
"""

from db import db
from models.image import Image


class ImagesRepository:
    """Repository for Image database operations"""

    @staticmethod
    def exists(game_id, image_type, source_path):
        return (
            db.session.query(Image.id)
            .filter_by(game_id=game_id, image_type=image_type, source_path=source_path)
            .first()
            is not None
        )

    @staticmethod
    def add(game_id, image_type, source_path, cache_path=None, width=None, height=None):
        """Add an image row. Caller commits."""
        image = Image(
            game_id=game_id,
            image_type=image_type,
            source_path=source_path,
            cache_path=cache_path,
            width=width,
            height=height,
        )
        db.session.add(image)
        return image

    @staticmethod
    def delete_for_game(game_id):
        return Image.query.filter_by(game_id=game_id).delete(synchronize_session=False)

    @staticmethod
    def delete_for_games(game_ids):
        if not game_ids:
            return 0
        return Image.query.filter(Image.game_id.in_(game_ids)).delete(synchronize_session=False)
