"""
Library mutations.

Every operation writes the store in one transaction and then reloads the
shared LibraryCache, so readers never observe a state the store does not
hold.
"""

import os
import logging
from contextlib import contextmanager

import requests
from sqlalchemy.exc import SQLAlchemyError

from constants import ASSET_IMAGE_TYPES, DISC_EXTENSIONS, RA_GAME_ID_URL, DEFAULT_PLATFORM_CATEGORY
from db import db
from exceptions import (
    NotFoundException,
    StoreException,
    MediaIOException,
    ValidationException,
    ExternalServiceException,
)
from library_cache import library_cache
from repositories.games_repository import GamesRepository
from repositories.images_repository import ImagesRepository
from repositories.platforms_repository import PlatformsRepository
from utils import now_utc, run_blocking, compute_file_md5

# Retrieve main logger
logger = logging.getLogger("main")


@contextmanager
def library_write(action):
    """Commit the enclosed writes, roll back on failure, then reload the library snapshot."""
    try:
        yield db.session
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise StoreException(f"{action} failed: {e}") from e
    except Exception:
        db.session.rollback()
        raise
    post_library_change()


def post_library_change():
    """Rebuild the in-process snapshot after a store write."""
    return library_cache.reload()


def add_platform(platform_id, name, category=DEFAULT_PLATFORM_CATEGORY, folder_path=None, media_root=None,
                 sort_title=None):
    with library_write("add platform"):
        PlatformsRepository.insert_or_ignore(
            id=platform_id,
            name=name,
            category=category or DEFAULT_PLATFORM_CATEGORY,
            folder_path=folder_path or "",
            media_root=media_root,
            sort_title=sort_title,
        )
    return library_cache.snapshot().platforms.get(platform_id)


def add_game(game_id, platform_id, title, file_path, **fields):
    if not game_id or not platform_id or not title or not file_path:
        raise ValidationException("id, platform_id, title and file_path are required")
    if PlatformsRepository.get_by_id(platform_id) is None:
        raise NotFoundException("platform", platform_id)
    if GamesRepository.get_by_id(game_id) is not None:
        raise ValidationException(f"Game '{game_id}' already exists")

    with library_write("add game"):
        GamesRepository.insert_or_ignore(
            id=game_id, platform_id=platform_id, title=title, file_path=file_path, **fields
        )
    logger.info(f"Added game {game_id} ({title}) to platform {platform_id}")
    return library_cache.get_game(game_id)


def delete_game(game_id):
    GamesRepository.get_or_404(game_id)
    with library_write("delete game"):
        ImagesRepository.delete_for_game(game_id)
        GamesRepository.delete(game_id)
    logger.info(f"Deleted game {game_id}")


def delete_platform(platform_id):
    if PlatformsRepository.get_by_id(platform_id) is None:
        raise NotFoundException("platform", platform_id)
    with library_write("delete platform"):
        game_ids = [g.id for g in GamesRepository.get_by_platform(platform_id)]
        ImagesRepository.delete_for_games(game_ids)
        for game_id in game_ids:
            GamesRepository.delete(game_id)
        PlatformsRepository.delete(platform_id)
    logger.info(f"Deleted platform {platform_id} with {len(game_ids)} games")


def set_favorite(game_id, favorite):
    with library_write("set favorite"):
        GamesRepository.update_fields(game_id, favorite=bool(favorite))
    return library_cache.get_game(game_id)


def set_completed(game_id, completed):
    with library_write("set completed"):
        GamesRepository.update_fields(game_id, completed=bool(completed))
    return library_cache.get_game(game_id)


def set_star_rating(game_id, rating):
    try:
        rating = float(rating)
    except (TypeError, ValueError):
        raise ValidationException(f"Invalid star rating: {rating!r}")
    if not 0 <= rating <= 5:
        raise ValidationException("Star rating must be between 0 and 5")
    with library_write("set star rating"):
        GamesRepository.update_fields(game_id, star_rating=rating)
    return library_cache.get_game(game_id)


def reset_game_stats(game_id):
    with library_write("reset game stats"):
        GamesRepository.update_fields(game_id, play_count=0, play_time=0, last_played=None)
    return library_cache.get_game(game_id)


def record_play_session(game_id, seconds=0):
    """Count one play of `game_id` lasting `seconds`."""
    try:
        seconds = max(int(seconds or 0), 0)
    except (TypeError, ValueError):
        raise ValidationException(f"Invalid play time: {seconds!r}")
    with library_write("record play session"):
        game = GamesRepository.get_or_404(game_id)
        game.play_count = (game.play_count or 0) + 1
        game.play_time = (game.play_time or 0) + seconds
        game.last_played = now_utc()
    return library_cache.get_game(game_id)


def apply_resolved_metadata(game_id, bundle):
    """
    Store a resolved media bundle on a game: descriptive fields, video path,
    the scraped flag, and one image row per found art asset.
    """
    added = 0
    with library_write("apply metadata"):
        game = GamesRepository.get_or_404(game_id)
        updates = {
            "developer": bundle.developer,
            "publisher": bundle.publisher,
            "release_date": bundle.release_date,
            "genre": bundle.genres,
            "description": bundle.description,
            "rating": bundle.rating,
            "max_players": bundle.max_players,
            "star_rating": bundle.star_rating,
            "video_path": bundle.gameplay_video or bundle.bigbox_video,
        }
        # Absent values never erase what the game already has
        for key, value in updates.items():
            if value is not None:
                setattr(game, key, value)
        game.scraped = True

        for field_name, source_path in bundle.asset_paths().items():
            image_type = ASSET_IMAGE_TYPES.get(field_name)
            if image_type is None:
                continue
            if ImagesRepository.exists(game_id, image_type, source_path):
                continue
            ImagesRepository.add(game_id, image_type, source_path)
            added += 1

    logger.info(f"Applied metadata to {game_id}: {added} new images")
    return library_cache.get_game(game_id)


def get_game_disc_files(game):
    """Sibling disc images of a game whose name contains its title, sorted."""
    parent = os.path.dirname(game["file_path"])
    if not parent or not os.path.isdir(parent):
        raise NotFoundException("game folder", parent)
    discs = []
    with os.scandir(parent) as it:
        for entry in it:
            if not entry.is_file():
                continue
            ext = os.path.splitext(entry.name)[1].lstrip(".").lower()
            if ext in DISC_EXTENSIONS and game["title"] in entry.name:
                discs.append(entry.name)
    return parent, sorted(discs)


def generate_m3u(game_id):
    """Write `<title>.m3u` next to the game listing its discs. Returns the playlist path."""
    game = library_cache.get_game(game_id)
    if game is None:
        game_row = GamesRepository.get_or_404(game_id)
        game = {"file_path": game_row.file_path, "title": game_row.title}

    def _write():
        parent, discs = get_game_disc_files(game)
        if not discs:
            raise NotFoundException("discs for game", game_id)
        m3u_path = os.path.join(parent, f"{game['title']}.m3u")
        with open(m3u_path, "w", encoding="utf-8") as fp:
            fp.write("\n".join(discs))
        return m3u_path

    try:
        m3u_path = run_blocking(_write)
    except OSError as e:
        raise MediaIOException(f"Could not write playlist for {game_id}: {e}") from e
    logger.info(f"Generated playlist {m3u_path}")
    return m3u_path


def compute_game_hash(game_id, force=False):
    """MD5 of the game's ROM (first member for zips), stored in file_hash."""
    game = GamesRepository.get_or_404(game_id)
    if game.file_hash and not force:
        return game.file_hash

    file_path = game.file_path
    if not os.path.isfile(file_path):
        raise NotFoundException("ROM file", file_path)
    try:
        file_hash = run_blocking(compute_file_md5, file_path)
    except (OSError, ValueError) as e:
        raise MediaIOException(f"Could not hash {file_path}: {e}") from e

    with library_write("store file hash"):
        GamesRepository.update_fields(game_id, file_hash=file_hash)
    return file_hash


def _parse_ra_game_id(response):
    try:
        data = response.json()
    except ValueError:
        data = response.text.strip()
    if isinstance(data, dict):
        data = data.get("GameID", 0)
    try:
        return int(data)
    except (TypeError, ValueError):
        return 0


def check_ra_compatibility(game_id):
    """
    Look the game's hash up on RetroAchievements. Returns the RA game id,
    or None when the game is not supported.
    """
    from settings import load_settings

    ra_settings = load_settings().get("retroachievements", {})
    username = ra_settings.get("username")
    api_key = ra_settings.get("api_key")
    if not api_key:
        raise ValidationException("RetroAchievements API key not configured")

    file_hash = compute_game_hash(game_id)
    try:
        response = requests.get(
            RA_GAME_ID_URL,
            params={"z": username, "y": api_key, "m": file_hash},
            timeout=15,
        )
        response.raise_for_status()
    except requests.RequestException as e:
        raise ExternalServiceException(f"RetroAchievements lookup failed: {e}") from e

    ra_game_id = _parse_ra_game_id(response)
    if ra_game_id <= 0:
        logger.info(f"No RetroAchievements entry for {game_id} ({file_hash})")
        return None

    with library_write("store RetroAchievements id"):
        GamesRepository.update_fields(game_id, external_compat_id=ra_game_id)
    logger.info(f"Game {game_id} is RetroAchievements game {ra_game_id}")
    return ra_game_id
