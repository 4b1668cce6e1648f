"""
LaunchBox and ROM folder import.

LaunchBox keeps one XML file per platform under Data/Platforms. Each
<Game> element there is one game of the user's collection.
"""

import os
import logging

from defusedxml import ElementTree as ET
from defusedxml import DefusedXmlException
from sqlalchemy.exc import SQLAlchemyError

from constants import LAUNCHBOX_PLATFORMS_DIR, LAUNCHBOX_METADATA_DIR, ROM_EXTENSIONS, DEFAULT_PLATFORM_CATEGORY
from db import db
from exceptions import NotFoundException, ValidationException, StoreException
from library import post_library_change, library_write
from repositories.games_repository import GamesRepository
from repositories.platforms_repository import PlatformsRepository

# Retrieve main logger
logger = logging.getLogger("main")

# LaunchBox tag -> games column
GAME_XML_FIELDS = {
    "Title": "title",
    "SortTitle": "sort_title",
    "Developer": "developer",
    "Publisher": "publisher",
    "Genre": "genre",
    "PlayMode": "play_mode",
    "MaxPlayers": "max_players",
    "ReleaseDate": "release_date",
    "Region": "region",
    "Rating": "rating",
    "Notes": "description",
    "VideoPath": "video_path",
}


def _text(elem, tag):
    child = elem.find(tag)
    if child is None or child.text is None:
        return None
    value = child.text.strip()
    return value or None


def _resolve_path(path, launchbox_root):
    if not path:
        return path
    path = path.replace("\\", os.sep)
    if os.path.isabs(path) or not launchbox_root:
        return path
    return os.path.normpath(os.path.join(launchbox_root, path))


def parse_platform_xml(xml_path, launchbox_root=None):
    """
    Read the games of one LaunchBox platform file.

    Returns a list of dicts ready for the games table, each with its
    `platform` name. Games without ID, Platform, Title or FilePath are skipped.
    """
    tree = ET.parse(xml_path)
    root = tree.getroot()

    games = []
    for game_elem in root.findall("Game"):
        game_id = _text(game_elem, "ID")
        platform = _text(game_elem, "Platform")
        title = _text(game_elem, "Title")
        file_path = _text(game_elem, "FilePath")
        if not (game_id and platform and title and file_path):
            logger.debug(f"Skipping incomplete game entry in {xml_path}")
            continue

        game = {
            "id": game_id,
            "platform": platform,
            "file_path": _resolve_path(file_path, launchbox_root),
        }
        for tag, column in GAME_XML_FIELDS.items():
            value = _text(game_elem, tag)
            if value is not None:
                game[column] = value
        if game.get("release_date"):
            game["release_date"] = game["release_date"][:10]
        if game.get("video_path"):
            game["video_path"] = _resolve_path(game["video_path"], launchbox_root)
        games.append(game)
    return games


def find_platform_xml_files(launchbox_root):
    platforms_dir = os.path.join(launchbox_root, LAUNCHBOX_PLATFORMS_DIR)
    if not os.path.isdir(platforms_dir):
        logger.warning(f"LaunchBox platforms directory not found: {platforms_dir}")
        return []

    xml_files = []
    for dirpath, dirnames, filenames in os.walk(platforms_dir):
        dirnames.sort()
        for filename in sorted(filenames):
            if filename.lower().endswith(".xml"):
                xml_files.append(os.path.join(dirpath, filename))
    return xml_files


def is_launchbox_root(path):
    """A LaunchBox installation has Data/Platforms and Metadata."""
    return bool(path) and os.path.isdir(os.path.join(path, LAUNCHBOX_PLATFORMS_DIR)) \
        and os.path.isdir(os.path.join(path, LAUNCHBOX_METADATA_DIR))


def detect_launchbox(candidates=None):
    """First configured candidate root that looks like a LaunchBox installation, or None."""
    if candidates is None:
        from settings import load_settings
        launchbox_settings = load_settings().get("launchbox", {})
        candidates = [launchbox_settings.get("root")] + list(launchbox_settings.get("candidate_roots") or [])

    for candidate in candidates:
        if candidate and is_launchbox_root(candidate):
            logger.info(f"Auto-detected LaunchBox at: {candidate}")
            return candidate
    return None


def metadata_xml_path(launchbox_root):
    return os.path.join(launchbox_root, LAUNCHBOX_METADATA_DIR, "Metadata.xml")


def import_platform_file(xml_path, launchbox_root=None):
    """Import one platform XML in its own transaction. Returns the number of games written."""
    games = parse_platform_xml(xml_path, launchbox_root)
    try:
        for game in games:
            platform = game.pop("platform")
            PlatformsRepository.insert_or_ignore(
                id=platform, name=platform, category=DEFAULT_PLATFORM_CATEGORY, folder_path=""
            )
            GamesRepository.upsert(platform_id=platform, **game)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return len(games)


def import_launchbox(launchbox_root=None, job_id=None):
    """
    Import every platform XML of a LaunchBox installation.

    A file that fails to parse or store is logged and skipped. The library
    snapshot is reloaded once at the end.
    """
    from job_tracker import job_tracker, JobType

    launchbox_root = launchbox_root or detect_launchbox()
    if not launchbox_root or not os.path.isdir(launchbox_root):
        raise NotFoundException("LaunchBox installation", launchbox_root)

    xml_files = find_platform_xml_files(launchbox_root)
    logger.info(f"Found {len(xml_files)} platform XML files in {launchbox_root}")
    if job_id:
        job_tracker.start_job(job_id, JobType.LAUNCHBOX_IMPORT, f"Importing {len(xml_files)} platforms")

    imported = 0
    failed = []
    for idx, xml_file in enumerate(xml_files, start=1):
        try:
            count = import_platform_file(xml_file, launchbox_root)
            imported += count
            logger.info(f"Imported {count} games from {os.path.basename(xml_file)}")
        except (ET.ParseError, DefusedXmlException, SQLAlchemyError, OSError) as e:
            logger.error(f"Error importing {xml_file}: {e}")
            failed.append(os.path.basename(xml_file))
        if job_id:
            job_tracker.update_progress(job_id, current=idx, total=len(xml_files),
                                        message=f"Imported {os.path.basename(xml_file)}")

    post_library_change()
    result = {"files": len(xml_files), "games": imported, "failed": failed}
    if job_id:
        job_tracker.complete_job(job_id, result)
    return result


def batch_import(folder_path, platform_id):
    """
    Add every ROM file under `folder_path` to `platform_id`.

    Ids are `<platform>-<file stem>` lower-cased with dashes for spaces;
    games that already exist are left alone. Returns the imported titles.
    """
    if not folder_path or not os.path.isdir(folder_path):
        raise ValidationException(f"Invalid folder path: {folder_path}")
    if PlatformsRepository.get_by_id(platform_id) is None:
        raise NotFoundException("platform", platform_id)

    titles = []
    with library_write("batch import"):
        for dirpath, dirnames, filenames in os.walk(folder_path):
            dirnames.sort()
            for filename in sorted(filenames):
                stem, ext = os.path.splitext(filename)
                if ext.lstrip(".").lower() not in ROM_EXTENSIONS:
                    continue
                game_id = f"{platform_id}-{stem}".replace(" ", "-").lower()
                if GamesRepository.insert_or_ignore(
                    id=game_id,
                    platform_id=platform_id,
                    title=stem,
                    file_path=os.path.join(dirpath, filename),
                ):
                    titles.append(stem)

    logger.info(f"Batch import of {folder_path}: {len(titles)} new games for {platform_id}")
    return titles


def import_launchbox_job(launchbox_root=None, job_id=None):
    from job_tracker import job_tracker, JobType

    if job_id is None:
        job_id = job_tracker.register_job(JobType.LAUNCHBOX_IMPORT, {"root": launchbox_root})
    try:
        return import_launchbox(launchbox_root, job_id=job_id)
    except (NotFoundException, StoreException) as e:
        job_tracker.fail_job(job_id, str(e))
        raise
