"""
Media resolution for a single game.

Given a platform name and a game title, find the best metadata record,
then search the media tree for every known asset type, and fall back to a
placeholder box front. Results are cached in Redis.

Media layout:
    <root>/Images/<platform>/<asset folder>/**/<title>*
    <root>/Videos/<platform>/**/<title>*
"""

import os
import time
import logging
from dataclasses import dataclass, fields, asdict
from typing import Optional, List, Dict, Tuple
from urllib.parse import quote_plus

from sqlalchemy.exc import SQLAlchemyError

from constants import (
    MEDIA_ASSET_TYPES,
    MAX_PLATFORM_VARIANTS,
    PLACEHOLDER_BOX_FRONT_URL,
    PLATFORM_VENDOR_PREFIXES,
)
from exceptions import StoreException
from metadata_indexer import search_title
from redis_cache import get_distributed_cache, media_cache_key
from repositories.metadata_repository import MetadataRepository
from utils import run_blocking, sanitize_filename

# Retrieve main logger
logger = logging.getLogger("main")

EXACT_TITLE = "exact_title"
SEARCH_TITLE = "search_title"
SEARCH_PREFIX = "search_prefix"

LOOKUP_STRATEGIES = (EXACT_TITLE, SEARCH_TITLE, SEARCH_PREFIX)

DESCRIPTIVE_FIELDS = (
    "release_date", "developer", "publisher", "genres", "max_players", "description", "rating", "star_rating",
)


@dataclass
class GameMediaBundle:
    platform: str
    title: str
    metadata_id: Optional[str] = None
    matched_strategy: Optional[str] = None
    matched_platform: Optional[str] = None

    release_date: Optional[str] = None
    developer: Optional[str] = None
    publisher: Optional[str] = None
    genres: Optional[str] = None
    max_players: Optional[str] = None
    description: Optional[str] = None
    rating: Optional[str] = None
    star_rating: Optional[float] = None

    box_3d: Optional[str] = None
    box_front: Optional[str] = None
    box_back: Optional[str] = None
    box_full: Optional[str] = None
    box_front_reconstructed: Optional[str] = None
    box_back_reconstructed: Optional[str] = None
    flyer_front: Optional[str] = None
    flyer_back: Optional[str] = None
    arcade_cabinet: Optional[str] = None
    arcade_marquee: Optional[str] = None
    arcade_board: Optional[str] = None
    arcade_control_panel: Optional[str] = None
    arcade_controls_info: Optional[str] = None
    banner: Optional[str] = None
    clear_logo: Optional[str] = None
    fanart_background: Optional[str] = None
    disc: Optional[str] = None
    cart_3d: Optional[str] = None
    cart_front: Optional[str] = None
    cart_back: Optional[str] = None
    screenshot_gameplay: Optional[str] = None
    screenshot_title: Optional[str] = None
    screenshot_select: Optional[str] = None
    screenshot_gameover: Optional[str] = None
    screenshot_scores: Optional[str] = None
    bigbox_video: Optional[str] = None
    gameplay_video: Optional[str] = None

    placeholder: bool = False

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> "GameMediaBundle":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def asset_paths(self) -> Dict[str, str]:
        """Found asset paths keyed by bundle field. The placeholder box front is excluded."""
        assets = {}
        for field_name, _, _, _ in MEDIA_ASSET_TYPES:
            value = getattr(self, field_name)
            if value and not (field_name == "box_front" and self.placeholder):
                assets[field_name] = value
        return assets


def _swap_playstation(name):
    if "PlayStation" in name:
        return name.replace("PlayStation", "Playstation")
    if "Playstation" in name:
        return name.replace("Playstation", "PlayStation")
    return None


def _strip_vendor(name):
    for prefix in PLATFORM_VENDOR_PREFIXES:
        if name.startswith(prefix + " "):
            stripped = name[len(prefix) + 1:].strip()
            return stripped or None
    return None


def platform_variants(platform: str) -> List[str]:
    """
    Alternative spellings of a platform name, original first.

    "Sony Playstation" -> ["Sony Playstation", "Sony PlayStation", "Playstation", "PlayStation"]
    """
    candidates = [platform, _swap_playstation(platform)]
    stripped = _strip_vendor(platform)
    if stripped:
        candidates.extend([stripped, _swap_playstation(stripped)])

    variants = []
    for candidate in candidates:
        if candidate and candidate not in variants:
            variants.append(candidate)
    return variants[:MAX_PLATFORM_VARIANTS]


def lookup_plan(platform: str) -> List[Tuple[str, str]]:
    """Ordered (strategy, platform variant) pairs, strategy-major."""
    variants = platform_variants(platform)
    return [(strategy, variant) for strategy in LOOKUP_STRATEGIES for variant in variants]


def title_variants(title: Optional[str]) -> List[str]:
    """Lower-cased file name prefixes for a title: as is, sanitized, and without the trailing ' (...)'."""
    if not title:
        return []
    variants = []
    for candidate in (title, sanitize_filename(title), title.split(" (")[0]):
        candidate = candidate.strip().lower()
        if candidate and candidate not in variants:
            variants.append(candidate)
    return variants


def list_media_files(folder: str, max_depth: int) -> List[str]:
    """
    Files under `folder`, depth-first. Each directory yields its own files
    in sorted order before its sorted subdirectories, down to `max_depth`.
    """
    found = []

    def _walk(directory, depth):
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            logger.warning(f"Cannot list media folder {directory}: {e}")
            return

        subdirs = []
        for entry in entries:
            try:
                if entry.is_file():
                    found.append(entry.path)
                elif entry.is_dir() and depth < max_depth:
                    subdirs.append(entry.path)
            except OSError as e:
                logger.warning(f"Skipping media entry {entry.path}: {e}")

        for subdir in subdirs:
            _walk(subdir, depth + 1)

    if os.path.isdir(folder):
        _walk(folder, 0)
    return found


def find_media(media_root: str, platform: str, titles: List[str]) -> Dict[str, str]:
    """
    Search the media tree for every asset type.

    `titles` are tried in order (resolved metadata title first). Returns
    bundle field -> absolute path for the assets that were found.
    """
    found = {}
    if not media_root or not os.path.isdir(media_root):
        logger.debug(f"Media root {media_root!r} is not available")
        return found

    prefixes = []
    for title in titles:
        for variant in title_variants(title):
            if variant not in prefixes:
                prefixes.append(variant)
    if not prefixes:
        return found

    listings = {}
    variants = platform_variants(platform)
    for field_name, media_folder, asset_folder, max_depth in MEDIA_ASSET_TYPES:
        if field_name in found:
            continue
        for variant in variants:
            folder = os.path.join(media_root, media_folder, variant, asset_folder) if asset_folder \
                else os.path.join(media_root, media_folder, variant)
            key = (folder, max_depth)
            if key not in listings:
                listings[key] = list_media_files(folder, max_depth)
            match = _first_match(listings[key], prefixes)
            if match:
                found[field_name] = match
                break
    return found


def _first_match(paths, prefixes):
    names = [(path, os.path.basename(path).lower()) for path in paths]
    for prefix in prefixes:
        for path, name in names:
            if name.startswith(prefix):
                return path
    return None


class MediaResolver:
    """Resolves metadata and media assets for one (platform, title) pair."""

    def __init__(self, cache=None, ttl=None):
        self._cache = cache
        self._ttl = ttl

    @property
    def cache(self):
        return self._cache or get_distributed_cache()

    @property
    def ttl(self):
        if self._ttl is not None:
            return self._ttl
        from settings import get_media_cache_ttl
        return get_media_cache_ttl()

    def lookup_metadata(self, platform: str, title: str):
        """
        Run the lookup plan and return (record, strategy, platform variant),
        or (None, None, None) when nothing matches.
        """
        key = search_title(title)
        try:
            for strategy, variant in lookup_plan(platform):
                if strategy == EXACT_TITLE:
                    record = MetadataRepository.find_exact_title(title, variant)
                elif not key:
                    continue
                elif strategy == SEARCH_TITLE:
                    record = MetadataRepository.find_search_title(key, variant)
                else:
                    record = MetadataRepository.find_search_prefix(key, variant)
                if record is not None:
                    logger.debug(f"Metadata match for {platform}/{title}: {record.id} via {strategy} on {variant}")
                    return record, strategy, variant
        except SQLAlchemyError as e:
            raise StoreException(f"Metadata lookup failed for {platform}/{title}: {e}") from e
        return None, None, None

    def default_media_root(self, platform: str) -> Optional[str]:
        from repositories.platforms_repository import PlatformsRepository
        from settings import get_media_root

        try:
            known = PlatformsRepository.get_by_name(platform) or PlatformsRepository.get_by_id(platform)
        except SQLAlchemyError as e:
            logger.warning(f"Could not read platform {platform}: {e}")
            known = None
        if known is not None and known.media_root:
            return known.media_root
        return get_media_root()

    def resolve(self, platform: str, title: str, media_root: Optional[str] = None) -> GameMediaBundle:
        from metrics import media_cache_requests_total, media_walk_duration_seconds, media_placeholder_total

        cache_key = media_cache_key(platform, title)
        cached = self.cache.get(cache_key)
        if cached:
            media_cache_requests_total.labels(result="hit").inc()
            return GameMediaBundle.from_dict(cached)
        media_cache_requests_total.labels(result="miss").inc()

        bundle = GameMediaBundle(platform=platform, title=title)

        record, strategy, matched_platform = self.lookup_metadata(platform, title)
        if record is not None:
            bundle.metadata_id = record.id
            bundle.matched_strategy = strategy
            bundle.matched_platform = matched_platform
            for name in DESCRIPTIVE_FIELDS:
                setattr(bundle, name, getattr(record, name))

        root = media_root or self.default_media_root(platform)
        if root:
            titles = [record.title, title] if record is not None and record.title else [title]
            started = time.time()
            assets = run_blocking(find_media, root, platform, titles)
            media_walk_duration_seconds.observe(time.time() - started)
            for name, path in assets.items():
                setattr(bundle, name, path)

        if not bundle.box_front:
            bundle.box_front = PLACEHOLDER_BOX_FRONT_URL.format(title=quote_plus(title))
            bundle.placeholder = True
            media_placeholder_total.inc()

        self.cache.set(cache_key, bundle.to_dict(), self.ttl)
        return bundle


media_resolver = MediaResolver()


def resolve(platform: str, title: str, media_root: Optional[str] = None) -> GameMediaBundle:
    return media_resolver.resolve(platform, title, media_root=media_root)
