"""
In-process snapshot of the library.

The snapshot is rebuilt from the store as a whole and swapped in under a
lock, so readers see either the previous generation or the new one, never
a mix. Reloads hold a second lock from the first read to the swap, so a
reload that read the store before a write can never replace the snapshot
built by the reload paired with that write. Nothing patches the snapshot
in place: every mutation writes the store and then calls reload().
"""

import time
import logging
import threading
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional, List, Dict

from sqlalchemy.exc import SQLAlchemyError

from db import db, to_dict
from exceptions import StoreException
from models import Platform, Game, Image
from utils import now_utc

# Retrieve main logger
logger = logging.getLogger("main")

_EMPTY = MappingProxyType({})


@dataclass(frozen=True)
class LibrarySnapshot:
    platforms: Mapping[str, Mapping]
    games: Mapping[str, Mapping]
    images: Mapping[int, Mapping]
    generation: int = 0
    loaded_at: Optional[object] = None


def _freeze(rows, key="id"):
    return MappingProxyType({row[key]: MappingProxyType(row) for row in rows})


def _sort_key(entry, primary, fallback):
    return ((entry.get(primary) or entry.get(fallback) or "").lower(), entry.get("id") or "")


class LibraryCache:
    def __init__(self):
        self._lock = threading.Lock()
        self._reload_lock = threading.Lock()
        self._snapshot = LibrarySnapshot(platforms=_EMPTY, games=_EMPTY, images=_EMPTY)

    def reload(self) -> LibrarySnapshot:
        """
        Re-read platforms, games and images and swap in a new generation.

        Raises StoreException and keeps the current snapshot if any read fails.
        """
        from metrics import library_reload_duration_seconds

        started = time.time()
        with self._reload_lock:
            try:
                session = db.session
                platforms = [to_dict(p) for p in session.query(Platform).all()]
                games = [to_dict(g) for g in session.query(Game).all()]
                images = [to_dict(i) for i in session.query(Image).all()]
            except SQLAlchemyError as e:
                db.session.rollback()
                library_reload_duration_seconds.labels(status="error").observe(time.time() - started)
                raise StoreException(f"Failed to load library: {e}") from e

            platform_map = _freeze(platforms)
            game_map = _freeze(games)
            image_map = _freeze(images)

            with self._lock:
                snapshot = LibrarySnapshot(
                    platforms=platform_map,
                    games=game_map,
                    images=image_map,
                    generation=self._snapshot.generation + 1,
                    loaded_at=now_utc(),
                )
                self._snapshot = snapshot

        library_reload_duration_seconds.labels(status="success").observe(time.time() - started)
        logger.info(
            f"Library loaded: {len(platform_map)} platforms, {len(game_map)} games, "
            f"{len(image_map)} images (generation {snapshot.generation})"
        )
        return snapshot

    def snapshot(self) -> LibrarySnapshot:
        with self._lock:
            return self._snapshot

    def get_platforms(self) -> List[Dict]:
        snap = self.snapshot()
        platforms = [dict(p) for p in snap.platforms.values()]
        return sorted(platforms, key=lambda p: _sort_key(p, "sort_title", "name"))

    def get_games_for_platform(self, platform_id) -> List[Dict]:
        snap = self.snapshot()
        games = [dict(g) for g in snap.games.values() if g["platform_id"] == platform_id]
        return sorted(games, key=lambda g: _sort_key(g, "sort_title", "title"))

    def get_game(self, game_id) -> Optional[Dict]:
        game = self.snapshot().games.get(game_id)
        return dict(game) if game is not None else None

    def get_game_images(self, game_id) -> List[Dict]:
        snap = self.snapshot()
        images = [dict(i) for i in snap.images.values() if i["game_id"] == game_id]
        return sorted(images, key=lambda i: i["id"])

    def get_game_versions(self, title) -> List[Dict]:
        """Games whose title contains `title` or is contained in it."""
        if not title:
            return []
        snap = self.snapshot()
        versions = [
            dict(g) for g in snap.games.values()
            if g["title"] and (title in g["title"] or g["title"] in title)
        ]
        return sorted(versions, key=lambda g: (g["title"], g["id"]))

    def stats(self) -> Dict:
        snap = self.snapshot()
        return {
            "platforms": len(snap.platforms),
            "games": len(snap.games),
            "images": len(snap.images),
            "generation": snap.generation,
            "loaded_at": snap.loaded_at.isoformat() if snap.loaded_at else None,
        }


# Shared by routes and library operations
library_cache = LibraryCache()
