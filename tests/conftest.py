"""
Pytest fixtures and configuration for RetroShelf tests
"""
import os
import sys
import fnmatch
import tempfile
import pytest
from unittest.mock import MagicMock

# Relocate config and data dirs before constants is imported anywhere
_TEST_ROOT = tempfile.mkdtemp(prefix="retroshelf-tests-")
os.environ.setdefault("RETROSHELF_CONFIG_DIR", os.path.join(_TEST_ROOT, "config"))
os.environ.setdefault("RETROSHELF_DATA_DIR", os.path.join(_TEST_ROOT, "data"))
os.makedirs(os.environ["RETROSHELF_CONFIG_DIR"], exist_ok=True)

# Add app directory to path
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'app'))


class FakeRedis:
    """In-memory stand-in for the subset of the redis client the cache uses"""

    def __init__(self, fail=False):
        self.store = {}
        self.ttls = {}
        self.fail = fail
        self.get_calls = 0

    def _check(self):
        if self.fail:
            raise ConnectionError("redis down")

    def ping(self):
        self._check()
        return True

    def get(self, key):
        self._check()
        self.get_calls += 1
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self._check()
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    def delete(self, *keys):
        self._check()
        count = 0
        for key in keys:
            if key in self.store:
                del self.store[key]
                self.ttls.pop(key, None)
                count += 1
        return count

    def scan_iter(self, match=None):
        self._check()
        for key in list(self.store):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture(autouse=True)
def distributed_cache(fake_redis):
    """Every test gets a fresh cache backed by FakeRedis"""
    import redis_cache

    cache = redis_cache.DistributedCache(redis_url="redis://fake:6379/0", client=fake_redis)
    redis_cache.set_distributed_cache(cache)
    yield cache
    redis_cache.set_distributed_cache(None)


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing"""
    logger = MagicMock()
    logger.info = MagicMock()
    logger.error = MagicMock()
    logger.warning = MagicMock()
    logger.debug = MagicMock()
    return logger


@pytest.fixture
def app(tmp_path, monkeypatch):
    """Flask app on a throwaway SQLite file with its own settings.yaml"""
    from app import create_app

    monkeypatch.setattr("settings.CONFIG_FILE", str(tmp_path / "config" / "settings.yaml"))

    db_path = tmp_path / "library.db"
    _app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
        "SOCKETIO_ASYNC_MODE": "threading",
    })
    with _app.app_context():
        yield _app
        from db import db
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client


@pytest.fixture
def seeded_library(app):
    """Two platforms, three games and one image, loaded into the snapshot"""
    from db import db
    from models import Platform, Game, Image
    from library_cache import library_cache

    db.session.add_all([
        Platform(id="nes", name="Nintendo Entertainment System", folder_path="/roms/nes"),
        Platform(id="psx", name="Sony Playstation", folder_path="/roms/psx", sort_title="Playstation"),
    ])
    db.session.add_all([
        Game(id="nes-metroid", platform_id="nes", title="Metroid", file_path="/roms/nes/Metroid.nes"),
        Game(id="nes-zelda", platform_id="nes", title="The Legend of Zelda", sort_title="Legend of Zelda",
             file_path="/roms/nes/Zelda.nes"),
        Game(id="psx-ff7", platform_id="psx", title="Final Fantasy VII", file_path="/roms/psx/FF7 (Disc 1).cue"),
    ])
    db.session.flush()
    db.session.add(Image(game_id="nes-metroid", image_type="Box - Front", source_path="/media/metroid.png"))
    db.session.commit()
    library_cache.reload()
    return library_cache


METADATA_XML = """<?xml version="1.0" standalone="yes"?>
<LaunchBox>
  <Platform>
    <Name>Nintendo Entertainment System</Name>
  </Platform>
  <Game>
    <Name>Metroid</Name>
    <ReleaseDate>1986-08-06T00:00:00-07:00</ReleaseDate>
    <Overview>Samus explores planet Zebes.</Overview>
    <MaxPlayers>1</MaxPlayers>
    <DatabaseID>100</DatabaseID>
    <CommunityRating>4.2</CommunityRating>
    <Platform>Nintendo Entertainment System</Platform>
    <ESRB>E - Everyone</ESRB>
    <Genres>Action; Platform</Genres>
    <Developer>Nintendo R&amp;D1</Developer>
    <Publisher>Nintendo</Publisher>
  </Game>
  <Game>
    <Name>Metroid Prime (USA)</Name>
    <ReleaseYear>2002</ReleaseYear>
    <DatabaseID>101</DatabaseID>
    <Platform>Nintendo GameCube</Platform>
  </Game>
  <GameAlternateName>
    <AlternateName>Metroid: Zero Mission</AlternateName>
    <DatabaseID>102</DatabaseID>
  </GameAlternateName>
  <Game>
    <Name>No Id Game</Name>
    <DatabaseID></DatabaseID>
    <Platform>Nintendo Entertainment System</Platform>
  </Game>
  <Game>
    <Name>Final Fantasy VII</Name>
    <DatabaseID>200</DatabaseID>
    <Platform>Sony Playstation</Platform>
    <Developer>Square</Developer>
  </Game>
  <Game>
    <Name>Duplicate Metroid</Name>
    <DatabaseID>100</DatabaseID>
    <Platform>Nintendo Entertainment System</Platform>
  </Game>
  <GameImage>
    <DatabaseID>100</DatabaseID>
    <FileName>metroid.png</FileName>
  </GameImage>
</LaunchBox>
"""


@pytest.fixture
def metadata_xml(tmp_path):
    path = tmp_path / "Metadata.xml"
    path.write_text(METADATA_XML, encoding="utf-8")
    return str(path)


def _touch(path):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"x")
    return str(path)


@pytest.fixture
def media_tree(tmp_path):
    """
    <root>/Images/Nintendo Entertainment System/Box - Front/North America/Metroid-01.png
    <root>/Images/Nintendo Entertainment System/Screenshot - Gameplay/Metroid-01.png
    <root>/Images/Playstation/Box - 3D/Final Fantasy VII-01.jpg
    <root>/Videos/Nintendo Entertainment System/Metroid.mp4
    """
    root = tmp_path / "media"
    files = {
        "nes_box_front": _touch(root / "Images" / "Nintendo Entertainment System" / "Box - Front" / "North America" / "Metroid-01.png"),
        "nes_screenshot": _touch(root / "Images" / "Nintendo Entertainment System" / "Screenshot - Gameplay" / "Metroid-01.png"),
        "psx_box_3d": _touch(root / "Images" / "Playstation" / "Box - 3D" / "Final Fantasy VII-01.jpg"),
        "nes_video": _touch(root / "Videos" / "Nintendo Entertainment System" / "Metroid.mp4"),
    }
    return str(root), files
