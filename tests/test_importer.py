"""
Tests for LaunchBox and ROM folder import
"""
import os
import pytest


NES_PLATFORM_XML = """<?xml version="1.0" standalone="yes"?>
<LaunchBox>
  <Game>
    <ID>6d7a2c1e-0001</ID>
    <Title>Metroid</Title>
    <Platform>Nintendo Entertainment System</Platform>
    <FilePath>Games\\NES\\Metroid.nes</FilePath>
    <ReleaseDate>1986-08-06T00:00:00-07:00</ReleaseDate>
    <Developer>{developer}</Developer>
    <Genre>Action</Genre>
    <Notes>Samus explores planet Zebes.</Notes>
  </Game>
  <Game>
    <ID>6d7a2c1e-0002</ID>
    <Title>Contra</Title>
    <Platform>Nintendo Entertainment System</Platform>
    <FilePath>/roms/nes/Contra.nes</FilePath>
  </Game>
  <Game>
    <ID>6d7a2c1e-0003</ID>
    <Title>No Platform</Title>
    <FilePath>/roms/nes/x.nes</FilePath>
  </Game>
</LaunchBox>
"""


def _make_launchbox(root, developer="Nintendo", broken=False):
    platforms = root / "Data" / "Platforms"
    platforms.mkdir(parents=True, exist_ok=True)
    (root / "Metadata").mkdir(exist_ok=True)
    (platforms / "Nintendo Entertainment System.xml").write_text(
        NES_PLATFORM_XML.format(developer=developer), encoding="utf-8"
    )
    if broken:
        (platforms / "Broken.xml").write_text("<LaunchBox><Game><ID>1</ID>", encoding="utf-8")
    return str(root)


class TestParsePlatformXml:
    def test_parse(self, tmp_path):
        from importer import parse_platform_xml

        root = _make_launchbox(tmp_path)
        games = parse_platform_xml(os.path.join(root, "Data", "Platforms", "Nintendo Entertainment System.xml"), root)

        assert [g["id"] for g in games] == ["6d7a2c1e-0001", "6d7a2c1e-0002"]
        metroid = games[0]
        assert metroid["platform"] == "Nintendo Entertainment System"
        assert metroid["file_path"] == os.path.normpath(os.path.join(root, "Games", "NES", "Metroid.nes"))
        assert metroid["release_date"] == "1986-08-06"
        assert metroid["description"] == "Samus explores planet Zebes."
        assert games[1]["file_path"] == "/roms/nes/Contra.nes"


class TestDetectLaunchbox:
    def test_first_valid_candidate(self, tmp_path):
        from importer import detect_launchbox, is_launchbox_root

        good = _make_launchbox(tmp_path / "LaunchBox")
        (tmp_path / "Empty").mkdir()
        assert is_launchbox_root(good)
        assert detect_launchbox([str(tmp_path / "Empty"), None, good]) == good

    def test_nothing_found(self, app, tmp_path):
        from importer import detect_launchbox
        assert detect_launchbox([str(tmp_path)]) is None
        assert detect_launchbox() is None


class TestImportLaunchbox:
    def test_import(self, app, tmp_path):
        from importer import import_launchbox
        from library_cache import library_cache

        root = _make_launchbox(tmp_path / "LaunchBox")
        result = import_launchbox(root)
        assert result == {"files": 1, "games": 2, "failed": []}

        platforms = library_cache.get_platforms()
        assert [p["id"] for p in platforms] == ["Nintendo Entertainment System"]
        assert library_cache.get_game("6d7a2c1e-0001")["developer"] == "Nintendo"

    def test_broken_file_is_skipped(self, app, tmp_path):
        from importer import import_launchbox

        root = _make_launchbox(tmp_path / "LaunchBox", broken=True)
        result = import_launchbox(root)
        assert result["failed"] == ["Broken.xml"]
        assert result["games"] == 2

    def test_reimport_keeps_user_state(self, app, tmp_path):
        import library
        from importer import import_launchbox
        from library_cache import library_cache

        root = _make_launchbox(tmp_path / "LaunchBox")
        import_launchbox(root)
        library.set_favorite("6d7a2c1e-0001", True)
        library.record_play_session("6d7a2c1e-0001", 60)

        _make_launchbox(tmp_path / "LaunchBox", developer="Nintendo R&amp;D1")
        import_launchbox(root)

        game = library_cache.get_game("6d7a2c1e-0001")
        assert game["developer"] == "Nintendo R&D1"
        assert game["favorite"] is True
        assert game["play_count"] == 1

    def test_missing_root(self, app, tmp_path):
        from importer import import_launchbox
        from exceptions import NotFoundException

        with pytest.raises(NotFoundException):
            import_launchbox(str(tmp_path / "absent"))

    def test_import_job(self, app, tmp_path):
        from importer import import_launchbox_job
        from job_tracker import job_tracker, JobStatus

        root = _make_launchbox(tmp_path / "LaunchBox")
        job_id = job_tracker.register_job("launchbox_import", {"root": root})
        import_launchbox_job(root, job_id=job_id)
        job = job_tracker.get_job(job_id)
        assert job["status"] == JobStatus.COMPLETED
        assert job["result"]["games"] == 2


class TestBatchImport:
    def test_batch_import(self, app, tmp_path):
        import library
        from importer import batch_import
        from library_cache import library_cache

        folder = tmp_path / "roms"
        (folder / "sub").mkdir(parents=True)
        (folder / "Kid Icarus.zip").write_bytes(b"x")
        (folder / "readme.txt").write_text("x")
        (folder / "sub" / "Contra.NES").write_bytes(b"x")
        library.add_platform("nes", "Nintendo Entertainment System")

        assert batch_import(str(folder), "nes") == ["Kid Icarus", "Contra"]
        game = library_cache.get_game("nes-kid-icarus")
        assert game["title"] == "Kid Icarus"
        assert game["file_path"] == str(folder / "Kid Icarus.zip")
        assert library_cache.get_game("nes-contra") is not None

        # Existing games are left alone
        library.set_favorite("nes-contra", True)
        (folder / "Metroid.nes").write_bytes(b"x")
        assert batch_import(str(folder), "nes") == ["Metroid"]
        assert library_cache.get_game("nes-contra")["favorite"] is True

    def test_invalid_input(self, app, tmp_path):
        from importer import batch_import
        from exceptions import ValidationException, NotFoundException

        with pytest.raises(ValidationException):
            batch_import(str(tmp_path / "absent"), "nes")
        with pytest.raises(NotFoundException):
            batch_import(str(tmp_path), "nes")
