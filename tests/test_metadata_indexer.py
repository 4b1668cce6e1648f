"""
Tests for the Metadata.xml indexer
"""
import pytest
from unittest.mock import patch


class TestSearchTitle:
    """Test title normalization"""

    def test_strips_region_and_punctuation(self):
        from metadata_indexer import search_title
        assert search_title("Metroid Prime (USA)") == "metroid prime"
        assert search_title("Pokémon: Blue!") == "pokémon blue"

    def test_brackets_and_whitespace(self):
        from metadata_indexer import search_title
        assert search_title("Sonic  the   Hedgehog [!]") == "sonic the hedgehog"

    def test_empty(self):
        from metadata_indexer import search_title
        assert search_title("") == ""
        assert search_title(None) == ""
        assert search_title("(Japan)") == ""


class TestBuildMetadataRow:
    def test_row_without_id_is_dropped(self):
        from metadata_indexer import build_metadata_row
        assert build_metadata_row({"Name": "Nothing", "DatabaseID": "  "}) is None

    def test_release_date_trimmed_and_year_fallback(self):
        from metadata_indexer import build_metadata_row
        row = build_metadata_row({"DatabaseID": "1", "Name": "A", "ReleaseDate": "1986-08-06T00:00:00-07:00"})
        assert row["release_date"] == "1986-08-06"

        row = build_metadata_row({"DatabaseID": "2", "Name": "B", "ReleaseYear": "2002"})
        assert row["release_date"] == "2002"

    def test_community_rating(self):
        from metadata_indexer import build_metadata_row
        assert build_metadata_row({"DatabaseID": "1", "CommunityRating": "4.5"})["star_rating"] == 4.5
        assert build_metadata_row({"DatabaseID": "1", "CommunityRating": "n/a"})["star_rating"] is None


class TestMetadataIndexer:
    """Test indexing into the metadata table"""

    def test_index_counts_rows(self, app, metadata_xml):
        from metadata_indexer import index
        from repositories.metadata_repository import MetadataRepository

        # 100, 101, 200; the empty id is skipped and the duplicate 100 collapses
        assert index(metadata_xml) == 3
        assert MetadataRepository.count() == 3

    def test_duplicate_id_keeps_first(self, app, metadata_xml):
        from metadata_indexer import index
        from repositories.metadata_repository import MetadataRepository

        index(metadata_xml)
        record = MetadataRepository.get_by_id("100")
        assert record.title == "Metroid"
        assert record.search_title == "metroid"
        assert record.developer == "Nintendo R&D1"
        assert record.release_date == "1986-08-06"
        assert record.star_rating == pytest.approx(4.2)

    def test_only_direct_game_children_are_records(self, app, metadata_xml):
        from metadata_indexer import index
        from repositories.metadata_repository import MetadataRepository

        index(metadata_xml)
        assert MetadataRepository.get_by_id("102") is None

    def test_reindex_replaces_contents(self, app, metadata_xml, tmp_path):
        from metadata_indexer import index
        from repositories.metadata_repository import MetadataRepository

        assert index(metadata_xml) == 3
        assert index(metadata_xml) == 3

        smaller = tmp_path / "Small.xml"
        smaller.write_text(
            "<LaunchBox><Game><Name>Solo</Name><DatabaseID>9</DatabaseID></Game></LaunchBox>",
            encoding="utf-8",
        )
        assert index(str(smaller)) == 1
        assert MetadataRepository.get_by_id("100") is None

    def test_parse_error_keeps_previous_rows(self, app, metadata_xml, tmp_path):
        from metadata_indexer import index
        from exceptions import ParseException
        from repositories.metadata_repository import MetadataRepository

        index(metadata_xml)

        broken = tmp_path / "Broken.xml"
        content = "<LaunchBox>\n<Game><Name>Ok</Name><DatabaseID>1</DatabaseID></Game>\n<Game><Name>Bad</Name></Gme>\n"
        broken.write_text(content, encoding="utf-8")

        with pytest.raises(ParseException) as excinfo:
            index(str(broken))

        err = excinfo.value
        assert err.line == 3
        assert err.offset is not None
        assert 0 < err.offset <= len(content.encode("utf-8"))
        assert err.records_parsed == 1
        assert MetadataRepository.count() == 3
        assert MetadataRepository.get_by_id("1") is None

    def test_missing_file(self, app, tmp_path):
        from metadata_indexer import index
        from exceptions import NotFoundException

        with pytest.raises(NotFoundException):
            index(str(tmp_path / "nope.xml"))

    def test_progress_callback(self, app, tmp_path):
        from metadata_indexer import MetadataIndexer

        games = "".join(
            f"<Game><Name>Game {i}</Name><DatabaseID>{i}</DatabaseID></Game>" for i in range(1, 26)
        )
        path = tmp_path / "Many.xml"
        path.write_text(f"<LaunchBox>{games}</LaunchBox>", encoding="utf-8")

        seen = []
        indexer = MetadataIndexer(batch_size=7, progress_interval=10, chunk_size=64)
        assert indexer.index(str(path), progress_callback=seen.append) == 25
        assert seen == [10, 20]

    def test_index_invalidates_media_cache(self, app, metadata_xml, distributed_cache, fake_redis):
        from metadata_indexer import index

        distributed_cache.set("metadata:Nintendo Entertainment System:Metroid", {"title": "Metroid"}, 60)
        distributed_cache.set("other:key", {"keep": True}, 60)
        index(metadata_xml)
        assert "metadata:Nintendo Entertainment System:Metroid" not in fake_redis.store
        assert "other:key" in fake_redis.store

    def test_index_job_records_result(self, app, metadata_xml):
        from metadata_indexer import index_metadata_job
        from job_tracker import job_tracker, JobType, JobStatus

        job_id = job_tracker.register_job(JobType.METADATA_INDEX, {"path": metadata_xml})
        assert index_metadata_job(metadata_xml, job_id=job_id) == 3
        job = job_tracker.get_job(job_id)
        assert job["status"] == JobStatus.COMPLETED
        assert job["result"] == {"count": 3}

    def test_index_job_failure(self, app, tmp_path):
        from metadata_indexer import index_metadata_job
        from exceptions import NotFoundException
        from job_tracker import job_tracker, JobType, JobStatus

        job_id = job_tracker.register_job(JobType.METADATA_INDEX, {})
        with pytest.raises(NotFoundException):
            index_metadata_job(str(tmp_path / "missing.xml"), job_id=job_id)
        assert job_tracker.get_job(job_id)["status"] == JobStatus.FAILED

    def test_store_failure_mid_run_rolls_back(self, app, metadata_xml, tmp_path):
        from sqlalchemy.exc import OperationalError
        from metadata_indexer import MetadataIndexer, index
        from exceptions import StoreException
        from repositories.metadata_repository import MetadataRepository

        index(metadata_xml)

        games = "".join(
            f"<Game><Name>Game {i}</Name><DatabaseID>g{i}</DatabaseID></Game>" for i in range(1, 11)
        )
        path = tmp_path / "Ten.xml"
        path.write_text(f"<LaunchBox>{games}</LaunchBox>", encoding="utf-8")

        real_insert = MetadataRepository.insert_batch
        calls = []

        def flaky_insert(rows):
            calls.append(len(rows))
            if len(calls) == 2:
                raise OperationalError("INSERT", {}, Exception("disk I/O error"))
            real_insert(rows)

        with patch("metadata_indexer.MetadataRepository.insert_batch", side_effect=flaky_insert):
            with pytest.raises(StoreException):
                MetadataIndexer(batch_size=4).index(str(path))

        assert calls == [4, 4]
        assert MetadataRepository.count() == 3
        assert MetadataRepository.get_by_id("g1") is None
        assert MetadataRepository.get_by_id("100").title == "Metroid"
