"""
Tests for utility functions, settings and the job tracker
"""
import zipfile
import pytest
from unittest.mock import MagicMock


class TestUtils:
    def test_sanitize_filename(self):
        from utils import sanitize_filename
        assert sanitize_filename('Zelda: Link\'s "Awakening"?') == "Zelda_ Link_s _Awakening__"

    def test_run_blocking_keeps_app_context(self, app):
        from flask import current_app
        from utils import run_blocking

        assert run_blocking(lambda: current_app.name) == app.name
        assert run_blocking(sum, [1, 2, 3]) == 6

    def test_run_blocking_propagates_errors(self):
        from utils import run_blocking

        def boom():
            raise OSError("disk gone")

        with pytest.raises(OSError):
            run_blocking(boom)

    def test_md5_of_empty_archive(self, tmp_path):
        from utils import compute_file_md5

        archive = tmp_path / "empty.zip"
        with zipfile.ZipFile(archive, "w"):
            pass
        with pytest.raises(ValueError):
            compute_file_md5(str(archive))


class TestSettings:
    def test_defaults_written_and_merged(self, app):
        import settings

        current = settings.load_settings()
        assert current["cache"]["media_ttl"] == 86400
        assert current["jobs"]["use_celery"] is False

        settings.save_settings({"media": {"root": "/media"}})
        merged = settings.reload_conf()
        assert merged["media"]["root"] == "/media"
        assert merged["launchbox"]["candidate_roots"] == []

    def test_defaults_are_not_shared(self, app):
        import settings
        from constants import DEFAULT_SETTINGS

        settings.load_settings()["launchbox"]["candidate_roots"].append("/somewhere")
        assert DEFAULT_SETTINGS["launchbox"]["candidate_roots"] == []

    def test_verify_settings(self, tmp_path):
        from settings import verify_settings

        assert verify_settings("media", {"root": str(tmp_path)}) == (True, [])
        success, errors = verify_settings("launchbox", {"root": str(tmp_path / "absent")})
        assert success is False
        assert errors[0]["path"] == "launchbox/root"
        assert verify_settings("cache", {"media_ttl": 0})[0] is False


class TestJobTracker:
    def test_lifecycle(self):
        from job_tracker import JobTracker, JobType, JobStatus

        tracker = JobTracker()
        emitter = MagicMock()
        tracker.set_emitter(emitter)

        job_id = tracker.register_job(JobType.METADATA_INDEX, {"path": "Metadata.xml"})
        assert tracker.get_job(job_id)["status"] == JobStatus.SCHEDULED

        tracker.start_job(job_id, JobType.METADATA_INDEX, "Indexing")
        tracker.update_progress(job_id, current=5, total=10, message="halfway")
        job = tracker.get_job(job_id)
        assert job["status"] == JobStatus.RUNNING
        assert job["progress"]["percent"] == 50.0

        tracker.complete_job(job_id, {"count": 10})
        job = tracker.get_job(job_id)
        assert job["status"] == JobStatus.COMPLETED
        assert job["result"] == {"count": 10}
        assert tracker.get_active_jobs() == []
        emitter.emit.assert_called_with("job_update", job, namespace="/")

    def test_progress_emission_is_throttled(self):
        from job_tracker import JobTracker

        tracker = JobTracker()
        emitter = MagicMock()
        job_id = tracker.register_job("other")
        tracker.start_job(job_id)
        tracker.set_emitter(emitter)

        tracker.update_progress(job_id, 10)
        tracker.update_progress(job_id, 20)
        tracker.update_progress(job_id, 30)
        assert emitter.emit.call_count == 1

        tracker.update_progress(job_id, 100)
        assert emitter.emit.call_count == 2

    def test_fail_and_cleanup(self):
        from datetime import timedelta
        from job_tracker import JobTracker, JobStatus

        tracker = JobTracker()
        job_id = tracker.register_job("other")
        tracker.fail_job(job_id, "boom")
        assert tracker.get_job(job_id)["status"] == JobStatus.FAILED
        assert tracker.get_job(job_id)["error"] == "boom"

        tracker._jobs[job_id].completed_at -= timedelta(hours=48)
        assert tracker.cleanup_old_jobs() == 1
        assert tracker.get_job(job_id) is None

    def test_worker_updates_reach_the_web_process(self):
        from job_tracker import JobTracker, JobType, JobStatus

        # Two trackers sharing one distributed cache, as the web process and a Celery worker do
        web = JobTracker()
        worker = JobTracker()

        job_id = web.register_job(JobType.METADATA_INDEX, {"path": "Metadata.xml"})
        worker.start_job(job_id, JobType.METADATA_INDEX, "Indexing")
        job = web.get_job(job_id)
        assert job["status"] == JobStatus.RUNNING
        assert job["metadata"] == {"path": "Metadata.xml"}

        worker.complete_job(job_id, {"count": 3})
        job = web.get_job(job_id)
        assert job["status"] == JobStatus.COMPLETED
        assert job["result"] == {"count": 3}
        assert [j["id"] for j in web.get_all_jobs()] == [job_id]
        assert web.get_active_jobs() == []

    def test_worker_only_job_is_listed(self, fake_redis):
        from job_tracker import JobTracker, JobType, job_cache_key

        worker = JobTracker()
        job_id = worker.register_job(JobType.LAUNCHBOX_IMPORT)
        assert job_cache_key(job_id) in fake_redis.store
        assert fake_redis.ttls[job_cache_key(job_id)] == 86400

        web = JobTracker()
        assert web.get_job(job_id)["type"] == JobType.LAUNCHBOX_IMPORT
        assert [j["id"] for j in web.get_active_jobs()] == [job_id]

    def test_without_redis_jobs_stay_local(self):
        import redis_cache
        from job_tracker import JobTracker, JobStatus

        down = MagicMock()
        down.ping.side_effect = ConnectionError("redis down")
        redis_cache.set_distributed_cache(redis_cache.DistributedCache(client=down))

        tracker = JobTracker()
        job_id = tracker.register_job("other")
        tracker.complete_job(job_id, "done")
        assert tracker.get_job(job_id)["status"] == JobStatus.COMPLETED
        assert tracker.get_job(job_id)["result"] == {"message": "done"}
        assert JobTracker().get_job(job_id) is None
