from __future__ import annotations
from dataclasses import dataclass, field
import datetime
from datetime import timedelta
from typing import Optional, Dict, Any, List
import threading
import time
import uuid
import logging

from constants import JOB_CACHE_PREFIX, JOB_CACHE_TTL
from redis_cache import get_distributed_cache
from utils import now_utc

logger = logging.getLogger(__name__)


class JobType:
    METADATA_INDEX = "metadata_index"
    LAUNCHBOX_IMPORT = "launchbox_import"
    FOLDER_IMPORT = "folder_import"
    MEDIA_RESOLVE = "media_resolve"
    OTHER = "other"


class JobStatus:
    SCHEDULED = "scheduled"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class JobState:
    """Internal state of a job"""

    job_id: str
    job_type: str
    status: str
    started_at: Optional[datetime.datetime] = None
    completed_at: Optional[datetime.datetime] = None
    progress: Dict[str, Any] = field(default_factory=lambda: {"percent": 0, "current": 0, "total": None, "message": ""})
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    updated_at: Optional[datetime.datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.job_id,
            "type": self.job_type,
            "status": self.status,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "progress": dict(self.progress),
            "result": self.result,
            "error": self.error,
            "metadata": dict(self.metadata),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


def job_cache_key(job_id: str) -> str:
    return f"{JOB_CACHE_PREFIX}:{job_id}"


def _updated_at(job: Optional[Dict]) -> datetime.datetime:
    if job and job.get("updated_at"):
        return datetime.datetime.fromisoformat(job["updated_at"])
    return datetime.datetime.min.replace(tzinfo=datetime.timezone.utc)


def _newest(local: Optional[Dict], shared: Optional[Dict]) -> Optional[Dict]:
    if local is None or shared is None:
        return local or shared
    return shared if _updated_at(shared) > _updated_at(local) else local


class JobTracker:
    """
    Registry of running and recent jobs, pushed to clients over SocketIO.

    Every state change is also published to the distributed cache, so a job
    queued here and run by a Celery worker reports the worker's progress.
    Without Redis the registry is process-local.
    """

    def __init__(self):
        self.emitter = None
        self._jobs: Dict[str, JobState] = {}
        self._lock = threading.Lock()
        self._last_update_time = {}  # job_id -> timestamp

    def set_emitter(self, emitter):
        """Set the SocketIO emitter for real-time updates"""
        self.emitter = emitter
        logger.debug("JobTracker emitter set")

    def _publish(self, job_id: str):
        """Store the job in the distributed cache and emit it to connected clients"""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return
            job.updated_at = now_utc()
            data = job.to_dict()

        get_distributed_cache().set(job_cache_key(job_id), data, JOB_CACHE_TTL)

        if not self.emitter:
            return
        try:
            if hasattr(self.emitter, "emit"):
                # standard socketio object
                self.emitter.emit("job_update", data, namespace="/")
            else:
                # functional proxy
                self.emitter("job_update", data)
        except Exception as e:
            logger.debug(f"Failed to emit job update for {job_id}: {e}")

    def _adopt_shared(self, job_id: str) -> Optional[JobState]:
        """Local state for a job registered by another process, if it was published"""
        shared = get_distributed_cache().get(job_cache_key(job_id))
        if not shared:
            return None
        return JobState(
            job_id=job_id,
            job_type=shared.get("type") or JobType.OTHER,
            status=shared.get("status") or JobStatus.SCHEDULED,
            metadata=shared.get("metadata") or {},
        )

    def register_job(self, job_type: str, metadata: Dict[str, Any] = None) -> str:
        """Register a new job and return the job_id"""
        job_id = f"{job_type}_{uuid.uuid4().hex[:8]}"
        with self._lock:
            self._jobs[job_id] = JobState(
                job_id=job_id, job_type=job_type, status=JobStatus.SCHEDULED, metadata=metadata or {}
            )
        logger.info(f"Registered job: {job_id} ({job_type})")
        self._publish(job_id)
        return job_id

    def start_job(self, job_id: str, job_type: str = None, message: str = ""):
        """Mark job as started, registering it implicitly when unknown"""
        with self._lock:
            known = job_id in self._jobs
        adopted = None if known else self._adopt_shared(job_id)

        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                job = adopted or JobState(job_id=job_id, job_type=job_type or JobType.OTHER,
                                          status=JobStatus.SCHEDULED)
                self._jobs[job_id] = job
            job.status = JobStatus.RUNNING
            job.started_at = now_utc()
            job.progress["message"] = message
        logger.info(f"Started job: {job_id}")
        self._publish(job_id)

    def update_progress(self, job_id: str, percent: float = 0, total: int = None, message: str = "",
                        current: int = None):
        """
        Update job progress and notify clients.
        Publication is throttled to one update per second except at 0% and 100%.
        """
        calc_percent = float(percent)
        if total:
            current_val = float(current if current is not None else percent)
            calc_percent = round(current_val / float(total) * 100, 1)

        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return
            job.progress["percent"] = calc_percent
            if current is not None:
                job.progress["current"] = current
            if total is not None:
                job.progress["total"] = total
            if message:
                job.progress["message"] = str(message)

        now = time.time()
        last_time = self._last_update_time.get(job_id, 0)
        is_critical = calc_percent <= 0 or calc_percent >= 100
        if not (last_time == 0 or is_critical or (now - last_time) >= 1.0):
            return
        self._last_update_time[job_id] = now
        self._publish(job_id)

    def complete_job(self, job_id: str, result: Any = None):
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return
            job.status = JobStatus.COMPLETED
            job.completed_at = now_utc()
            job.progress["percent"] = 100
            job.result = result if isinstance(result, dict) else {"message": str(result)}
        self._last_update_time.pop(job_id, None)
        logger.info(f"Completed job: {job_id}")
        self._publish(job_id)

    def fail_job(self, job_id: str, error: str):
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return
            job.status = JobStatus.FAILED
            job.completed_at = now_utc()
            job.error = error
        self._last_update_time.pop(job_id, None)
        logger.error(f"Failed job: {job_id} - {error}")
        self._publish(job_id)

    def get_job(self, job_id: str) -> Optional[Dict]:
        """Latest known state, whichever of this process or the distributed cache saw it last"""
        with self._lock:
            job = self._jobs.get(job_id)
            local = job.to_dict() if job else None
        return _newest(local, get_distributed_cache().get(job_cache_key(job_id)))

    def _all_jobs(self) -> Dict[str, Dict]:
        with self._lock:
            local = {job_id: j.to_dict() for job_id, j in self._jobs.items()}
        shared = {}
        for data in get_distributed_cache().get_pattern(job_cache_key("*")).values():
            if isinstance(data, dict) and data.get("id"):
                shared[data["id"]] = data
        return {job_id: _newest(local.get(job_id), shared.get(job_id)) for job_id in set(local) | set(shared)}

    def get_all_jobs(self) -> List[Dict]:
        """Return active jobs and jobs finished in the last 24 hours, newest first"""
        cutoff = now_utc() - timedelta(hours=24)
        jobs = [
            j for j in self._all_jobs().values()
            if j["status"] in (JobStatus.SCHEDULED, JobStatus.RUNNING)
            or (j["completed_at"] and datetime.datetime.fromisoformat(j["completed_at"]) > cutoff)
        ]
        jobs.sort(key=lambda j: j["started_at"] or j["updated_at"] or "", reverse=True)
        return jobs

    def get_active_jobs(self) -> List[Dict]:
        return [
            j for j in self._all_jobs().values() if j["status"] in (JobStatus.SCHEDULED, JobStatus.RUNNING)
        ]

    def cleanup_old_jobs(self, max_age_hours: int = 24):
        """Remove completed/failed jobs older than max_age_hours, here and in the distributed cache"""
        cutoff = now_utc() - timedelta(hours=max_age_hours)
        with self._lock:
            stale = [
                job_id for job_id, j in self._jobs.items()
                if j.status in (JobStatus.COMPLETED, JobStatus.FAILED) and j.completed_at and j.completed_at < cutoff
            ]
            for job_id in stale:
                del self._jobs[job_id]
        cache = get_distributed_cache()
        for job_id in stale:
            cache.delete(job_cache_key(job_id))
        return len(stale)


# Global singleton
job_tracker = JobTracker()
