"""
System Routes - health, cache and job status
"""

from flask import Blueprint
from sqlalchemy import text

from api_responses import success_response, handle_api_errors
from db import db
from exceptions import NotFoundException
from job_tracker import job_tracker
from library_cache import library_cache
from redis_cache import get_distributed_cache
from utils import now_utc

system_bp = Blueprint("system", __name__, url_prefix="/api")


@system_bp.route("/health/ready", methods=["GET"])
@handle_api_errors
def health_ready_api():
    """
    Readiness probe - checks if the store answers.
    """
    db.session.execute(text("SELECT 1"))
    return success_response(data={"status": "ready", "timestamp": now_utc().isoformat()})


@system_bp.route("/health/live", methods=["GET"])
@handle_api_errors
def health_live_api():
    return success_response(data={"status": "alive", "timestamp": now_utc().isoformat()})


@system_bp.route("/system/cache", methods=["GET"])
@handle_api_errors
def get_cache_info_api():
    return success_response(data={
        "distributed": get_distributed_cache().info(),
        "library": library_cache.stats(),
    })


@system_bp.post("/system/cache/invalidate")
@handle_api_errors
def invalidate_media_cache_api():
    count = get_distributed_cache().invalidate_media_cache()
    return success_response(data={"deleted": count})


@system_bp.route("/system/jobs", methods=["GET"])
@handle_api_errors
def get_jobs_api():
    job_tracker.cleanup_old_jobs()
    return success_response(data=job_tracker.get_all_jobs())


@system_bp.route("/system/jobs/<job_id>", methods=["GET"])
@handle_api_errors
def get_job_api(job_id):
    job = job_tracker.get_job(job_id)
    if job is None:
        raise NotFoundException("job", job_id)
    return success_response(data=job)
