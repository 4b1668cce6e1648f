"""
Metadata Routes - metadata index, media resolution and LaunchBox import
"""

import os

import gevent
import structlog
from flask import Blueprint, request, current_app

import importer
import library
from api_responses import success_response, handle_api_errors, json_body
from exceptions import NotFoundException, ValidationException
from job_tracker import job_tracker, JobType
from media_resolver import GameMediaBundle, media_resolver
from metadata_indexer import index_metadata_job
from repositories.games_repository import GamesRepository
from repositories.platforms_repository import PlatformsRepository
from settings import load_settings
from utils import run_blocking

logger = structlog.get_logger("main")

metadata_bp = Blueprint("metadata", __name__, url_prefix="/api")


def _use_celery():
    return bool(load_settings().get("jobs", {}).get("use_celery"))


def _spawn_job(tracked_job_id, fn, *args, **kwargs):
    """Run `fn` off the request on the hub thread pool; failures are recorded on the job."""
    app = current_app._get_current_object()

    def _run():
        with app.app_context():
            try:
                run_blocking(fn, *args, **kwargs)
            except Exception as e:
                logger.error("background_job_failed", job_id=tracked_job_id, error=str(e))
                job_tracker.fail_job(tracked_job_id, str(e))

    gevent.spawn(_run)


def _default_metadata_path():
    root = importer.detect_launchbox()
    if not root:
        raise ValidationException("No metadata path given and no LaunchBox installation detected")
    return importer.metadata_xml_path(root)


@metadata_bp.post("/metadata/index")
@handle_api_errors
def index_metadata_api():
    data = json_body()
    path = data.get("path") or _default_metadata_path()
    if not os.path.isfile(path):
        raise NotFoundException("metadata file", path)

    if data.get("async"):
        job_id = job_tracker.register_job(JobType.METADATA_INDEX, {"path": path})
        if _use_celery():
            from celery_app import queue_task
            queue_task("tasks.index_metadata_async", path, job_id)
        else:
            _spawn_job(job_id, index_metadata_job, path, job_id=job_id)
        return success_response(data={"job_id": job_id}, status_code=202)

    count = run_blocking(index_metadata_job, path)
    return success_response(data={"count": count})


@metadata_bp.route("/media/resolve")
@handle_api_errors
def resolve_media_api():
    platform = request.args.get("platform", "").strip()
    title = request.args.get("title", "").strip()
    if not platform or not title:
        raise ValidationException("Query parameters 'platform' and 'title' are required")
    media_root = request.args.get("media_root") or None
    bundle = media_resolver.resolve(platform, title, media_root=media_root)
    return success_response(data=bundle.to_dict())


@metadata_bp.post("/games/<game_id>/metadata")
@handle_api_errors
def apply_metadata_api(game_id):
    data = json_body()
    if data:
        if not data.get("platform") or not data.get("title"):
            raise ValidationException("Bundle requires 'platform' and 'title'")
        bundle = GameMediaBundle.from_dict(data)
    else:
        game = GamesRepository.get_or_404(game_id)
        platform = PlatformsRepository.get_by_id(game.platform_id)
        platform_name = platform.name if platform is not None else game.platform_id
        media_root = platform.media_root if platform is not None else None
        bundle = media_resolver.resolve(platform_name, game.title, media_root=media_root)
    return success_response(data=library.apply_resolved_metadata(game_id, bundle))


@metadata_bp.post("/import/launchbox")
@handle_api_errors
def import_launchbox_api():
    data = json_body()
    root = data.get("root") or importer.detect_launchbox()
    if not root:
        raise ValidationException("No LaunchBox root given and none detected")

    if data.get("async"):
        job_id = job_tracker.register_job(JobType.LAUNCHBOX_IMPORT, {"root": root})
        if _use_celery():
            from celery_app import queue_task
            queue_task("tasks.import_launchbox_async", root, job_id)
        else:
            _spawn_job(job_id, importer.import_launchbox_job, root, job_id=job_id)
        return success_response(data={"job_id": job_id}, status_code=202)

    return success_response(data=importer.import_launchbox(root))


@metadata_bp.post("/import/folder")
@handle_api_errors
def import_folder_api():
    data = json_body()
    folder_path = data.get("folder_path")
    platform_id = data.get("platform_id")
    if not folder_path or not platform_id:
        raise ValidationException("'folder_path' and 'platform_id' are required")
    titles = run_blocking(importer.batch_import, folder_path, platform_id)
    return success_response(data={"imported": titles, "count": len(titles)})


@metadata_bp.route("/import/launchbox/detect")
@handle_api_errors
def detect_launchbox_api():
    root = importer.detect_launchbox()
    return success_response(data={"root": root, "found": root is not None})
