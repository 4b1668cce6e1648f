"""
Library Routes - read endpoints served from the in-process snapshot and game mutations
"""

from flask import Blueprint, request

import library
from api_responses import success_response, handle_api_errors, json_body
from exceptions import NotFoundException, ValidationException
from library_cache import library_cache

library_bp = Blueprint("library", __name__, url_prefix="/api")

# Optional columns accepted by POST /api/games
GAME_CREATE_FIELDS = (
    "sort_title", "developer", "publisher", "genre", "play_mode", "max_players",
    "description", "rating", "region", "release_date",
)


def _require_bool(data, key):
    if key not in data:
        raise ValidationException(f"Missing required field: {key}")
    value = data[key]
    if not isinstance(value, bool):
        raise ValidationException(f"Field '{key}' must be a boolean")
    return value


@library_bp.post("/library/reload")
@handle_api_errors
def reload_library_api():
    library_cache.reload()
    return success_response(data=library_cache.stats())


@library_bp.route("/library/stats")
@handle_api_errors
def library_stats_api():
    return success_response(data=library_cache.stats())


@library_bp.route("/platforms")
@handle_api_errors
def get_platforms_api():
    return success_response(data=library_cache.get_platforms())


@library_bp.route("/platforms/<platform_id>/games")
@handle_api_errors
def get_games_for_platform_api(platform_id):
    return success_response(data=library_cache.get_games_for_platform(platform_id))


@library_bp.delete("/platforms/<platform_id>")
@handle_api_errors
def delete_platform_api(platform_id):
    library.delete_platform(platform_id)
    return success_response(message=f"Platform {platform_id} deleted")


@library_bp.route("/games/versions")
@handle_api_errors
def get_game_versions_api():
    title = request.args.get("title", "").strip()
    if not title:
        raise ValidationException("Query parameter 'title' is required")
    return success_response(data=library_cache.get_game_versions(title))


@library_bp.route("/games/<game_id>")
@handle_api_errors
def get_game_api(game_id):
    game = library_cache.get_game(game_id)
    if game is None:
        raise NotFoundException("game", game_id)
    return success_response(data=game)


@library_bp.route("/games/<game_id>/images")
@handle_api_errors
def get_game_images_api(game_id):
    return success_response(data=library_cache.get_game_images(game_id))


@library_bp.post("/games")
@handle_api_errors
def add_game_api():
    data = json_body()
    extra = {k: data[k] for k in GAME_CREATE_FIELDS if data.get(k) is not None}
    game = library.add_game(
        data.get("id"), data.get("platform_id"), data.get("title"), data.get("file_path"), **extra
    )
    return success_response(data=game, status_code=201)


@library_bp.delete("/games/<game_id>")
@handle_api_errors
def delete_game_api(game_id):
    library.delete_game(game_id)
    return success_response(message=f"Game {game_id} deleted")


@library_bp.post("/games/<game_id>/favorite")
@handle_api_errors
def set_favorite_api(game_id):
    favorite = _require_bool(json_body(), "favorite")
    return success_response(data=library.set_favorite(game_id, favorite))


@library_bp.post("/games/<game_id>/completed")
@handle_api_errors
def set_completed_api(game_id):
    completed = _require_bool(json_body(), "completed")
    return success_response(data=library.set_completed(game_id, completed))


@library_bp.post("/games/<game_id>/rating")
@handle_api_errors
def set_star_rating_api(game_id):
    data = json_body()
    if "rating" not in data:
        raise ValidationException("Missing required field: rating")
    return success_response(data=library.set_star_rating(game_id, data["rating"]))


@library_bp.post("/games/<game_id>/reset-stats")
@handle_api_errors
def reset_game_stats_api(game_id):
    return success_response(data=library.reset_game_stats(game_id))


@library_bp.post("/games/<game_id>/played")
@handle_api_errors
def record_play_session_api(game_id):
    data = json_body()
    return success_response(data=library.record_play_session(game_id, data.get("seconds", 0)))


@library_bp.post("/games/<game_id>/m3u")
@handle_api_errors
def generate_m3u_api(game_id):
    return success_response(data={"path": library.generate_m3u(game_id)})


@library_bp.post("/games/<game_id>/hash")
@handle_api_errors
def compute_hash_api(game_id):
    force = bool(json_body().get("force", False))
    return success_response(data={"hash": library.compute_game_hash(game_id, force=force)})


@library_bp.post("/games/<game_id>/compatibility")
@handle_api_errors
def check_compatibility_api(game_id):
    ra_game_id = library.check_ra_compatibility(game_id)
    return success_response(data={"ra_game_id": ra_game_id, "compatible": ra_game_id is not None})
