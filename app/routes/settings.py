"""
Settings Routes - read and update the YAML configuration
"""

import logging

from flask import Blueprint, request

from api_responses import success_response, error_response, handle_api_errors, ErrorCode
from constants import DEFAULT_SETTINGS
from exceptions import NotFoundException, ValidationException
from redis_cache import invalidate_media_cache
from settings import reload_conf, set_section_settings

# Retrieve main logger
logger = logging.getLogger("main")

settings_bp = Blueprint("settings", __name__, url_prefix="/api")

# Settings never echoed back to clients
MASKED_SETTINGS = {"retroachievements/api_key"}


@settings_bp.route("/settings")
@handle_api_errors
def get_settings_api():
    settings = reload_conf()

    # Flatten settings for the frontend
    flattened = {}
    for section, values in settings.items():
        if isinstance(values, dict):
            for key, value in values.items():
                flattened[f"{section}/{key}"] = value
        else:
            flattened[section] = values

    for key in MASKED_SETTINGS:
        if key in flattened:
            flattened[key] = bool(flattened[key])

    return success_response(data=flattened)


@settings_bp.post("/settings/<section>")
@handle_api_errors
def set_section_settings_api(section):
    if section not in DEFAULT_SETTINGS:
        raise NotFoundException("settings section", section)
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationException("Request body must be a JSON object")

    unknown = sorted(set(data) - set(DEFAULT_SETTINGS[section]))
    if unknown:
        raise ValidationException(f"Unknown {section} settings: {', '.join(unknown)}")

    success, errors = set_section_settings(section, data)
    if not success:
        return error_response(
            ErrorCode.VALIDATION_ERROR, message=f"Invalid {section} settings", details=errors, status_code=400
        )

    logger.info(f"Settings section {section} updated")
    # Bundles cached under the old media root or TTL are stale
    if section in ("media", "cache"):
        invalidate_media_cache()

    return success_response(message=f"{section} settings updated successfully")
