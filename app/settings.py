from constants import *
import copy
import yaml
import os

import logging

# Retrieve main logger
logger = logging.getLogger("main")

# Cache variable
_cached_settings = None


def _merge_defaults(settings):
    # Deep merge with defaults so sections added in newer versions are present
    merged_settings = copy.deepcopy(DEFAULT_SETTINGS)
    for section, values in settings.items():
        if isinstance(values, dict) and section in merged_settings and isinstance(merged_settings[section], dict):
            merged_settings[section].update(values)
        else:
            merged_settings[section] = values
    return merged_settings


def load_settings(force=False):
    global _cached_settings

    if _cached_settings and not force:
        return _cached_settings

    if os.path.exists(CONFIG_FILE):
        logger.debug(f"Reading configuration file: {CONFIG_FILE}")
        with open(CONFIG_FILE, "r") as yaml_file:
            settings = yaml.safe_load(yaml_file) or {}
        settings = _merge_defaults(settings)
    else:
        settings = copy.deepcopy(DEFAULT_SETTINGS)
        save_settings(settings)

    _cached_settings = settings
    return settings


def save_settings(settings):
    os.makedirs(os.path.dirname(CONFIG_FILE), exist_ok=True)
    with open(CONFIG_FILE, "w") as yaml_file:
        yaml.dump(settings, yaml_file)


def verify_settings(section, data):
    success = True
    errors = []
    if section == "launchbox":
        root = data.get("root")
        if root and not os.path.isdir(root):
            success = False
            errors.append({"path": "launchbox/root", "error": f"Path {root} does not exists."})
        for candidate in data.get("candidate_roots") or []:
            if not isinstance(candidate, str):
                success = False
                errors.append({"path": "launchbox/candidate_roots", "error": f"Invalid path {candidate!r}."})
                break
    elif section == "media":
        root = data.get("root")
        if root and not os.path.isdir(root):
            success = False
            errors.append({"path": "media/root", "error": f"Path {root} does not exists."})
    elif section == "cache":
        ttl = data.get("media_ttl", MEDIA_CACHE_TTL)
        if not isinstance(ttl, int) or ttl <= 0:
            success = False
            errors.append({"path": "cache/media_ttl", "error": "TTL must be a positive integer."})
    return success, errors


def set_section_settings(section, data):
    """Validate and persist one settings section."""
    success, errors = verify_settings(section, data)
    if not success:
        return success, errors
    settings = load_settings()
    if isinstance(settings.get(section), dict):
        settings[section].update(data)
    else:
        settings[section] = data
    save_settings(settings)
    reload_conf()
    return success, errors


def get_media_root():
    return load_settings()["media"].get("root") or None


def get_media_cache_ttl():
    return int(load_settings()["cache"].get("media_ttl") or MEDIA_CACHE_TTL)


def reload_conf():
    """Reload application settings cache"""
    global _cached_settings
    _cached_settings = None
    return load_settings(force=True)
