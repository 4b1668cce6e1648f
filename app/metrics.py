from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from flask import Response, request
import time
import logging

logger = logging.getLogger("main")

# Metadata index
metadata_rows_indexed_total = Counter("retroshelf_metadata_rows_indexed_total", "Metadata rows written by index runs")

metadata_index_duration_seconds = Histogram(
    "retroshelf_metadata_index_duration_seconds", "Duration of metadata index runs", ["status"]
)

metadata_rows = Gauge("retroshelf_metadata_rows", "Rows currently in the metadata table")

# Media resolution
media_cache_requests_total = Counter(
    "retroshelf_media_cache_requests_total", "Media bundle cache lookups", ["result"]
)

media_walk_duration_seconds = Histogram("retroshelf_media_walk_duration_seconds", "Media tree search duration")

media_placeholder_total = Counter("retroshelf_media_placeholder_total", "Bundles resolved with a placeholder box front")

# Library snapshot
library_reload_duration_seconds = Histogram(
    "retroshelf_library_reload_duration_seconds", "Library snapshot reload duration", ["status"]
)

library_platforms_total = Gauge("retroshelf_library_platforms_total", "Platforms in the library snapshot")
library_games_total = Gauge("retroshelf_library_games_total", "Games in the library snapshot")
library_images_total = Gauge("retroshelf_library_images_total", "Images in the library snapshot")
library_generation = Gauge("retroshelf_library_generation", "Current library snapshot generation")

# API Metrics
api_request_duration_seconds = Histogram(
    "retroshelf_api_request_duration_seconds", "API request duration", ["endpoint", "method"]
)

api_requests_total = Counter(
    "retroshelf_api_requests_total", "Total API requests", ["endpoint", "method", "status_code"]
)


def init_metrics(app):
    @app.route("/metrics")
    def metrics():
        update_library_metrics()
        return Response(generate_latest(), mimetype=CONTENT_TYPE_LATEST)

    @app.before_request
    def before_request():
        request.start_time = time.time()

    @app.after_request
    def after_request(response):
        duration = time.time() - getattr(request, "start_time", time.time())
        api_request_duration_seconds.labels(endpoint=request.endpoint or "unknown", method=request.method).observe(
            duration
        )
        api_requests_total.labels(
            endpoint=request.endpoint or "unknown", method=request.method, status_code=response.status_code
        ).inc()
        return response

    logger.info("Prometheus metrics initialized at /metrics")


def update_library_metrics():
    """Refresh snapshot gauges from the in-process library cache."""
    from library_cache import library_cache

    stats = library_cache.stats()
    library_platforms_total.set(stats["platforms"])
    library_games_total.set(stats["games"])
    library_images_total.set(stats["images"])
    library_generation.set(stats["generation"])

