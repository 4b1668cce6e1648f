from celery import Celery
import os
import logging

logger = logging.getLogger(__name__)


def make_celery(app_name=__name__):
    redis_url = os.environ.get('REDIS_URL', 'redis://localhost:6379/0')
    celery = Celery(
        app_name,
        broker=redis_url,
        backend=redis_url,
        include=['tasks']
    )

    celery.conf.update(
        task_serializer='json',
        accept_content=['json'],
        result_serializer='json',
        timezone='UTC',
        enable_utc=True,
    )
    return celery


celery = make_celery('retroshelf')


def queue_task(name, *args):
    """Queue a task by name so the web process never imports the worker module."""
    result = celery.send_task(name, args=list(args))
    logger.info(f"Queued Celery task {name} ({result.id})")
    return result.id
