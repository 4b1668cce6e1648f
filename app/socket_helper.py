import os
import logging
from flask_socketio import SocketIO

logger = logging.getLogger('main')

_socketio_emitter = None


def get_socketio_emitter():
    """Returns an emitter function that works from Celery workers through the Redis message queue"""
    global _socketio_emitter

    if _socketio_emitter is not None:
        return _socketio_emitter

    pid = os.getpid()
    redis_url = os.environ.get("REDIS_URL")

    if redis_url:
        try:
            client = SocketIO(message_queue=redis_url, socketio_path='socket.io')

            def broadcast_emit(event, data, *args, **kwargs):
                kwargs['namespace'] = '/'
                try:
                    client.emit(event, data, *args, **kwargs)
                    logger.debug(f"[SocketIO PID:{pid}] Emitted '{event}'")
                except Exception as e:
                    logger.error(f"[SocketIO PID:{pid}] Emit failed for '{event}': {e}")

            _socketio_emitter = broadcast_emit
            logger.info(f"[SocketIO PID:{pid}] Broadcast emitter created (Redis: {redis_url})")
        except Exception as e:
            logger.error(f"[SocketIO PID:{pid}] Failed to create SocketIO emitter: {e}")
            # Not cached, so the next call retries
            return lambda *args, **kwargs: None
    else:
        logger.warning(f"[SocketIO PID:{pid}] No REDIS_URL environment variable, using no-op emitter")
        _socketio_emitter = lambda *args, **kwargs: None

    return _socketio_emitter
