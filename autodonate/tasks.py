"""
Background tasks for RQ (Redis Queue).

Run worker: rq worker -u $REDIS_URL --with-scheduler
"""

from __future__ import annotations

from redis import Redis
from redis.exceptions import RedisError
from rq import Queue

from autodonate import config
from autodonate.models.notification import insert_notification
from autodonate.utils.db import Database
from autodonate.utils.logger import get_logger

logger = get_logger(__name__)

_worker_db: Database | None = None


def _db() -> Database:
    # one pool per worker process, built on the first job it runs
    global _worker_db
    if _worker_db is None:
        _worker_db = Database.from_config(config.as_flask_config())
    return _worker_db


def deliver_notification(user_id: str, title: str, message: str, type: str = "system") -> None:
    insert_notification(_db(), user_id=user_id, title=title, message=message, type=type)


def enqueue_notification(
    user_id: str, title: str, message: str, type: str = "system", *, redis_url: str | None = None
) -> bool:
    """
    Enqueue deliver_notification on the default queue.
    Returns True if enqueued, False if the queue is unavailable.
    """
    try:
        conn = Redis.from_url(redis_url or config.REDIS_URL, decode_responses=False)
        q = Queue("default", connection=conn)
        q.enqueue(deliver_notification, user_id, title, message, type, job_timeout="1m")
        return True
    except RedisError as e:
        logger.warning(f"RQ enqueue failed ({e})")
        return False
