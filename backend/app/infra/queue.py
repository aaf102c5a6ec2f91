from __future__ import annotations

import logging
from typing import Any, Callable, Dict

import redis
from rq import Queue

from app.core.config import settings

logger = logging.getLogger(__name__)


def is_async_enabled() -> bool:
    return bool(settings.ASYNC_QUEUE_ENABLED)


def get_redis_conn() -> redis.Redis:
    return redis.Redis.from_url(str(settings.REDIS_URL))


def get_queue(name: str = "default") -> Queue:
    return Queue(name, connection=get_redis_conn(), default_timeout=int(settings.RQ_DEFAULT_TIMEOUT_SEC))


def enqueue(fn: Callable[..., Any], *args: Any, queue_name: str = "default", **kwargs: Any) -> Dict[str, Any]:
    """Enqueue a background job.

    When the async queue is disabled the job runs inline and its return value
    is reported under ``result``.
    """
    if not is_async_enabled():
        out = fn(*args, **kwargs)
        return {"job_id": None, "queued": False, "sync_executed": True, "result": out}

    job = get_queue(queue_name).enqueue(fn, *args, **kwargs)
    logger.info("job queued id=%s fn=%s queue=%s", job.id, getattr(fn, "__name__", fn), queue_name)
    return {"job_id": str(job.id), "queued": True, "sync_executed": False}
