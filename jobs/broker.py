"""
Dramatiq broker for referral reconciliation jobs.

Messages live in Redis. A resync that fails on a database connection
problem is retried with backoff; any other failure is final.
"""

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.middleware import CurrentMessage, Retries, ShutdownNotifications
from loguru import logger
from sqlalchemy.exc import DBAPIError, OperationalError

from app.config.operational_constants import (
    RESYNC_MAX_BACKOFF_MS,
    RESYNC_MAX_RETRIES,
    RESYNC_MIN_BACKOFF_MS,
)
from app.config.settings import settings


def should_retry_resync(retries_so_far: int, exception: BaseException) -> bool:
    """Retry only connection-level database failures, a bounded number of times."""
    if retries_so_far >= RESYNC_MAX_RETRIES:
        return False
    if isinstance(exception, OperationalError):
        return True
    return isinstance(exception, DBAPIError) and exception.connection_invalidated


redis_broker = RedisBroker(
    host=settings.redis_host,
    port=settings.redis_port,
    password=settings.redis_password or None,
    db=settings.redis_db,
    namespace=settings.redis_namespace,
)

redis_broker.add_middleware(ShutdownNotifications())
redis_broker.add_middleware(CurrentMessage())
redis_broker.add_middleware(
    Retries(
        min_backoff=RESYNC_MIN_BACKOFF_MS,
        max_backoff=RESYNC_MAX_BACKOFF_MS,
        retry_when=should_retry_resync,
    )
)

dramatiq.set_broker(redis_broker)

broker = redis_broker

logger.info(
    "Dramatiq broker ready",
    extra={
        "redis": f"{settings.redis_host}:{settings.redis_port}/{settings.redis_db}",
        "namespace": settings.redis_namespace,
        "max_retries": RESYNC_MAX_RETRIES,
    },
)
