"""
Skip-if-running guard for the reminder job.

With REDIS_URL set the lock is shared by every worker process (SET NX EX);
otherwise it only serialises runs inside this process.
"""
import logging
import secrets
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

import redis

from config import settings

logger = logging.getLogger(__name__)

LOCK_KEY = "locks:abandoned-cart-reminders"

_local_lock = threading.Lock()
_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> Optional[redis.Redis]:
    global _redis_client
    if not settings.REDIS_URL:
        return None
    if _redis_client is None:
        _redis_client = redis.Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
    return _redis_client


@contextmanager
def _process_lock() -> Iterator[bool]:
    acquired = _local_lock.acquire(blocking=False)
    try:
        yield acquired
    finally:
        if acquired:
            _local_lock.release()


@contextmanager
def reminder_lock() -> Iterator[bool]:
    """Yields True when this caller holds the lock, False when a run is already in progress."""
    client = get_redis_client()
    if client is None:
        with _process_lock() as acquired:
            yield acquired
        return

    token = secrets.token_hex(16)
    try:
        acquired = bool(client.set(LOCK_KEY, token, nx=True, ex=settings.REMINDER_LOCK_TTL_SECONDS))
    except redis.RedisError as e:
        # Per-cart claims still prevent double sends across processes
        logger.warning(f"Redis lock unavailable ({e}); using process-local lock")
        with _process_lock() as acquired:
            yield acquired
        return

    try:
        yield acquired
    finally:
        if acquired:
            try:
                if client.get(LOCK_KEY) == token:
                    client.delete(LOCK_KEY)
            except redis.RedisError as e:
                logger.warning(f"Could not release reminder lock, it will expire on its own: {e}")
