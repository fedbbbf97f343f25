# app/config/redis.py
"""Redis client for the Celery broker (health checks only; Celery manages its own connections)"""
import redis.asyncio as redis
from typing import Optional

from app.config.settings import get_settings

settings = get_settings()

_broker_pool: Optional[redis.ConnectionPool] = None


def get_broker_pool() -> redis.ConnectionPool:
    global _broker_pool
    if _broker_pool is None:
        _broker_pool = redis.ConnectionPool.from_url(
            settings.CELERY_BROKER_URL,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            socket_connect_timeout=settings.OUTBOUND_TIMEOUT_SECONDS,
            retry_on_timeout=True,
        )
    return _broker_pool


async def ping_broker() -> bool:
    """True when the reconciliation queue's broker answers PING"""
    client = redis.Redis(connection_pool=get_broker_pool())
    try:
        return bool(await client.ping())
    finally:
        await client.aclose()
