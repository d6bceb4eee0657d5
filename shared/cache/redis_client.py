"""Conexión Redis compartida: backend del rate limiter y chequeo de readiness"""
from typing import Optional
import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.config import settings

logger = logging.getLogger(__name__)

_client: Optional[redis.Redis] = None


async def init_redis(url: Optional[str] = None) -> redis.Redis:
    """Crear el cliente (idempotente); un Redis caído no impide arrancar"""
    global _client
    if _client is not None:
        return _client

    _client = redis.from_url(
        url or settings.REDIS_URL,
        max_connections=settings.REDIS_MAX_CONNECTIONS,
        socket_connect_timeout=settings.REDIS_CONNECT_TIMEOUT_SECONDS,
        decode_responses=True,
        health_check_interval=30,
    )
    if await ping():
        logger.info("Redis connected")
    else:
        logger.warning("Redis not reachable at startup; rate limiting may fall back to memory")
    return _client


async def ping() -> bool:
    if _client is None:
        return False
    try:
        return bool(await _client.ping())
    except (RedisError, OSError) as e:
        logger.error(f"Redis ping failed: {e}")
        return False


async def close_redis():
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
        logger.info("Redis connection closed")
