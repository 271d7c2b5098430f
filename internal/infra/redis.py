from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from redis.asyncio import ConnectionPool, Redis

from internal.config import settings
from pkg.logger import logger
from pkg.toolkit.cache import CacheClient
from pkg.toolkit.types import LazyProxy

_redis_pool: ConnectionPool | None = None
_redis_client: Redis | None = None
_cache: CacheClient | None = None


def init_async_redis() -> None:
    """
    初始化 Redis 连接池。
    应在 FastAPI lifespan 中调用。
    """
    global _redis_pool, _redis_client, _cache

    logger.info("Initializing Redis connection...")

    if _redis_pool is None:
        _redis_pool = ConnectionPool.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
        )

    if _redis_client is None:
        _redis_client = Redis(connection_pool=_redis_pool)

    # 传入 get_redis 函数本身，它是一个稳定的引用
    if _cache is None:
        _cache = CacheClient(session_provider=get_redis)

    logger.success("Redis initialized successfully.")


async def close_async_redis() -> None:
    """关闭 Redis 连接"""
    global _redis_client, _redis_pool, _cache

    if _redis_client:
        await _redis_client.aclose()
        logger.warning("Redis connection closed.")

    if _redis_pool:
        await _redis_pool.aclose()

    _redis_client = None
    _redis_pool = None
    _cache = None


@asynccontextmanager
async def get_redis() -> AsyncGenerator[Redis, None]:
    """
    Redis Session 获取上下文管理器
    """
    if _redis_client is None:
        raise RuntimeError("Redis is not initialized. Call init_async_redis() first.")

    yield _redis_client


def _get_cache() -> CacheClient:
    if _cache is None:
        raise RuntimeError("Redis/Cache is not initialized. Call init_async_redis() first.")
    return _cache


cache = LazyProxy[CacheClient](_get_cache)
