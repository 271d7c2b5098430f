import functools
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from typing import Any

from redis.asyncio import Redis

from pkg.toolkit.json import orjson_dumps, orjson_loads

SessionProvider = Callable[[], AbstractAsyncContextManager[Redis]]


class RedisOperationError(Exception):
    """Redis 操作异常"""

    pass


def handle_redis_exception(func):
    """
    装饰器：统一包装 Redis 操作异常
    """

    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs):
        try:
            return await func(self, *args, **kwargs)
        except RedisOperationError:
            raise
        except Exception as e:
            # 参数中可能包含登录令牌，只记录函数名
            raise RedisOperationError(f"Redis error in '{func.__name__}': {repr(e)}") from e

    return wrapper


class CacheClient:
    """Redis 缓存客户端工具类"""

    def __init__(self, session_provider: SessionProvider):
        self.session_provider = session_provider

    @handle_redis_exception
    async def set_value(self, key: str, value: Any, ex: int | None = None) -> bool:
        """设置键值对，可选过期时间（秒）"""
        async with self.session_provider() as redis:
            result = await redis.set(key, value, ex=ex)
            return result is True

    @handle_redis_exception
    async def get_value(self, key: str) -> str | None:
        async with self.session_provider() as redis:
            value = await redis.get(key)
            if isinstance(value, bytes):
                return value.decode("utf-8")
            return value

    @handle_redis_exception
    async def set_dict(self, key: str, value: dict, ex: int | None = None) -> bool:
        """设置字典类型的值，自动 JSON 序列化"""
        return await self.set_value(key, orjson_dumps(value), ex=ex)

    @handle_redis_exception
    async def get_dict(self, key: str) -> dict | None:
        """获取字典类型的值，自动 JSON 反序列化"""
        value = await self.get_value(key)
        if value is None:
            return None
        try:
            return orjson_loads(value)
        except ValueError as e:
            raise RedisOperationError(f"Failed to decode dict from key '{key}': {e}") from e

    @handle_redis_exception
    async def delete_key(self, key: str) -> int:
        """删除键，返回删除的键数量"""
        async with self.session_provider() as redis:
            return await redis.delete(key)
