from collections.abc import Callable
from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BeforeValidator, PlainSerializer, WithJsonSchema

# JavaScript 安全整数最大值 (2^53 - 1)
JS_MAX_SAFE_INTEGER = 9007199254740991


# ==========================================
# 1. SmartInt (智能整数)
# ==========================================


def _parse_smart_int(v: Any) -> int:
    """
    [输入处理]
    前端传 "123" 或 123，后端统一转为 int 类型。
    """
    if isinstance(v, int):
        return v
    if isinstance(v, str):
        try:
            return int(v)
        except ValueError as e:
            raise ValueError(f"Invalid integer value: {v}") from e
    raise TypeError(f"Expected int or str, got {type(v).__name__}, {v}")


def _serialize_smart_int(v: int) -> int | str:
    """
    [输出处理]
    雪花 ID 超过 JS 安全范围时转为字符串，避免前端精度丢失。
    """
    if abs(v) > JS_MAX_SAFE_INTEGER:
        return str(v)
    return v


SmartInt = Annotated[
    int,
    BeforeValidator(_parse_smart_int),
    PlainSerializer(_serialize_smart_int, return_type=int | str, when_used="json"),
    WithJsonSchema(
        {
            "anyOf": [{"type": "integer"}, {"type": "string"}],
            "title": "SmartInt",
            "description": "Int in Python. Auto-converts to string in JSON if > JS safe range.",
            "example": 12345,
        }
    ),
]


# ==========================================
# 2. SmartDatetime (智能时间类型)
# ==========================================


def _parse_smart_datetime(v: Any) -> datetime:
    """
    [输入处理] 统一转换为 naive UTC datetime
    """
    if isinstance(v, datetime):
        if v.tzinfo is not None:
            v = v.astimezone(UTC)
        return v.replace(tzinfo=None)

    if isinstance(v, str):
        try:
            dt = datetime.fromisoformat(v.replace("Z", "+00:00"))
            if dt.tzinfo is not None:
                dt = dt.astimezone(UTC)
            return dt.replace(tzinfo=None)
        except ValueError as e:
            raise ValueError(f"Invalid ISO 8601 datetime string: {v}") from e

    raise ValueError(f"Invalid datetime type: {type(v)}")


def _serialize_smart_datetime(v: datetime) -> str | None:
    """
    [输出处理] naive datetime 视为 UTC，输出 ISO 8601 字符串
    """
    if v is None:
        return None
    if v.tzinfo is not None:
        v = v.astimezone(UTC)
    else:
        v = v.replace(tzinfo=UTC)
    return v.isoformat()


SmartDatetime = Annotated[
    datetime,
    BeforeValidator(_parse_smart_datetime),
    PlainSerializer(_serialize_smart_datetime, return_type=str, when_used="json"),
    WithJsonSchema(
        {
            "type": "string",
            "format": "date-time",
            "example": "2025-05-07T14:30:00",
            "title": "SmartDatetime",
        }
    ),
]


# ==========================================
# 3. LazyProxy (懒加载代理)
# ==========================================


class LazyProxy[T]:
    """
    通用懒加载代理，用于延迟初始化的单例对象（logger、settings、redis cache）。

    用法示例:
        _cache: CacheClient | None = None

        def _get_cache() -> CacheClient:
            if _cache is None:
                raise RuntimeError("Cache not initialized")
            return _cache

        cache = LazyProxy[CacheClient](_get_cache)
        await cache.get_value("key")  # 等价于 _get_cache().get_value("key")
    """

    __slots__ = ("_getter",)

    def __init__(self, getter: Callable[[], T]):
        object.__setattr__(self, "_getter", getter)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._getter(), name)

    def __repr__(self) -> str:
        try:
            return repr(self._getter())
        except RuntimeError:
            return "<LazyProxy: uninitialized>"
