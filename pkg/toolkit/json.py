import datetime
from decimal import Decimal
from typing import Any

import orjson

# 1. OPT_SERIALIZE_UUID: 原生支持 UUID
# 2. OPT_NAIVE_UTC / OPT_UTC_Z: naive datetime 统一按 UTC 输出
# 3. OPT_NON_STR_KEYS: 允许非字符串键
DEFAULT_ORJSON_OPTIONS = (
    orjson.OPT_SERIALIZE_UUID
    | orjson.OPT_NAIVE_UTC
    | orjson.OPT_UTC_Z
    | orjson.OPT_NON_STR_KEYS
)

type JsonInputType = str | bytes | bytearray | memoryview


def _default_handler(obj: Any) -> Any:
    """
    orjson 原生不支持类型的兜底处理。
    """
    if isinstance(obj, Decimal):
        if obj.is_nan() or obj.is_infinite():
            return None
        return str(obj)

    if isinstance(obj, bytes):
        return obj.decode("utf-8", "ignore")

    if isinstance(obj, datetime.timedelta):
        return obj.total_seconds()

    if isinstance(obj, (set, frozenset)):
        return list(obj)

    raise TypeError(f"Type {type(obj)} is not JSON serializable")


def orjson_dumps_bytes(obj: Any, *, default: Any = None, option: int | None = None) -> bytes:
    """
    JSON 序列化（返回 bytes），用于 HTTP 响应与 Redis 写入。
    """
    handler = default if default is not None else _default_handler
    final_option = option if option is not None else DEFAULT_ORJSON_OPTIONS

    try:
        return orjson.dumps(obj, default=handler, option=final_option)
    except Exception as e:
        raise ValueError(f"JSON Serialization Failed: {str(e)} - Type: {type(obj)}") from e


def orjson_dumps(obj: Any, *, default: Any = None, option: int | None = None) -> str:
    return orjson_dumps_bytes(obj, default=default, option=option).decode("utf-8")


def orjson_loads(obj: JsonInputType) -> Any:
    try:
        return orjson.loads(obj)
    except Exception as e:
        raise ValueError(f"JSON Deserialization Failed: {str(e)}") from e
