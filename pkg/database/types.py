from typing import Any

from sqlalchemy import Text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Dialect
from sqlalchemy.ext.mutable import Mutable, MutableDict, MutableList
from sqlalchemy.types import JSON as SA_JSON, TypeDecorator

from pkg.toolkit.json import orjson_dumps, orjson_loads


class JSONType(TypeDecorator):
    """
    跨数据库兼容的 JSON 类型。

    - PostgreSQL: JSONB
    - MySQL 5.7+: 原生 JSON
    - SQLite: JSON（测试环境）
    - 其他数据库: TEXT + orjson 手动序列化

    用于 provider 的 scopes / extra_config、state 的 payload、绑定的 provider_data 等字段。
    """

    impl = Text
    cache_ok = True

    @property
    def python_type(self):
        return object

    def load_dialect_impl(self, dialect: Dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(postgresql.JSONB())
        elif dialect.name == "mysql":
            return dialect.type_descriptor(SA_JSON())
        elif dialect.name == "sqlite":
            return dialect.type_descriptor(sqlite.JSON())
        return dialect.type_descriptor(Text())

    def process_bind_param(self, value: Any, dialect: Dialect) -> Any:
        if value is None:
            return None

        if dialect.name in ("postgresql", "mysql", "sqlite"):
            return value

        if isinstance(value, (str, bytes)):
            return value
        return orjson_dumps(value)

    def process_result_value(self, value: Any, dialect: Dialect) -> Any:
        if value is None or isinstance(value, (dict, list)):
            return value

        if isinstance(value, str) and not value.strip():
            return None

        try:
            return orjson_loads(value)
        except ValueError:
            # 库里存了非 JSON 的纯文本时原样返回，避免整个查询失败
            return value


class MutableJSON(Mutable):
    """
    JSON 变更追踪：dict 委托 MutableDict，list 委托 MutableList。
    """

    @classmethod
    def coerce(cls, key: str, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, (MutableDict, MutableList)):
            return value
        if isinstance(value, dict):
            return MutableDict.coerce(key, value)
        if isinstance(value, list):
            return MutableList.coerce(key, value)
        return value


MutableJSON.associate_with(JSONType)
