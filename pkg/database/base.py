from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Any, Optional, Self

from sqlalchemy import BigInteger, DateTime, inspect
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, InstrumentedAttribute, Mapped, mapped_column

from pkg.toolkit.inter import snowflake_id_generator
from pkg.toolkit.json import orjson_dumps, orjson_loads
from pkg.toolkit.time import utc_now_naive

SessionProvider = Callable[..., AbstractAsyncContextManager[AsyncSession]]


def new_async_engine(
    *,
    database_uri: str,
    echo: bool = False,
    pool_pre_ping: bool = True,
    pool_size: int = 10,
    max_overflow: int = 20,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    **kwargs: Any,
) -> AsyncEngine:
    return create_async_engine(
        url=database_uri,
        echo=echo,
        pool_pre_ping=pool_pre_ping,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        json_serializer=orjson_dumps,
        json_deserializer=orjson_loads,
        **kwargs,
    )


def new_async_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=True)


class Base(DeclarativeBase):
    """SQLAlchemy 2.0 声明式基类"""
    pass


class ModelMixin(Base):
    """
    通用模型 Mixin：雪花主键 + 创建/更新时间（naive UTC）
    """
    __abstract__ = True

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False))

    @classmethod
    def create(cls, **kwargs) -> Self:
        """
        创建一个新的、填充好默认值的实例（Transient 状态），未知字段会被丢弃。
        """
        valid_cols = set(cls.get_column_names())
        ins = cls(**{k: v for k, v in kwargs.items() if k in valid_cols})
        ins.fill_insert_fields()
        return ins

    def fill_insert_fields(self, now: datetime | None = None) -> None:
        now = now or utc_now_naive()
        if not self.id:
            self.id = snowflake_id_generator.generate()
        if not self.created_at:
            self.created_at = now
        if not self.updated_at:
            self.updated_at = now

    def touch(self, now: datetime | None = None) -> None:
        self.updated_at = now or utc_now_naive()

    def to_dict(self, *, exclude_column: list[str] | None = None) -> dict[str, Any]:
        return {
            col: getattr(self, col)
            for col in self.get_column_names()
            if not exclude_column or col not in exclude_column
        }

    # ==========================================================================
    # 反射与元数据工具
    # ==========================================================================

    @staticmethod
    def updated_at_column_name() -> str:
        return "updated_at"

    @staticmethod
    def deleted_at_column_name() -> str:
        return "deleted_at"

    @classmethod
    def has_deleted_at_column(cls) -> bool:
        return cls.has_column(cls.deleted_at_column_name())

    @classmethod
    def has_column(cls, column_name: str) -> bool:
        return column_name in inspect(cls).columns

    @classmethod
    def get_column_names(cls) -> list[str]:
        return list(inspect(cls).columns.keys())

    @classmethod
    def get_column_or_none(cls, column_name: str) -> Optional[InstrumentedAttribute]:
        if not cls.has_column(column_name):
            return None
        return getattr(cls, column_name, None)


class SoftDeleteMixin:
    """逻辑删除（墓碑）字段，查询默认过滤 deleted_at IS NOT NULL 的记录"""

    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), default=None)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
