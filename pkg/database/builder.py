from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Self

from sqlalchemy import ClauseElement, ColumnElement, Delete, Select, Update, delete, distinct, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute, Mapped

from pkg.database.base import ModelMixin, SessionProvider
from pkg.logger import logger
from pkg.toolkit.list import unique_list
from pkg.toolkit.time import utc_now_naive

"""
构建器 (Builder)

所有构建器既可以自行从 session_provider 取会话执行，
也可以通过 sess 参数挂到调用方已开启的事务上。
"""


class BaseBuilder[T: ModelMixin]:
    """SQL查询构建器基类"""

    __slots__ = ("_model_cls", "_stmt", "_session_provider")

    def __init__(self, model_cls: type[T], *, session_provider: SessionProvider):
        self._model_cls: type[T] = model_cls
        self._stmt: Select | Delete | Update | None = None
        self._session_provider = session_provider

    @asynccontextmanager
    async def _session_scope(self, sess: AsyncSession | None, *, commit: bool = False) -> AsyncIterator[AsyncSession]:
        """sess 不为空时复用调用方事务（不提交），否则新开会话"""
        if sess is not None:
            yield sess
            return

        async with self._session_provider() as new_sess:
            yield new_sess
            if commit:
                await new_sess.commit()

    # --- 条件构造 ---
    def where(self, *conditions: ClauseElement) -> Self:
        if conditions:
            self._stmt = self._stmt.where(*conditions)
        return self

    def eq_(self, column: InstrumentedAttribute | Mapped, value: Any) -> Self:
        return self.where(column == value)

    def ne_(self, column: InstrumentedAttribute | Mapped, value: Any) -> Self:
        return self.where(column != value)

    def gt_(self, column: InstrumentedAttribute | Mapped, value: Any) -> Self:
        return self.where(column > value)

    def lt_(self, column: InstrumentedAttribute | Mapped, value: Any) -> Self:
        return self.where(column < value)

    def ge_(self, column: InstrumentedAttribute | Mapped, value: Any) -> Self:
        return self.where(column >= value)

    def le_(self, column: InstrumentedAttribute | Mapped, value: Any) -> Self:
        return self.where(column <= value)

    def in_(self, column: InstrumentedAttribute | Mapped, values: list | tuple) -> Self:
        if not values:
            raise ValueError(f"in_() func values cannot be empty for column {column}")

        unique = unique_list(values, exclude_none=True)
        if len(unique) == 1:
            return self.where(column == unique[0])
        return self.where(column.in_(unique))

    def is_null(self, column: InstrumentedAttribute | Mapped) -> Self:
        return self.where(column.is_(None))

    def is_not_null(self, column: InstrumentedAttribute | Mapped) -> Self:
        return self.where(column.is_not(None))

    def or_(self, *conditions: ColumnElement[bool]) -> Self:
        return self.where(or_(*conditions)) if conditions else self

    def _apply_delete_at_is_none(self) -> None:
        if deleted_column := self._model_cls.get_column_or_none(self._model_cls.deleted_at_column_name()):
            self._stmt = self._stmt.where(deleted_column.is_(None))


class QueryBuilder[T: ModelMixin](BaseBuilder[T]):
    def __init__(
        self,
        model_cls: type[T],
        *,
        session_provider: SessionProvider,
        include_deleted: bool = False,
    ):
        super().__init__(model_cls, session_provider=session_provider)
        self._stmt = select(self._model_cls)

        if not include_deleted and self._model_cls.has_deleted_at_column():
            self._apply_delete_at_is_none()

    @property
    def select_stmt(self) -> Select:
        return self._stmt

    def desc_(self, col: InstrumentedAttribute | Mapped) -> Self:
        self._stmt = self._stmt.order_by(col.desc())
        return self

    def asc_(self, col: InstrumentedAttribute | Mapped) -> Self:
        self._stmt = self._stmt.order_by(col.asc())
        return self

    def limit(self, limit: int) -> Self:
        if not isinstance(limit, int) or limit < 1:
            raise ValueError("limit must be greater than or equal to 1")
        self._stmt = self._stmt.limit(limit)
        return self

    def for_update(self) -> Self:
        self._stmt = self._stmt.with_for_update()
        return self

    async def all(self, *, sess: AsyncSession | None = None) -> list[T]:
        async with self._session_scope(sess) as s:
            result = await s.execute(self._stmt)
            return list(result.scalars().all())

    async def first(self, *, sess: AsyncSession | None = None) -> T | None:
        async with self._session_scope(sess) as s:
            result = await s.execute(self._stmt)
            return result.scalars().first()


class CountBuilder[T: ModelMixin](BaseBuilder[T]):
    def __init__(
        self,
        model_cls: type[T],
        *,
        session_provider: SessionProvider,
        count_column: InstrumentedAttribute | None = None,
        is_distinct: bool = False,
        include_deleted: bool = False,
    ):
        super().__init__(model_cls, session_provider=session_provider)
        col = count_column if count_column is not None else self._model_cls.id
        expr = func.count(distinct(col)) if is_distinct else func.count(col)
        self._stmt = select(expr).select_from(self._model_cls)

        if not include_deleted and self._model_cls.has_deleted_at_column():
            self._apply_delete_at_is_none()

    async def count(self, *, sess: AsyncSession | None = None) -> int:
        async with self._session_scope(sess) as s:
            return (await s.execute(self._stmt)).scalar() or 0


class UpdateBuilder[T: ModelMixin](BaseBuilder[T]):
    def __init__(
        self, *, model_cls: type[T] | None = None, model_ins: T | None = None, session_provider: SessionProvider
    ):
        target_cls = model_cls if model_cls is not None else model_ins.__class__
        super().__init__(target_cls, session_provider=session_provider)
        self._stmt = update(self._model_cls)
        self._update_dict: dict[str, Any] = {}
        if model_ins is not None:
            self._stmt = self._stmt.where(self._model_cls.id == model_ins.id)

    def update(self, **kwargs) -> Self:
        for k, v in kwargs.items():
            if not self._model_cls.has_column(k):
                logger.warning(f"{k} is not a {self._model_cls.__name__} column")
                continue

            if isinstance(v, datetime) and v.tzinfo:
                v = v.replace(tzinfo=None)

            self._update_dict[k] = v
        return self

    def soft_delete(self) -> Self:
        if self._model_cls.has_deleted_at_column():
            self._update_dict[self._model_cls.deleted_at_column_name()] = utc_now_naive()
        return self

    @property
    def update_stmt(self) -> Update:
        updated_col = self._model_cls.updated_at_column_name()
        deleted_col = self._model_cls.deleted_at_column_name()

        if self._update_dict.get(deleted_col) is not None:
            self._update_dict.setdefault(updated_col, self._update_dict[deleted_col])
        self._update_dict.setdefault(updated_col, utc_now_naive())

        return self._stmt.values(**self._update_dict).execution_options(synchronize_session=False)

    async def execute(self, *, sess: AsyncSession | None = None) -> int:
        """
        执行 UPDATE，返回受影响行数。

        条件更新（compare-and-swap）依赖返回值判断是否抢占成功：
            rows = await dao.updater.eq_(M.status, 1).update(status=2).execute()
            if rows != 1: ...
        """
        if not self._update_dict:
            return 0
        async with self._session_scope(sess, commit=True) as s:
            result = await s.execute(self.update_stmt)
            return result.rowcount


class DeleteBuilder[T: ModelMixin](BaseBuilder[T]):
    """物理删除，仅用于无需保留审计的记录（如解绑后的绑定关系）"""

    def __init__(self, model_cls: type[T], *, session_provider: SessionProvider):
        super().__init__(model_cls, session_provider=session_provider)
        self._stmt = delete(self._model_cls)

    async def execute(self, *, sess: AsyncSession | None = None) -> int:
        async with self._session_scope(sess, commit=True) as s:
            result = await s.execute(self._stmt.execution_options(synchronize_session=False))
            return result.rowcount
