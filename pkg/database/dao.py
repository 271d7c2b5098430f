from collections.abc import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from pkg.database.base import ModelMixin, SessionProvider
from pkg.database.builder import CountBuilder, DeleteBuilder, QueryBuilder, UpdateBuilder
from pkg.logger import logger

"""
数据访问对象 (DAO)
"""


class BaseDao[T: ModelMixin]:
    _model_cls: type[T] = None

    def __init__(self, *, session_provider: SessionProvider, model_cls: type[T] | None = None):
        self._session_provider = session_provider

        if model_cls:
            self._model_cls = model_cls
        elif not getattr(self, "_model_cls", None):
            raise ValueError(f"DAO {self.__class__.__name__} must define _model_cls or pass it to __init__")

    @property
    def model_cls(self) -> type[T]:
        return self._model_cls

    @property
    def session_provider(self) -> SessionProvider:
        return self._session_provider

    def create(self, **kwargs) -> T:
        return self._model_cls.create(**kwargs)

    # --- Queriers ---
    @property
    def querier(self) -> QueryBuilder[T]:
        return QueryBuilder(self._model_cls, session_provider=self._session_provider)

    @property
    def querier_inc_deleted(self) -> QueryBuilder[T]:
        return QueryBuilder(self._model_cls, session_provider=self._session_provider, include_deleted=True)

    # --- Counters ---
    @property
    def counter(self) -> CountBuilder[T]:
        return CountBuilder(self._model_cls, session_provider=self._session_provider)

    @property
    def counter_inc_deleted(self) -> CountBuilder[T]:
        return CountBuilder(self._model_cls, session_provider=self._session_provider, include_deleted=True)

    # --- Updaters ---
    @property
    def updater(self) -> UpdateBuilder[T]:
        return UpdateBuilder(model_cls=self._model_cls, session_provider=self._session_provider)

    def ins_updater(self, ins: T) -> UpdateBuilder[T]:
        return UpdateBuilder(model_ins=ins, session_provider=self._session_provider)

    # --- Deleters ---
    @property
    def deleter(self) -> DeleteBuilder[T]:
        return DeleteBuilder(self._model_cls, session_provider=self._session_provider)

    # --- Common Methods ---
    async def query_by_primary_id(
        self, primary_id: int, *, include_deleted: bool = False, sess: AsyncSession | None = None
    ) -> T | None:
        qb = self.querier_inc_deleted if include_deleted else self.querier
        return await qb.eq_(self._model_cls.id, primary_id).first(sess=sess)

    async def add(self, ins: T, *, sess: AsyncSession | None = None) -> T:
        """
        INSERT 单个实例。传入 sess 时仅 flush，不提交，由外层事务决定。
        """
        ins.fill_insert_fields()
        if sess is not None:
            sess.add(ins)
            await sess.flush()
            return ins

        async with self._session_provider() as new_sess:
            async with new_sess.begin():
                new_sess.add(ins)
        return ins


async def execute_transaction[T](
    session_provider: SessionProvider,
    callback: Callable[[AsyncSession], Awaitable[T]],
    autoflush: bool = True,
) -> T:
    """
    [Transaction] 手动事务执行器：通过回调函数在同一个事务中执行"先查后写"的组合逻辑。

    回调正常返回则提交；回调抛出任何异常则回滚，异常原样向上抛出，
    调用方可以据此区分唯一约束冲突（IntegrityError）与业务异常。

    Args:
        session_provider: Session 提供者
        callback: 接收当前事务的 `AsyncSession`，返回任意类型 `T`。
        autoflush: 是否自动刷新（默认 True）

    Example:
        ```python
        async def _bind(sess: AsyncSession) -> UserOAuthAccount:
            owner = await binding_dao.get_by_external_id(provider, external_id, sess=sess)
            if owner is not None and owner.user_id != user_id:
                raise AccountAlreadyBoundError(...)
            return await token_vault.store(sess, ...)

        binding = await execute_transaction(session_provider, _bind)
        ```
    """
    async with session_provider(autoflush=autoflush) as sess:
        try:
            async with sess.begin():
                return await callback(sess)
        except Exception as e:
            logger.debug(f"Transaction rolled back: {e.__class__.__name__}")
            raise
