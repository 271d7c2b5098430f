from pkg.database.base import (
    Base,
    ModelMixin,
    SessionProvider,
    SoftDeleteMixin,
    new_async_engine,
    new_async_session_maker,
)
from pkg.database.builder import CountBuilder, DeleteBuilder, QueryBuilder, UpdateBuilder
from pkg.database.dao import BaseDao, execute_transaction
from pkg.database.types import JSONType

__all__ = [
    # base
    "Base",
    "ModelMixin",
    "SoftDeleteMixin",
    "SessionProvider",
    "new_async_engine",
    "new_async_session_maker",
    # builder
    "QueryBuilder",
    "UpdateBuilder",
    "CountBuilder",
    "DeleteBuilder",
    # dao
    "BaseDao",
    "execute_transaction",
    # types
    "JSONType",
]
