import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from internal.config import settings
from pkg.database import new_async_engine, new_async_session_maker
from pkg.logger import logger

# 全局单例变量，初始为 None
_engine: AsyncEngine | None = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


# ---------------------- 1. 生命周期管理 ----------------------

def init_db() -> None:
    """
    初始化数据库连接池。
    应在 FastAPI lifespan 或维护脚本启动时调用。
    """
    global _engine, _session_maker
    logger.info("Initializing Database Connection...")
    if _engine is not None:
        logger.info("Database connection already initialized.")
        return

    _engine = new_async_engine(
        database_uri=settings.sqlalchemy_database_uri,
        echo=settings.DB_ECHO,
    )
    _register_event_listeners(_engine)

    _session_maker = new_async_session_maker(engine=_engine)
    logger.info("Database connection initialized successfully.")


async def close_db() -> None:
    """关闭数据库连接池"""
    global _engine, _session_maker
    if _engine:
        await _engine.dispose()
        logger.info("Database connection disposed.")
    _engine = None
    _session_maker = None


# ---------------------- 2. Session 获取 ----------------------

@asynccontextmanager
async def get_session(autoflush: bool = True) -> AsyncGenerator[AsyncSession, Any]:
    """
    通用的 Session 获取上下文管理器，Web 请求和维护脚本均可用。
    """
    session_maker = _session_maker

    if session_maker is None:
        raise RuntimeError("Database is not initialized. Call init_db() first.")

    async with session_maker() as session:
        try:
            if autoflush:
                yield session
            else:
                with session.no_autoflush:
                    yield session
        except Exception:
            if session.is_active:
                await session.rollback()
            raise


# ---------------------- 3. SQL 监控逻辑 (私有) ----------------------

def _register_event_listeners(engine: AsyncEngine):
    """注册 SQLAlchemy 事件监听"""
    event.listen(engine.sync_engine, "before_cursor_execute", _before_cursor_execute)
    event.listen(engine.sync_engine, "after_cursor_execute", _after_cursor_execute)


def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    if context:
        setattr(context, "_query_start_time", time.perf_counter())


def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    if not context or not hasattr(context, "_query_start_time"):
        return

    elapsed = time.perf_counter() - getattr(context, "_query_start_time")

    # 参数中含有密文令牌，只记录语句本身
    if elapsed > settings.SLOW_SQL_THRESHOLD:
        logger.warning(f"SLOW SQL ({elapsed:.4f}s): {_get_formatted_sql(context, statement)}")
    elif settings.DEBUG:
        logger.debug(f"SQL ({elapsed:.4f}s): {_get_formatted_sql(context, statement)}")


def _get_formatted_sql(context, statement) -> str:
    try:
        if context and context.compiled:
            return str(context.compiled)
        return str(statement)
    except SQLAlchemyError as e:
        return f"SQL_FORMAT_ERROR: {e} | Raw: {statement}"
