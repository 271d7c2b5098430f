import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from internal.config import settings
from internal.core.crypto import init_secret_codec
from internal.core.logger import init_app_logger
from internal.infra.database import close_db, init_db
from internal.infra.redis import close_async_redis, init_async_redis
from internal.services.login_session import new_login_session_issuer
from pkg.logger import logger


def create_app() -> FastAPI:
    debug = settings.DEBUG
    app = FastAPI(
        debug=debug,
        docs_url="/docs" if debug else None,
        redoc_url="/redoc" if debug else None,
        lifespan=lifespan,
    )

    register_router(app)
    register_middleware(app)

    return app


def register_router(app: FastAPI):
    from internal.controllers import web

    app.include_router(web.router)


def register_middleware(app: FastAPI):
    # 后添加的中间件在外层：Record -> CORS -> Auth -> 路由

    # 认证中间件：解析登录令牌写入 request.state.user_id
    from internal.middlewares.auth import ASGIAuthMiddleware

    app.add_middleware(ASGIAuthMiddleware, issuer_factory=new_login_session_issuer)

    # CORS 中间件：处理跨域请求
    if settings.BACKEND_CORS_ORIGINS:
        from starlette.middleware.cors import CORSMiddleware

        app.add_middleware(
            CORSMiddleware,
            allow_credentials=True,
            allow_origins=settings.BACKEND_CORS_ORIGINS,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # 日志中间件：trace_id、访问日志、统一异常响应
    from internal.middlewares.recorder import ASGIRecordMiddleware

    app.add_middleware(ASGIRecordMiddleware)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    if settings.APP_ENV not in ("local", "dev", "test", "prod"):
        raise ValueError(f"Invalid APP_ENV: {settings.APP_ENV}")

    init_app_logger()
    logger.info(f"Init lifespan, env={settings.APP_ENV}, pid={os.getpid()}")

    init_secret_codec()
    init_db()
    init_async_redis()

    logger.info("Application will start.")

    yield

    await close_db()
    await close_async_redis()
    logger.warning("Application is about to close.")
