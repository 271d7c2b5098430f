import re
from dataclasses import dataclass

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Receive, Scope, Send

from internal.core.exception import AppException, errors
from internal.services.login_session import LoginSessionIssuer
from pkg.logger import logger


@dataclass(frozen=True)
class _AuthConstants:
    """认证相关常量配置"""

    HEADER_AUTHORIZATION: str = "Authorization"
    BEARER_PREFIX: str = "Bearer "

    # 白名单路径 (精确匹配)
    WHITELIST_PATHS: frozenset[str] = frozenset(
        {
            "/docs",
            "/redoc",
            "/openapi.json",
        }
    )

    # 登录入口与平台列表可匿名访问；携带令牌时识别当前用户
    OPTIONAL_AUTH_PATTERN: re.Pattern = re.compile(r"^/v1/oauth/(providers|[A-Za-z0-9_-]+/(authorize|callback))$")


_AUTH_CONST = _AuthConstants()


@dataclass
class _AuthContext:
    path: str
    headers: Headers

    def is_whitelist(self) -> bool:
        return self.path in _AUTH_CONST.WHITELIST_PATHS

    def is_optional(self) -> bool:
        return bool(_AUTH_CONST.OPTIONAL_AUTH_PATTERN.match(self.path))

    def get_token(self) -> str | None:
        auth_header = self.headers.get(_AUTH_CONST.HEADER_AUTHORIZATION, "")
        if auth_header.startswith(_AUTH_CONST.BEARER_PREFIX):
            return auth_header[len(_AUTH_CONST.BEARER_PREFIX) :].strip() or None
        return auth_header or None


class ASGIAuthMiddleware:
    """
    Token 认证：从 Redis 解析登录令牌，把 user_id 写入 request.state。

    - 白名单路径直接放行
    - providers / authorize / callback 允许匿名；携带的令牌无效时拒绝，避免把绑定误当成登录
    - 其余路径必须携带有效令牌
    """

    def __init__(self, app: ASGIApp, *, issuer_factory):
        self.app = app
        self._issuer_factory = issuer_factory

    @property
    def issuer(self) -> LoginSessionIssuer:
        return self._issuer_factory()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        auth_ctx = _AuthContext(path=scope["path"], headers=Headers(scope=scope))

        if auth_ctx.is_whitelist():
            await self.app(scope, receive, send)
            return

        token = auth_ctx.get_token()
        if token is None:
            if auth_ctx.is_optional():
                await self.app(scope, receive, send)
                return
            raise AppException(errors.Unauthorized, message="missing token")

        user_id = await self.issuer.verify(token)
        if user_id is None:
            raise AppException(errors.Unauthorized, message="invalid or expired token")

        logger.debug(f"Authenticated request, user_id={user_id}, path={auth_ctx.path}")
        scope.setdefault("state", {})["user_id"] = user_id
        await self.app(scope, receive, send)
