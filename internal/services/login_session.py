import secrets
from dataclasses import dataclass
from datetime import datetime

from internal.config import settings
from internal.infra.redis import cache
from pkg.logger import logger
from pkg.toolkit.cache import CacheClient
from pkg.toolkit.time import naive_after_seconds, utc_now_naive


def login_token_cache_key(token: str) -> str:
    return f"login:token:{token}"


@dataclass(frozen=True, slots=True)
class LoginResult:
    token: str
    user_id: int
    expires_at: datetime

    def __repr__(self) -> str:
        return f"LoginResult(user_id={self.user_id!r}, expires_at={self.expires_at!r})"


class LoginSessionIssuer:
    """
    登录令牌签发：不透明随机串，用户信息存放在 Redis，过期由 Redis TTL 控制。
    """

    def __init__(self, cache_client: CacheClient, *, expire_minutes: int = 60):
        self._cache = cache_client
        self._expire_seconds = expire_minutes * 60

    async def issue(self, user_id: int, *, provider: str | None = None, client_ip: str | None = None) -> LoginResult:
        token = f"tk_{secrets.token_hex(16)}"
        await self._cache.set_dict(
            login_token_cache_key(token),
            {
                "id": user_id,
                "provider": provider,
                "client_ip": client_ip,
                "login_at": utc_now_naive().isoformat(),
            },
            ex=self._expire_seconds,
        )
        logger.info(f"Login token issued, user_id={user_id}, provider={provider}")
        return LoginResult(token=token, user_id=user_id, expires_at=naive_after_seconds(self._expire_seconds))

    async def verify(self, token: str) -> int | None:
        """返回令牌对应的 user_id，不存在或已过期返回 None"""
        if not token:
            return None

        data = await self._cache.get_dict(login_token_cache_key(token))
        if not data:
            logger.warning("Login token verification failed: token not found")
            return None

        user_id = data.get("id")
        if not isinstance(user_id, int):
            logger.warning("Login token verification failed: invalid user id")
            return None
        return user_id

    async def revoke(self, token: str) -> bool:
        return await self._cache.delete_key(login_token_cache_key(token)) > 0


def new_login_session_issuer() -> LoginSessionIssuer:
    return LoginSessionIssuer(cache, expire_minutes=settings.LOGIN_TOKEN_EXPIRE_MINUTES)
