from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from internal.config import settings
from internal.core.crypto import secret_codec
from internal.dao.user_oauth_account import UserOAuthAccountDao, user_oauth_account_dao
from internal.models.user_oauth_account import BindingStatus, UserOAuthAccount
from pkg.crypto import BaseCryptoUtil
from pkg.logger import logger
from pkg.oauth2 import BaseOAuthProvider, NormalizedProfile, TokenSet
from pkg.oauth2.exceptions import TokenRefreshUnavailable, UnsupportedOperation
from pkg.toolkit.time import utc_now_naive


class TokenVault:
    """
    第三方令牌的加密存储与续期。

    令牌只以密文落库；token_expires_at 为空表示永不过期，不会触发刷新。
    """

    def __init__(
        self,
        *,
        dao: UserOAuthAccountDao,
        codec: BaseCryptoUtil,
        refresh_margin_seconds: int = 300,
        clock: Callable[[], datetime] = utc_now_naive,
    ):
        self._dao = dao
        self._codec = codec
        self._margin = refresh_margin_seconds
        self._clock = clock

    @property
    def refresh_margin_seconds(self) -> int:
        return self._margin

    def needs_refresh(self, binding: UserOAuthAccount, *, force: bool = False) -> bool:
        return force or binding.expires_within(self._margin, self._clock())

    def _expires_at(self, tokens: TokenSet, now: datetime) -> datetime | None:
        if tokens.expires_in is None or tokens.expires_in <= 0:
            return None
        return now + timedelta(seconds=tokens.expires_in)

    async def store(
        self,
        sess: AsyncSession,
        *,
        user_id: int,
        provider: str,
        tokens: TokenSet,
        profile: NormalizedProfile,
        client_ip: str | None = None,
        existing: UserOAuthAccount | None = None,
        touch_login: bool = False,
    ) -> UserOAuthAccount:
        """
        在调用方事务中写入或覆盖绑定关系，不提交。

        existing 必须是在同一个 sess 中查出的记录；为空时新建绑定。
        同一第三方账号且 provider 未返回新的 refresh_token 时保留原值；
        换绑到另一个第三方账号时，旧账号的 refresh_token 与登录记录一并清除。
        """
        now = self._clock()
        same_account = existing is not None and existing.provider_user_id == profile.external_id
        fields = {
            "user_id": user_id,
            "provider": provider,
            "provider_user_id": profile.external_id,
            "provider_username": profile.username,
            "provider_email": profile.email,
            "provider_avatar": profile.avatar,
            "provider_data": dict(profile.raw),
            "access_token": self._codec.encrypt(tokens.access_token),
            "token_expires_at": self._expires_at(tokens, now),
        }
        if tokens.refresh_token:
            fields["refresh_token"] = self._codec.encrypt(tokens.refresh_token)
        elif not same_account:
            fields["refresh_token"] = None
        if touch_login:
            fields["last_login_at"] = now
            fields["last_login_ip"] = client_ip
        elif not same_account:
            fields["last_login_at"] = None
            fields["last_login_ip"] = None

        if existing is None:
            binding = self._dao.create(status=BindingStatus.ACTIVE, created_at=now, updated_at=now, **fields)
            await self._dao.add(binding, sess=sess)
            logger.info(f"OAuth binding created, user_id={user_id}, provider={provider}")
            return binding

        for key, value in fields.items():
            setattr(existing, key, value)
        existing.touch(now)
        await sess.flush()
        logger.info(f"OAuth binding updated, user_id={user_id}, provider={provider}, binding_id={existing.id}")
        return existing

    async def ensure_fresh(
        self, binding: UserOAuthAccount, adapter: BaseOAuthProvider, *, force: bool = False
    ) -> UserOAuthAccount:
        """
        令牌在刷新窗口内（或 force=True）时向平台续期并落库，否则原样返回。

        Raises:
            TokenRefreshUnavailable: 平台不支持刷新或绑定没有 refresh_token，原令牌保持不变
            TokenExchangeError: 平台刷新请求失败
        """
        if not self.needs_refresh(binding, force=force):
            return binding

        if not adapter.supports_refresh:
            raise TokenRefreshUnavailable(provider=binding.provider, detail="provider does not support refresh")
        if not binding.refresh_token:
            raise TokenRefreshUnavailable(provider=binding.provider, detail="binding has no refresh token")

        try:
            tokens = await adapter.refresh_token(self._codec.decrypt(binding.refresh_token))
        except UnsupportedOperation as e:
            raise TokenRefreshUnavailable(provider=binding.provider, detail=str(e)) from e

        now = self._clock()
        changes = {
            "access_token": self._codec.encrypt(tokens.access_token),
            "token_expires_at": self._expires_at(tokens, now),
        }
        if tokens.refresh_token:
            changes["refresh_token"] = self._codec.encrypt(tokens.refresh_token)

        await self._dao.ins_updater(binding).update(updated_at=now, **changes).execute()
        for key, value in changes.items():
            setattr(binding, key, value)
        binding.touch(now)

        logger.info(
            f"OAuth token refreshed, binding_id={binding.id}, provider={binding.provider}, "
            f"expires_at={binding.token_expires_at}"
        )
        return binding

    def reveal(self, binding: UserOAuthAccount) -> TokenSet:
        """解密绑定中的令牌，expires_in 为剩余秒数"""
        expires_in = None
        if binding.token_expires_at is not None:
            expires_in = max(int((binding.token_expires_at - self._clock()).total_seconds()), 0)

        return TokenSet(
            access_token=self._codec.decrypt(binding.access_token),
            refresh_token=self._codec.decrypt_optional(binding.refresh_token),
            expires_in=expires_in,
            token_type="bearer",
        )


def new_token_vault() -> TokenVault:
    return TokenVault(
        dao=user_oauth_account_dao,
        codec=secret_codec,
        refresh_margin_seconds=settings.OAUTH_TOKEN_REFRESH_MARGIN_SECONDS,
    )
