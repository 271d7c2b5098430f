from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from internal.infra.database import get_session
from internal.models.user_oauth_account import BindingStatus, UserOAuthAccount
from pkg.database import BaseDao


class UserOAuthAccountDao(BaseDao[UserOAuthAccount]):
    """绑定关系仓储，所有方法均可通过 sess 挂到调用方事务上"""

    _model_cls: type[UserOAuthAccount] = UserOAuthAccount

    async def get_by_user_provider(
        self, user_id: int, provider: str, *, sess: AsyncSession | None = None
    ) -> UserOAuthAccount | None:
        return await (
            self.querier.eq_(UserOAuthAccount.user_id, user_id)
            .eq_(UserOAuthAccount.provider, provider)
            .first(sess=sess)
        )

    async def get_by_external_id(
        self, provider: str, provider_user_id: str, *, sess: AsyncSession | None = None
    ) -> UserOAuthAccount | None:
        return await (
            self.querier.eq_(UserOAuthAccount.provider, provider)
            .eq_(UserOAuthAccount.provider_user_id, provider_user_id)
            .first(sess=sess)
        )

    async def list_by_user(self, user_id: int) -> list[UserOAuthAccount]:
        return await self.querier.eq_(UserOAuthAccount.user_id, user_id).asc_(UserOAuthAccount.created_at).all()

    async def count_by_user(self, user_id: int, *, sess: AsyncSession | None = None) -> int:
        return await self.counter.eq_(UserOAuthAccount.user_id, user_id).count(sess=sess)

    async def count_by_provider(self, provider: str) -> int:
        return await self.counter.eq_(UserOAuthAccount.provider, provider).count()

    async def delete_by_id(self, binding_id: int, *, sess: AsyncSession | None = None) -> int:
        return await self.deleter.eq_(UserOAuthAccount.id, binding_id).execute(sess=sess)

    async def list_expiring(self, before: datetime, *, limit: int = 50) -> list[UserOAuthAccount]:
        """即将过期且持有 refresh_token 的有效绑定，最早过期的优先"""
        return await (
            self.querier.eq_(UserOAuthAccount.status, BindingStatus.ACTIVE)
            .is_not_null(UserOAuthAccount.token_expires_at)
            .le_(UserOAuthAccount.token_expires_at, before)
            .is_not_null(UserOAuthAccount.refresh_token)
            .asc_(UserOAuthAccount.token_expires_at)
            .limit(limit)
            .all()
        )


user_oauth_account_dao = UserOAuthAccountDao(session_provider=get_session)
