from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from internal.infra.database import get_session
from internal.models.oauth_state import OAuthState, StateStatus
from pkg.database import BaseDao


class OAuthStateDao(BaseDao[OAuthState]):
    _model_cls: type[OAuthState] = OAuthState

    async def get_by_state(self, state: str, *, sess: AsyncSession | None = None) -> OAuthState | None:
        return await self.querier.eq_(OAuthState.state, state).first(sess=sess)

    async def consume_valid(self, state: str, provider: str, *, now: datetime) -> int:
        """
        原子消费：仅当 state 属于该 provider、仍为 VALID 且未过期时置为 CONSUMED。
        返回受影响行数，1 表示抢占成功。
        """
        return (
            await self.updater.eq_(OAuthState.state, state)
            .eq_(OAuthState.provider, provider)
            .eq_(OAuthState.status, StateStatus.VALID)
            .ge_(OAuthState.expires_at, now)
            .update(status=StateStatus.CONSUMED, used_at=now, updated_at=now)
            .execute()
        )

    async def mark_expired(self, state_id: int, *, now: datetime) -> int:
        return (
            await self.updater.eq_(OAuthState.id, state_id)
            .eq_(OAuthState.status, StateStatus.VALID)
            .update(status=StateStatus.EXPIRED, updated_at=now)
            .execute()
        )

    async def expire_overdue(self, *, now: datetime) -> int:
        return (
            await self.updater.eq_(OAuthState.status, StateStatus.VALID)
            .lt_(OAuthState.expires_at, now)
            .update(status=StateStatus.EXPIRED, updated_at=now)
            .execute()
        )

    async def count_created_since(
        self, since: datetime, *, user_id: int | None = None, client_ip: str | None = None
    ) -> int:
        counter = self.counter.ge_(OAuthState.created_at, since)
        if user_id is not None:
            counter = counter.eq_(OAuthState.user_id, user_id)
        if client_ip is not None:
            counter = counter.eq_(OAuthState.client_ip, client_ip)
        return await counter.count()

    async def purge_finished_before(self, cutoff: datetime) -> int:
        """物理删除早于 cutoff 的已消费 / 已过期记录，VALID 记录永不清理"""
        return (
            await self.deleter.ne_(OAuthState.status, StateStatus.VALID)
            .lt_(OAuthState.created_at, cutoff)
            .execute()
        )


oauth_state_dao = OAuthStateDao(session_provider=get_session)
