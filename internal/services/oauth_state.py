import secrets
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from internal.config import settings
from internal.dao.oauth_state import OAuthStateDao, oauth_state_dao
from internal.models.oauth_state import OAuthIntent, StateStatus
from pkg.logger import logger
from pkg.oauth2.exceptions import (
    InvalidFlowStateError,
    StateAlreadyUsedError,
    StateExpiredError,
    StateNotFoundError,
    StateProviderMismatchError,
)
from pkg.toolkit.time import utc_now_naive


@dataclass(frozen=True, slots=True)
class StatePayload:
    """消费 state 后交给回调处理的上下文"""

    state: str
    provider: str
    user_id: int | None = None
    redirect_uri: str | None = None
    intent: OAuthIntent = OAuthIntent.LOGIN
    extra: dict[str, Any] = field(default_factory=dict)


class OAuthStateStore:
    """
    一次性 CSRF state 的签发与消费。

    consume 只依赖一条带条件的 UPDATE 判断是否抢占成功，
    失败时再读取记录区分原因；过期判断在 consume 中即时完成，
    sweep_expired 只是把已过期的记录批量标记，供审计与清理使用。
    """

    def __init__(
        self,
        *,
        dao: OAuthStateDao,
        ttl_minutes: int = 15,
        clock: Callable[[], datetime] = utc_now_naive,
    ):
        self._dao = dao
        self._ttl = timedelta(minutes=ttl_minutes)
        self._clock = clock

    async def issue(
        self,
        provider: str,
        *,
        payload: dict[str, Any] | None = None,
        user_id: int | None = None,
        client_ip: str | None = None,
        user_agent: str | None = None,
    ) -> str:
        now = self._clock()
        state = secrets.token_hex(32)

        record = self._dao.create(
            state=state,
            provider=provider,
            user_id=user_id,
            payload=dict(payload or {}),
            client_ip=client_ip,
            user_agent=(user_agent or "")[:512] or None,
            expires_at=now + self._ttl,
            status=StateStatus.VALID,
            created_at=now,
            updated_at=now,
        )
        await self._dao.add(record)
        logger.info(f"OAuth state issued, provider={provider}, user_id={user_id}, expires_at={record.expires_at}")
        return state

    async def consume(self, state: str, provider: str) -> StatePayload:
        """
        原子消费 state，成功后不可再次使用。

        Raises:
            StateNotFoundError: state 不存在
            StateProviderMismatchError: state 属于其他平台
            StateAlreadyUsedError: 已被消费
            StateExpiredError: 已过期（顺带标记为 EXPIRED）
        """
        if not state:
            raise StateNotFoundError(provider=provider)

        now = self._clock()
        rows = await self._dao.consume_valid(state, provider, now=now)
        record = await self._dao.get_by_state(state)

        if rows == 1 and record is not None:
            payload = dict(record.payload or {})
            logger.info(f"OAuth state consumed, provider={provider}, user_id={record.user_id}")
            return StatePayload(
                state=state,
                provider=record.provider,
                user_id=record.user_id,
                redirect_uri=payload.pop("redirect_uri", None),
                intent=OAuthIntent(payload.pop("intent", OAuthIntent.LOGIN)),
                extra=payload,
            )

        if record is None:
            logger.warning(f"OAuth state not found, provider={provider}")
            raise StateNotFoundError(provider=provider)

        if record.provider != provider:
            logger.warning(f"OAuth state provider mismatch, expected={record.provider}, actual={provider}")
            raise StateProviderMismatchError(provider=provider)

        if record.status == StateStatus.CONSUMED:
            logger.warning(f"OAuth state replayed, provider={provider}, used_at={record.used_at}")
            raise StateAlreadyUsedError(provider=provider)

        if record.status == StateStatus.EXPIRED or now > record.expires_at:
            if record.status == StateStatus.VALID:
                await self._dao.mark_expired(record.id, now=now)
            logger.warning(f"OAuth state expired, provider={provider}, expires_at={record.expires_at}")
            raise StateExpiredError(provider=provider)

        raise InvalidFlowStateError(provider=provider, detail=f"state status={record.status}")

    async def sweep_expired(self) -> int:
        count = await self._dao.expire_overdue(now=self._clock())
        if count:
            logger.info(f"OAuth states expired by sweep, count={count}")
        return count

    async def count_recent(
        self, *, window: timedelta, user_id: int | None = None, client_ip: str | None = None
    ) -> int:
        if user_id is None and client_ip is None:
            raise ValueError("count_recent requires user_id or client_ip")
        return await self._dao.count_created_since(self._clock() - window, user_id=user_id, client_ip=client_ip)

    async def purge_older_than(self, days: int = 30) -> int:
        """清理审计记录，VALID 状态的记录不会被删除"""
        if days < 1:
            raise ValueError("days must be greater than or equal to 1")
        count = await self._dao.purge_finished_before(self._clock() - timedelta(days=days))
        logger.info(f"OAuth states purged, older_than_days={days}, count={count}")
        return count


def new_oauth_state_store() -> OAuthStateStore:
    return OAuthStateStore(dao=oauth_state_dao, ttl_minutes=settings.OAUTH_STATE_TTL_MINUTES)
