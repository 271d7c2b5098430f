from collections.abc import Callable
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from internal.config import settings
from internal.dao.user_oauth_account import UserOAuthAccountDao, user_oauth_account_dao
from internal.infra.database import get_session
from internal.models.oauth_state import OAuthIntent
from internal.models.user_oauth_account import UserOAuthAccount
from internal.services.login_session import LoginResult, LoginSessionIssuer
from internal.services.oauth_provider import OAuthProviderService, new_oauth_provider_service
from internal.services.oauth_state import OAuthStateStore, StatePayload, new_oauth_state_store
from internal.services.token_vault import TokenVault, new_token_vault
from internal.services.user import (
    AuthMethodPolicy,
    UserProvisioner,
    new_auth_method_policy,
    new_user_provisioner,
)
from pkg.database import SessionProvider, execute_transaction
from pkg.logger import logger
from pkg.oauth2 import BaseOAuthProvider, NormalizedProfile, TokenSet
from pkg.oauth2.exceptions import (
    AccountAlreadyBoundError,
    BindingDisabledError,
    BindingNotFoundError,
    ConflictError,
    InternalPersistenceError,
    InvalidFlowStateError,
    LastAuthMethodError,
    OAuthError,
    ProviderDeniedError,
    RateLimitExceededError,
    TokenRefreshUnavailable,
    UnbindNotConfirmedError,
)
from pkg.toolkit.http_cli import AsyncHttpClient
from pkg.toolkit.time import utc_now_naive


class OutcomeAction(StrEnum):
    LOGIN = "login"
    BIND = "bind"


@dataclass(frozen=True, slots=True)
class AuthorizationRequest:
    auth_url: str
    state: str
    provider: str
    intent: OAuthIntent


@dataclass(frozen=True, slots=True)
class OAuthOutcome:
    """
    回调处理结果

    Attributes:
        action: LOGIN 表示登录（含新建用户），BIND 表示为已登录用户绑定
        created: 本次回调是否新建了本地用户
        redirect_uri: 发起授权时携带的前端跳转地址，由 HTTP 层决定是否重定向
        login: 登录结果，仅 LOGIN 且配置了登录令牌签发时存在
    """

    action: OutcomeAction
    user_id: int
    provider: str
    binding: UserOAuthAccount
    created: bool = False
    redirect_uri: str | None = None
    login: LoginResult | None = None


@dataclass(frozen=True, slots=True)
class RefreshResult:
    access_token: str
    refresh_token: str | None
    expires_at: datetime | None
    refreshed: bool

    def __repr__(self) -> str:
        return f"RefreshResult(expires_at={self.expires_at!r}, refreshed={self.refreshed!r})"


@dataclass(frozen=True, slots=True)
class UnbindReceipt:
    user_id: int
    provider: str
    unbound_at: datetime


@dataclass(frozen=True, slots=True)
class BindingSummary:
    """对外展示的绑定信息，不含任何令牌"""

    id: int
    provider: str
    provider_user_id: str
    provider_username: str | None
    provider_email: str | None
    provider_avatar: str | None
    status: int
    token_expires_at: datetime | None
    last_login_at: datetime | None
    created_at: datetime

    @classmethod
    def from_model(cls, binding: UserOAuthAccount) -> "BindingSummary":
        return cls(
            id=binding.id,
            provider=binding.provider,
            provider_user_id=binding.provider_user_id,
            provider_username=binding.provider_username,
            provider_email=binding.provider_email,
            provider_avatar=binding.provider_avatar,
            status=binding.status,
            token_expires_at=binding.token_expires_at,
            last_login_at=binding.last_login_at,
            created_at=binding.created_at,
        )


@dataclass(frozen=True, slots=True)
class AvailableProvider:
    name: str
    display_name: str
    sort: int
    is_bound: bool = False


@dataclass(slots=True)
class BindingRefreshReport:
    total: int = 0
    refreshed: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    failed: dict[int, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class _Resolution:
    action: OutcomeAction
    user_id: int
    binding: UserOAuthAccount
    created: bool = False


class OAuthService:
    """
    第三方授权流程编排：发起授权、处理回调、刷新令牌、解绑。

    回调处理顺序固定为：先原子消费 state，再检查 provider 返回的 error / code，
    再换取令牌和用户信息，最后在单个事务中完成绑定决策并写入。
    user_id 始终由调用方显式传入，服务层不读取任何请求上下文。
    """

    def __init__(
        self,
        *,
        provider_service: OAuthProviderService,
        state_store: OAuthStateStore,
        token_vault: TokenVault,
        binding_dao: UserOAuthAccountDao,
        provisioner: UserProvisioner,
        auth_policy: AuthMethodPolicy,
        session_provider: SessionProvider,
        login_issuer: LoginSessionIssuer | None = None,
        http_client: AsyncHttpClient | None = None,
        rate_limit_window_minutes: int = 15,
        rate_limit_user: int = 10,
        rate_limit_ip: int = 20,
        clock: Callable[[], datetime] = utc_now_naive,
    ):
        self._providers = provider_service
        self._states = state_store
        self._vault = token_vault
        self._binding_dao = binding_dao
        self._provisioner = provisioner
        self._auth_policy = auth_policy
        self._session_provider = session_provider
        self._login_issuer = login_issuer
        self._http_client = http_client
        self._rate_window = timedelta(minutes=rate_limit_window_minutes)
        self._rate_limit_user = rate_limit_user
        self._rate_limit_ip = rate_limit_ip
        self._clock = clock

    @staticmethod
    def _normalize(provider: str) -> str:
        return (provider or "").strip().lower()

    # ==========================================================================
    # 发起授权
    # ==========================================================================

    async def begin_auth(
        self,
        provider: str,
        *,
        user_id: int | None = None,
        redirect_uri: str | None = None,
        client_ip: str | None = None,
        user_agent: str | None = None,
    ) -> AuthorizationRequest:
        """
        生成授权跳转地址。传入 user_id 表示为该用户绑定，否则为登录。

        Raises:
            ProviderNotFoundError / ProviderDisabledError: 平台不可用
            RateLimitExceededError: 发起次数超过限制
        """
        provider = self._normalize(provider)
        provider_row = await self._providers.get_enabled_provider(provider)
        await self._check_rate_limit(user_id=user_id, client_ip=client_ip)

        intent = OAuthIntent.BIND if user_id is not None else OAuthIntent.LOGIN
        state = await self._states.issue(
            provider_row.name,
            payload={"redirect_uri": redirect_uri, "intent": intent},
            user_id=user_id,
            client_ip=client_ip,
            user_agent=user_agent,
        )

        async with self._providers.new_adapter(provider_row, http_client=self._http_client) as adapter:
            auth_url = adapter.build_authorization_url(state)

        logger.info(f"OAuth authorization started, provider={provider}, intent={intent}, user_id={user_id}")
        return AuthorizationRequest(auth_url=auth_url, state=state, provider=provider_row.name, intent=intent)

    async def _check_rate_limit(self, *, user_id: int | None, client_ip: str | None) -> None:
        if user_id is not None:
            count = await self._states.count_recent(window=self._rate_window, user_id=user_id)
            if count >= self._rate_limit_user:
                logger.warning(f"OAuth rate limit exceeded, user_id={user_id}, count={count}")
                raise RateLimitExceededError(detail=f"user_id={user_id}, count={count}")

        if client_ip:
            count = await self._states.count_recent(window=self._rate_window, client_ip=client_ip)
            if count >= self._rate_limit_ip:
                logger.warning(f"OAuth rate limit exceeded, client_ip={client_ip}, count={count}")
                raise RateLimitExceededError(detail=f"client_ip={client_ip}, count={count}")

    # ==========================================================================
    # 回调
    # ==========================================================================

    async def handle_callback(
        self,
        provider: str,
        *,
        state: str,
        code: str | None = None,
        error: str | None = None,
        error_description: str | None = None,
        client_ip: str | None = None,
        user_agent: str | None = None,
    ) -> OAuthOutcome:
        """
        处理第三方回调。

        Raises:
            StateError: state 不存在、已使用、已过期或与平台不匹配
            ProviderDeniedError: 用户拒绝授权或回调缺少 code
            ProviderCommunicationError: 换取令牌 / 拉取用户信息失败
            ConflictError: 第三方账号已被其他用户绑定或绑定已禁用
            InternalPersistenceError: 数据库写入失败
        """
        provider = self._normalize(provider)
        payload = await self._states.consume(state, provider)

        if error or not code:
            logger.warning(f"OAuth callback denied, provider={provider}, error={error}")
            raise ProviderDeniedError(provider=provider, detail=f"error={error}, description={error_description}")

        if payload.intent == OAuthIntent.BIND and payload.user_id is None:
            raise InvalidFlowStateError(provider=provider, detail="bind intent without user_id")

        provider_row = await self._providers.get_enabled_provider(provider)
        async with self._providers.new_adapter(provider_row, http_client=self._http_client) as adapter:
            tokens = await adapter.exchange_code(code)
            profile = await adapter.fetch_profile(tokens.access_token, token_data=tokens.raw)

        resolution = await self._resolve(provider, payload, tokens, profile, client_ip=client_ip)

        login = None
        if resolution.action == OutcomeAction.LOGIN and self._login_issuer is not None:
            login = await self._login_issuer.issue(resolution.user_id, provider=provider, client_ip=client_ip)

        logger.info(
            f"OAuth callback handled, provider={provider}, action={resolution.action}, "
            f"user_id={resolution.user_id}, created={resolution.created}"
        )
        return OAuthOutcome(
            action=resolution.action,
            user_id=resolution.user_id,
            provider=provider,
            binding=resolution.binding,
            created=resolution.created,
            redirect_uri=payload.redirect_uri,
            login=login,
        )

    async def _resolve(
        self,
        provider: str,
        payload: StatePayload,
        tokens: TokenSet,
        profile: NormalizedProfile,
        *,
        client_ip: str | None,
    ) -> _Resolution:
        async def _bind_for_user(sess: AsyncSession) -> _Resolution:
            user_id = payload.user_id
            owner = await self._binding_dao.get_by_external_id(provider, profile.external_id, sess=sess)
            if owner is not None and owner.user_id != user_id:
                raise AccountAlreadyBoundError(provider=provider, detail=f"owner={owner.user_id}, user_id={user_id}")

            # 同一平台只保留一个绑定，换绑时覆盖原记录
            existing = owner or await self._binding_dao.get_by_user_provider(user_id, provider, sess=sess)
            if existing is not None and not existing.is_active:
                raise BindingDisabledError(provider=provider, detail=f"binding_id={existing.id}")

            binding = await self._vault.store(
                sess,
                user_id=user_id,
                provider=provider,
                tokens=tokens,
                profile=profile,
                client_ip=client_ip,
                existing=existing,
            )
            return _Resolution(OutcomeAction.BIND, user_id, binding)

        async def _login(sess: AsyncSession) -> _Resolution:
            owner = await self._binding_dao.get_by_external_id(provider, profile.external_id, sess=sess)
            if owner is not None:
                if not owner.is_active:
                    raise BindingDisabledError(provider=provider, detail=f"binding_id={owner.id}")
                binding = await self._vault.store(
                    sess,
                    user_id=owner.user_id,
                    provider=provider,
                    tokens=tokens,
                    profile=profile,
                    client_ip=client_ip,
                    existing=owner,
                    touch_login=True,
                )
                return _Resolution(OutcomeAction.LOGIN, owner.user_id, binding)

            user = await self._provisioner.create_user_from_profile(sess, provider=provider, profile=profile)
            binding = await self._vault.store(
                sess,
                user_id=user.id,
                provider=provider,
                tokens=tokens,
                profile=profile,
                client_ip=client_ip,
                touch_login=True,
            )
            return _Resolution(OutcomeAction.LOGIN, user.id, binding, created=True)

        callback = _bind_for_user if payload.intent == OAuthIntent.BIND else _login
        try:
            return await execute_transaction(self._session_provider, callback)
        except IntegrityError as e:
            logger.warning(f"OAuth binding conflict, provider={provider}, intent={payload.intent}, error={e.orig}")
            return await self._resolve_after_conflict(provider, payload, profile)
        except SQLAlchemyError as e:
            logger.error(f"OAuth binding persistence failed, provider={provider}, error={e.__class__.__name__}: {e}")
            raise InternalPersistenceError(provider=provider, detail=str(e)) from e

    async def _resolve_after_conflict(
        self, provider: str, payload: StatePayload, profile: NormalizedProfile
    ) -> _Resolution:
        """并发写入触发唯一约束后，以数据库中胜出的记录为准重新判定结果"""
        owner = await self._binding_dao.get_by_external_id(provider, profile.external_id)
        if owner is None:
            raise ConflictError(provider=provider, detail="unique constraint violated without visible owner")

        if payload.intent == OAuthIntent.BIND:
            if owner.user_id != payload.user_id:
                raise AccountAlreadyBoundError(provider=provider, detail=f"owner={owner.user_id}")
            return _Resolution(OutcomeAction.BIND, owner.user_id, owner)

        if not owner.is_active:
            raise BindingDisabledError(provider=provider, detail=f"binding_id={owner.id}")
        return _Resolution(OutcomeAction.LOGIN, owner.user_id, owner)

    # ==========================================================================
    # 令牌
    # ==========================================================================

    async def refresh_tokens(self, user_id: int, provider: str, *, force: bool = False) -> RefreshResult:
        """
        返回可用的第三方令牌，临近过期时先向平台续期。

        Raises:
            BindingNotFoundError: 用户未绑定该平台
            BindingDisabledError: 绑定已禁用
            TokenRefreshUnavailable: 需要刷新但无法刷新，调用方应引导用户重新授权
        """
        provider = self._normalize(provider)
        binding = await self._binding_dao.get_by_user_provider(user_id, provider)
        if binding is None:
            raise BindingNotFoundError(provider=provider)
        if not binding.is_active:
            raise BindingDisabledError(provider=provider, detail=f"binding_id={binding.id}")

        refreshed = self._vault.needs_refresh(binding, force=force)
        if refreshed:
            provider_row = await self._providers.get_enabled_provider(provider)
            async with self._providers.new_adapter(provider_row, http_client=self._http_client) as adapter:
                binding = await self._vault.ensure_fresh(binding, adapter, force=force)

        tokens = self._vault.reveal(binding)
        return RefreshResult(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_at=binding.token_expires_at,
            refreshed=refreshed,
        )

    async def refresh_expiring_tokens(self, limit: int = 50) -> BindingRefreshReport:
        """批量续期即将过期的绑定，单个失败只记录不中断"""
        before = self._clock() + timedelta(seconds=self._vault.refresh_margin_seconds)
        bindings = await self._binding_dao.list_expiring(before, limit=limit)
        report = BindingRefreshReport(total=len(bindings))

        async with AsyncExitStack() as stack:
            adapters: dict[str, BaseOAuthProvider] = {}
            for binding in bindings:
                try:
                    adapter = adapters.get(binding.provider)
                    if adapter is None:
                        provider_row = await self._providers.get_enabled_provider(binding.provider)
                        adapter = await stack.enter_async_context(
                            self._providers.new_adapter(provider_row, http_client=self._http_client)
                        )
                        adapters[binding.provider] = adapter
                    await self._vault.ensure_fresh(binding, adapter)
                    report.refreshed.append(binding.id)
                except TokenRefreshUnavailable as e:
                    logger.info(f"OAuth token refresh skipped, binding_id={binding.id}, reason={e.detail}")
                    report.skipped.append(binding.id)
                except (OAuthError, SQLAlchemyError) as e:
                    logger.error(f"OAuth token refresh failed, binding_id={binding.id}, provider={binding.provider}, error={e!r}")
                    report.failed[binding.id] = str(e)

        logger.info(
            f"OAuth token batch refresh finished, total={report.total}, refreshed={len(report.refreshed)}, "
            f"skipped={len(report.skipped)}, failed={len(report.failed)}"
        )
        return report

    # ==========================================================================
    # 解绑 / 查询
    # ==========================================================================

    async def unbind(self, user_id: int, provider: str, *, confirm: bool = False) -> UnbindReceipt:
        """
        Raises:
            UnbindNotConfirmedError: 未确认
            BindingNotFoundError: 用户未绑定该平台
            LastAuthMethodError: 解绑后用户将无法登录
        """
        provider = self._normalize(provider)
        if not confirm:
            raise UnbindNotConfirmedError(provider=provider)

        async def _unbind(sess: AsyncSession) -> None:
            binding = await self._binding_dao.get_by_user_provider(user_id, provider, sess=sess)
            if binding is None:
                raise BindingNotFoundError(provider=provider)
            if not await self._auth_policy.has_other_login_method(user_id, excluding_provider=provider, sess=sess):
                raise LastAuthMethodError(provider=provider)
            await self._binding_dao.delete_by_id(binding.id, sess=sess)

        await execute_transaction(self._session_provider, _unbind)
        logger.info(f"OAuth binding removed, user_id={user_id}, provider={provider}")
        return UnbindReceipt(user_id=user_id, provider=provider, unbound_at=self._clock())

    async def force_unbind(self, binding_id: int, *, reason: str) -> UnbindReceipt:
        """管理员解绑，不校验剩余登录方式"""
        binding = await self._binding_dao.query_by_primary_id(binding_id)
        if binding is None:
            raise BindingNotFoundError(detail=f"binding_id={binding_id}")

        await self._binding_dao.delete_by_id(binding.id)
        logger.warning(
            f"OAuth binding force removed, binding_id={binding_id}, user_id={binding.user_id}, "
            f"provider={binding.provider}, reason={reason}"
        )
        return UnbindReceipt(user_id=binding.user_id, provider=binding.provider, unbound_at=self._clock())

    async def list_bindings(self, user_id: int) -> list[BindingSummary]:
        bindings = await self._binding_dao.list_by_user(user_id)
        return [BindingSummary.from_model(b) for b in bindings]

    async def list_available_providers(self, user_id: int | None = None) -> list[AvailableProvider]:
        bound: set[str] = set()
        if user_id is not None:
            bound = {b.provider for b in await self._binding_dao.list_by_user(user_id)}

        return [
            AvailableProvider(name=p.name, display_name=p.display_name, sort=p.sort, is_bound=p.name in bound)
            for p in await self._providers.list_available()
        ]


def new_oauth_service(login_issuer: LoginSessionIssuer | None = None) -> OAuthService:
    return OAuthService(
        provider_service=new_oauth_provider_service(),
        state_store=new_oauth_state_store(),
        token_vault=new_token_vault(),
        binding_dao=user_oauth_account_dao,
        provisioner=new_user_provisioner(),
        auth_policy=new_auth_method_policy(),
        session_provider=get_session,
        login_issuer=login_issuer,
        rate_limit_window_minutes=settings.OAUTH_RATE_LIMIT_WINDOW_MINUTES,
        rate_limit_user=settings.OAUTH_RATE_LIMIT_USER,
        rate_limit_ip=settings.OAUTH_RATE_LIMIT_IP,
    )
