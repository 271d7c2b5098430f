from typing import Any

from internal.config import settings
from internal.core.crypto import secret_codec
from internal.dao.oauth_provider import OAuthProviderDao, oauth_provider_dao
from internal.dao.user_oauth_account import UserOAuthAccountDao, user_oauth_account_dao
from internal.models.oauth_provider import OAuthProvider, ProviderStatus
from pkg.crypto import BaseCryptoUtil
from pkg.logger import logger
from pkg.oauth2 import BaseOAuthProvider, OAuthClientConfig, OAuthPlatform, OAuthProviderFactory
from pkg.oauth2.exceptions import (
    ConfigurationError,
    ProviderDisabledError,
    ProviderInUseError,
    ProviderNotFoundError,
)
from pkg.toolkit.http_cli import AsyncHttpClient
from pkg.toolkit.list import ensure_list

# 允许通过 update_provider 修改的字段
_UPDATABLE_FIELDS = frozenset(
    {
        "name",
        "display_name",
        "client_id",
        "client_secret",
        "redirect_uri",
        "scopes",
        "extra_config",
        "enabled",
        "status",
        "sort",
        "remark",
    }
)


class OAuthProviderService:
    """
    第三方平台配置读写。

    client_secret 只在两个边界处理：写入时加密（create / update），
    构造适配器时解密（build_client_config），其余位置都只接触密文。
    """

    def __init__(
        self,
        *,
        dao: OAuthProviderDao,
        binding_dao: UserOAuthAccountDao,
        codec: BaseCryptoUtil,
        http_timeout: float = 10,
    ):
        self._dao = dao
        self._binding_dao = binding_dao
        self._codec = codec
        self._http_timeout = http_timeout

    async def create_provider(
        self,
        *,
        name: str,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        display_name: str | None = None,
        scopes: list[str] | None = None,
        extra_config: dict[str, Any] | None = None,
        enabled: bool = True,
        sort: int = 0,
        remark: str | None = None,
    ) -> OAuthProvider:
        """
        新增平台配置。同名的逻辑删除记录会被恢复并覆盖。

        Raises:
            ProviderNotFoundError: 平台没有对应的适配器
            ConfigurationError: 同名平台已存在
        """
        name = name.strip().lower()
        if not OAuthProviderFactory.is_supported(name):
            raise ProviderNotFoundError(provider=name)

        fields = {
            "display_name": display_name or self._default_display_name(name),
            "client_id": client_id,
            "client_secret": self._codec.encrypt(client_secret),
            "redirect_uri": redirect_uri,
            "scopes": ensure_list(scopes),
            "extra_config": extra_config or {},
            "enabled": enabled,
            "status": ProviderStatus.ACTIVE,
            "sort": sort,
            "remark": remark,
        }

        existing = await self._dao.get_by_name(name, include_deleted=True)
        if existing is not None:
            if not existing.is_deleted:
                raise ConfigurationError("该第三方登录方式已存在", provider=name)
            await self._dao.ins_updater(existing).update(deleted_at=None, **fields).execute()
            logger.info(f"OAuth provider restored, name={name}")
            return await self._dao.query_by_primary_id(existing.id)

        provider = self._dao.create(name=name, **fields)
        await self._dao.add(provider)
        logger.info(f"OAuth provider created, name={name}")
        return provider

    async def update_provider(self, provider_id: int, **changes: Any) -> OAuthProvider:
        """
        更新平台配置。client_secret 传空值表示不修改。

        Raises:
            ProviderNotFoundError: 记录不存在
            ProviderInUseError: 已有绑定引用时修改 name
        """
        provider = await self._dao.query_by_primary_id(provider_id)
        if provider is None:
            raise ProviderNotFoundError(detail=f"provider_id={provider_id}")

        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported provider fields: {sorted(unknown)}")

        new_name = changes.get("name")
        if new_name is not None:
            new_name = new_name.strip().lower()
            if new_name != provider.name:
                if await self._binding_dao.count_by_provider(provider.name) > 0:
                    raise ProviderInUseError(provider=provider.name)
                if not OAuthProviderFactory.is_supported(new_name):
                    raise ProviderNotFoundError(provider=new_name)
            changes["name"] = new_name

        if "client_secret" in changes:
            secret = changes.pop("client_secret")
            if secret:
                changes["client_secret"] = self._codec.encrypt(secret)

        if "scopes" in changes:
            changes["scopes"] = ensure_list(changes["scopes"])

        await self._dao.ins_updater(provider).update(**changes).execute()
        logger.info(f"OAuth provider updated, id={provider_id}, fields={sorted(k for k in changes if k != 'client_secret')}")
        return await self._dao.query_by_primary_id(provider_id)

    async def remove_provider(self, provider_id: int) -> None:
        """逻辑删除，已有绑定保留；该平台之后不可再发起授权"""
        provider = await self._dao.query_by_primary_id(provider_id)
        if provider is None:
            raise ProviderNotFoundError(detail=f"provider_id={provider_id}")

        await self._dao.ins_updater(provider).soft_delete().execute()
        logger.warning(f"OAuth provider removed, name={provider.name}")

    async def get_enabled_provider(self, name: str) -> OAuthProvider:
        """
        Raises:
            ProviderNotFoundError: 不存在或已删除
            ProviderDisabledError: 已禁用或已暂停
        """
        name = (name or "").strip().lower()
        provider = await self._dao.get_by_name(name)
        if provider is None or not OAuthProviderFactory.is_supported(name):
            raise ProviderNotFoundError(provider=name)
        if not provider.is_available:
            raise ProviderDisabledError(provider=name)
        return provider

    async def list_available(self) -> list[OAuthProvider]:
        providers = await self._dao.list_available()
        return [p for p in providers if OAuthProviderFactory.is_supported(p.name)]

    def build_client_config(self, provider: OAuthProvider) -> OAuthClientConfig:
        """解密 client_secret 并组装适配器配置"""
        try:
            client_secret = self._codec.decrypt(provider.client_secret)
            return OAuthClientConfig(
                client_id=provider.client_id,
                client_secret=client_secret,
                redirect_uri=provider.redirect_uri,
                scopes=tuple(provider.scopes or ()),
                extra_config=dict(provider.extra_config or {}),
            )
        except ValueError as e:
            logger.error(f"Invalid oauth provider config, name={provider.name}, error={e}")
            raise ConfigurationError(provider=provider.name, detail=str(e)) from e

    async def create_adapter(self, name: str, *, http_client: AsyncHttpClient | None = None) -> BaseOAuthProvider:
        provider = await self.get_enabled_provider(name)
        return self.new_adapter(provider, http_client=http_client)

    def new_adapter(self, provider: OAuthProvider, *, http_client: AsyncHttpClient | None = None) -> BaseOAuthProvider:
        return OAuthProviderFactory.create(
            provider.name,
            self.build_client_config(provider),
            http_client=http_client,
            timeout=self._http_timeout,
        )

    @staticmethod
    def _default_display_name(name: str) -> str:
        try:
            return OAuthPlatform(name).display_name
        except ValueError:
            return name


def new_oauth_provider_service() -> OAuthProviderService:
    return OAuthProviderService(
        dao=oauth_provider_dao,
        binding_dao=user_oauth_account_dao,
        codec=secret_codec,
        http_timeout=settings.OAUTH_HTTP_TIMEOUT,
    )
