"""第三方登录适配器工厂 - 可复用的适配器注册表"""

from enum import StrEnum

from pkg.logger import logger
from pkg.toolkit.http_cli import AsyncHttpClient

from .base import BaseOAuthProvider
from .config import OAuthClientConfig
from .exceptions import ProviderNotFoundError
from .strategies import (
    DingTalkOAuthProvider,
    FeishuOAuthProvider,
    GiteeOAuthProvider,
    GitHubOAuthProvider,
    QQOAuthProvider,
    WeChatOAuthProvider,
)


class OAuthPlatform(StrEnum):
    """第三方平台枚举，值即 provider slug

    添加新平台时在此处声明，并在 OAuthProviderFactory 中注册适配器。
    """

    DINGTALK = "dingtalk"
    GITHUB = "github"
    GITEE = "gitee"
    FEISHU = "feishu"
    WECHAT = "wechat"
    QQ = "qq"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    OAuthPlatform.DINGTALK: "钉钉",
    OAuthPlatform.GITHUB: "GitHub",
    OAuthPlatform.GITEE: "码云",
    OAuthPlatform.FEISHU: "飞书",
    OAuthPlatform.WECHAT: "微信",
    OAuthPlatform.QQ: "QQ",
}


class OAuthProviderFactory:
    """第三方登录适配器工厂

    使用示例:
        ```python
        provider = OAuthProviderFactory.create("github", config)

        # 注册新的适配器（在模块初始化时调用）
        OAuthProviderFactory.register_provider("gitlab", GitLabOAuthProvider)
        ```
    """

    _providers: dict[str, type[BaseOAuthProvider]] = {
        OAuthPlatform.DINGTALK: DingTalkOAuthProvider,
        OAuthPlatform.GITHUB: GitHubOAuthProvider,
        OAuthPlatform.GITEE: GiteeOAuthProvider,
        OAuthPlatform.FEISHU: FeishuOAuthProvider,
        OAuthPlatform.WECHAT: WeChatOAuthProvider,
        OAuthPlatform.QQ: QQOAuthProvider,
    }

    @classmethod
    def register_provider(cls, platform: OAuthPlatform | str, provider_class: type[BaseOAuthProvider]) -> None:
        """
        注册新的适配器，同名时覆盖

        Args:
            platform: 平台 slug
            provider_class: 适配器类
        """
        slug = str(platform).lower()
        cls._providers[slug] = provider_class
        logger.info(f"Registered oauth provider adapter for {slug}")

    @classmethod
    def get_provider_class(cls, platform: OAuthPlatform | str) -> type[BaseOAuthProvider]:
        """
        Raises:
            ProviderNotFoundError: 平台未注册
        """
        slug = str(platform).lower()
        provider_class = cls._providers.get(slug)
        if not provider_class:
            raise ProviderNotFoundError(
                provider=slug,
                detail=f"Available platforms: {cls.get_available_platforms()}",
            )
        return provider_class

    @classmethod
    def create(
        cls,
        platform: OAuthPlatform | str,
        config: OAuthClientConfig,
        *,
        http_client: AsyncHttpClient | None = None,
        timeout: float = 10,
    ) -> BaseOAuthProvider:
        """
        创建对应平台的适配器实例

        Raises:
            ProviderNotFoundError: 平台未注册
        """
        provider_class = cls.get_provider_class(platform)
        return provider_class(config, http_client=http_client, timeout=timeout)

    @classmethod
    def is_supported(cls, platform: str) -> bool:
        return str(platform).lower() in cls._providers

    @classmethod
    def get_available_platforms(cls) -> list[str]:
        return [str(slug) for slug in cls._providers]
