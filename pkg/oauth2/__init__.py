"""OAuth2 第三方登录适配器 - 可复用的策略模式实现

架构设计:
    - base: 抽象基类和数据类（无业务依赖）
    - strategies: 各平台适配器（配置通过参数注入）
    - factory: 适配器工厂和平台枚举
    - exceptions: 统一的错误体系

使用示例:
    ```python
    from pkg.oauth2 import OAuthClientConfig, OAuthProviderFactory

    config = OAuthClientConfig(
        client_id="your_client_id",
        client_secret="your_client_secret",
        redirect_uri="https://example.com/v1/oauth/github/callback",
    )
    async with OAuthProviderFactory.create("github", config) as provider:
        auth_url = provider.build_authorization_url(state)
        tokens = await provider.exchange_code(code)
        profile = await provider.fetch_profile(tokens.access_token, token_data=tokens.raw)
    ```
"""

from .base import BaseOAuthProvider, NormalizedProfile, TokenSet
from .config import OAuthClientConfig
from .factory import OAuthPlatform, OAuthProviderFactory
from .strategies import (
    DingTalkOAuthProvider,
    FeishuOAuthProvider,
    GiteeOAuthProvider,
    GitHubOAuthProvider,
    QQOAuthProvider,
    WeChatOAuthProvider,
)

__all__ = [
    "BaseOAuthProvider",
    "NormalizedProfile",
    "TokenSet",
    "OAuthClientConfig",
    "OAuthPlatform",
    "OAuthProviderFactory",
    "DingTalkOAuthProvider",
    "FeishuOAuthProvider",
    "GiteeOAuthProvider",
    "GitHubOAuthProvider",
    "QQOAuthProvider",
    "WeChatOAuthProvider",
]
