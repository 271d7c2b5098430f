"""OAuth2 第三方平台适配器抽象基类 - 无业务依赖的通用接口"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, NoReturn
from urllib.parse import quote, urlencode

from pkg.logger import logger
from pkg.oauth2.config import OAuthClientConfig
from pkg.oauth2.exceptions import (
    ProfileFetchError,
    ProviderCommunicationError,
    TokenExchangeError,
    UnsupportedOperation,
)
from pkg.toolkit.http_cli import AsyncHttpClient, RequestResult
from pkg.toolkit.mask import mask_text

# 第三方错误响应只截取前面一段写日志
_MAX_LOGGED_BODY = 500


@dataclass(frozen=True, slots=True)
class TokenSet:
    """令牌端点返回的统一结构

    Attributes:
        access_token: 访问令牌
        refresh_token: 刷新令牌（部分平台没有）
        expires_in: 有效期（秒），平台未返回时为 None，视为永不过期
        token_type: 令牌类型，通常为 bearer
        scope: 实际授予的授权范围
        raw: 原始响应（保留扩展性，如微信 openid / unionid）
    """

    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None
    token_type: str | None = None
    scope: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    def __repr__(self) -> str:
        return f"TokenSet(token_type={self.token_type!r}, expires_in={self.expires_in!r}, scope={self.scope!r})"


@dataclass(frozen=True, slots=True)
class NormalizedProfile:
    """第三方用户信息统一结构

    Attributes:
        external_id: 平台内稳定且非空的用户唯一标识，账号绑定唯一性的依据
        username: 昵称 / 登录名
        email: 邮箱（部分平台没有）
        avatar: 头像 URL
        raw: 原始数据
    """

    external_id: str
    username: str | None = None
    email: str | None = None
    avatar: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)


class BaseOAuthProvider(ABC):
    """OAuth2 授权码模式适配器抽象基类

    每个平台一个子类，通过 OAuthProviderFactory 以 slug 注册。
    适配器只做出站 HTTP 调用，不做任何持久化；配置通过构造函数注入。

    使用示例:
        ```python
        async with GitHubOAuthProvider(config) as provider:
            url = provider.build_authorization_url(state)
            tokens = await provider.exchange_code(code)
            profile = await provider.fetch_profile(tokens.access_token, token_data=tokens.raw)
        ```
    """

    name: ClassVar[str] = ""
    display_name: ClassVar[str] = ""
    authorize_url: ClassVar[str] = ""
    authorize_fragment: ClassVar[str] = ""
    default_scopes: ClassVar[tuple[str, ...]] = ()
    scope_separator: ClassVar[str] = " "
    supports_refresh: ClassVar[bool] = False

    def __init__(self, config: OAuthClientConfig, *, http_client: AsyncHttpClient | None = None, timeout: float = 10):
        self.config = config
        self._owns_http_client = http_client is None
        self._http_client = http_client or AsyncHttpClient(timeout=timeout)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        """关闭自己创建的 HTTP 客户端；外部注入的客户端由注入方负责关闭"""
        if self._owns_http_client:
            await self._http_client.close()

    @property
    def log_prefix(self) -> str:
        return f"[{self.__class__.__name__}]"

    # ==========================================================================
    # 授权 URL
    # ==========================================================================

    def resolve_scopes(self, scopes: list[str] | tuple[str, ...] | None = None) -> list[str]:
        """优先级：调用方传入 > 配置 > 平台默认"""
        return list(scopes or self.config.scopes or self.default_scopes)

    def authorization_params(self, state: str, scopes: list[str]) -> dict[str, Any]:
        return {
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_uri,
            "response_type": "code",
            "scope": self.scope_separator.join(scopes),
            "state": state,
        }

    def build_authorization_url(self, state: str, scopes: list[str] | tuple[str, ...] | None = None) -> str:
        if not state:
            raise ValueError("state cannot be empty")
        params = self.authorization_params(state, self.resolve_scopes(scopes))
        return self.compose_url(self.authorize_url, params, fragment=self.authorize_fragment)

    @staticmethod
    def compose_url(base_url: str, params: dict[str, Any], *, fragment: str = "") -> str:
        """RFC 3986 编码（空格编码为 %20），None 值参数会被丢弃"""
        query = urlencode({k: v for k, v in params.items() if v is not None}, quote_via=quote)
        url = f"{base_url}?{query}" if query else base_url
        return f"{url}{fragment}"

    # ==========================================================================
    # 令牌 / 用户信息
    # ==========================================================================

    @abstractmethod
    async def exchange_code(self, code: str, redirect_uri: str | None = None) -> TokenSet:
        """
        通过授权码换取访问令牌

        Raises:
            TokenExchangeError: 非 2xx、响应无法解析、响应中带错误码或缺少 access_token
        """
        pass

    @abstractmethod
    async def fetch_profile(self, access_token: str, token_data: dict[str, Any] | None = None) -> NormalizedProfile:
        """
        拉取并标准化用户信息

        Args:
            access_token: 访问令牌
            token_data: 令牌端点的原始响应，部分平台的用户标识只在这里返回（如微信 openid）

        Raises:
            ProfileFetchError: 请求失败或 external_id 为空
        """
        pass

    async def refresh_token(self, refresh_token: str) -> TokenSet:
        """
        刷新访问令牌，不支持刷新的平台保持默认实现

        Raises:
            UnsupportedOperation: 平台不支持刷新
            TokenExchangeError: 刷新请求失败
        """
        raise UnsupportedOperation(f"{self.display_name or self.name} 不支持刷新令牌", provider=self.name)

    # ==========================================================================
    # 子类辅助方法
    # ==========================================================================

    def check_error_payload(self, data: dict[str, Any]) -> str | None:
        """平台特有的错误码检查，返回错误描述；无错误返回 None"""
        return None

    def _raise_communication_error(
        self, error_cls: type[ProviderCommunicationError], action: str, detail: str
    ) -> NoReturn:
        logger.error(f"{self.log_prefix} {action} failed: {mask_text(detail)[:_MAX_LOGGED_BODY]}")
        raise error_cls(provider=self.name, detail=detail)

    def _ensure_success(
        self, result: RequestResult, error_cls: type[ProviderCommunicationError], action: str
    ) -> None:
        if not result.success:
            self._raise_communication_error(
                error_cls, action, f"status={result.status_code}, error={result.error}, body={result.text}"
            )

    def _check_payload(
        self, data: Any, error_cls: type[ProviderCommunicationError], action: str
    ) -> dict[str, Any]:
        if not isinstance(data, dict):
            self._raise_communication_error(error_cls, action, f"unexpected payload type {type(data).__name__}")

        if data.get("error"):
            self._raise_communication_error(
                error_cls, action, f"error={data.get('error')}, description={data.get('error_description')}"
            )

        if reason := self.check_error_payload(data):
            self._raise_communication_error(error_cls, action, reason)

        return data

    async def _send(
        self,
        method: str,
        url: str,
        *,
        error_cls: type[ProviderCommunicationError],
        action: str,
        **kwargs: Any,
    ) -> RequestResult:
        if method.upper() == "POST":
            result = await self._http_client.post(url, **kwargs)
        else:
            result = await self._http_client.get(url, **kwargs)

        self._ensure_success(result, error_cls, action)
        return result

    async def _request_json(
        self,
        method: str,
        url: str,
        *,
        error_cls: type[ProviderCommunicationError],
        action: str,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """发送请求并返回校验后的 JSON 对象，任何失败都转换为 error_cls"""
        result = await self._send(method, url, error_cls=error_cls, action=action, **kwargs)

        try:
            data = result.json()
        except RuntimeError as e:
            self._raise_communication_error(error_cls, action, f"invalid json: {e}")

        return self._check_payload(data, error_cls, action)

    def _parse_token_set(self, data: dict[str, Any], *, action: str = "exchange code") -> TokenSet:
        access_token = data.get("access_token")
        if not access_token:
            self._raise_communication_error(TokenExchangeError, action, "access_token missing in response")

        expires_in = data.get("expires_in")
        try:
            expires_in = int(expires_in) if expires_in not in (None, "") else None
        except (TypeError, ValueError):
            expires_in = None

        return TokenSet(
            access_token=str(access_token),
            refresh_token=data.get("refresh_token") or None,
            expires_in=expires_in,
            token_type=data.get("token_type") or "bearer",
            scope=data.get("scope"),
            raw=data,
        )

    def _make_profile(
        self,
        *,
        external_id: Any,
        username: str | None = None,
        email: str | None = None,
        avatar: str | None = None,
        raw: dict[str, Any] | None = None,
    ) -> NormalizedProfile:
        external_id = "" if external_id is None else str(external_id).strip()
        if not external_id:
            self._raise_communication_error(ProfileFetchError, "fetch profile", "external id missing in user info")

        return NormalizedProfile(
            external_id=external_id,
            username=username or None,
            email=email or None,
            avatar=avatar or None,
            raw=raw or {},
        )
