"""微信开放平台网站应用扫码登录 - 配置通过参数注入"""

from typing import Any

from pkg.oauth2.base import BaseOAuthProvider, NormalizedProfile, TokenSet
from pkg.oauth2.exceptions import ProfileFetchError, TokenExchangeError


class WeChatOAuthProvider(BaseOAuthProvider):
    """微信 OAuth2.0 适配器

    使用示例:
        ```python
        provider = WeChatOAuthProvider(
            config=OAuthClientConfig(
                client_id="your_app_id",
                client_secret="your_app_secret",
                redirect_uri="https://example.com/v1/oauth/wechat/callback",
            )
        )

        tokens = await provider.exchange_code(code)
        profile = await provider.fetch_profile(tokens.access_token, token_data=tokens.raw)
        ```

    微信的 openid 只在令牌接口返回，拉取用户信息时必须通过 token_data 传入。
    """

    name = "wechat"
    display_name = "微信"
    authorize_url = "https://open.weixin.qq.com/connect/qrconnect"
    authorize_fragment = "#wechat_redirect"
    default_scopes = ("snsapi_login",)
    scope_separator = ","
    supports_refresh = True

    ACCESS_TOKEN_URL = "https://api.weixin.qq.com/sns/oauth2/access_token"
    REFRESH_TOKEN_URL = "https://api.weixin.qq.com/sns/oauth2/refresh_token"
    USER_INFO_URL = "https://api.weixin.qq.com/sns/userinfo"

    def authorization_params(self, state: str, scopes: list[str]) -> dict[str, Any]:
        params = super().authorization_params(state, scopes)
        params["appid"] = params.pop("client_id")
        return params

    def check_error_payload(self, data: dict[str, Any]) -> str | None:
        # 微信成功响应不带 errcode
        if "errcode" in data:
            return f"errcode={data.get('errcode')}, errmsg={data.get('errmsg')}"
        return None

    async def exchange_code(self, code: str, redirect_uri: str | None = None) -> TokenSet:
        data = await self._request_json(
            "GET",
            self.ACCESS_TOKEN_URL,
            error_cls=TokenExchangeError,
            action="exchange code",
            params={
                "appid": self.config.client_id,
                "secret": self.config.client_secret,
                "code": code,
                "grant_type": "authorization_code",
            },
        )
        return self._parse_token_set(data)

    async def refresh_token(self, refresh_token: str) -> TokenSet:
        data = await self._request_json(
            "GET",
            self.REFRESH_TOKEN_URL,
            error_cls=TokenExchangeError,
            action="refresh token",
            params={
                "appid": self.config.client_id,
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            },
        )
        return self._parse_token_set(data, action="refresh token")

    async def fetch_profile(self, access_token: str, token_data: dict[str, Any] | None = None) -> NormalizedProfile:
        token_data = token_data or {}
        openid = token_data.get("openid")
        if not openid:
            self._raise_communication_error(ProfileFetchError, "fetch profile", "openid missing in token data")

        user = await self._request_json(
            "GET",
            self.USER_INFO_URL,
            error_cls=ProfileFetchError,
            action="fetch profile",
            params={
                "access_token": access_token,
                "openid": openid,
                "lang": self.config.extra_config.get("lang", "zh_CN"),
            },
        )
        return self._make_profile(
            external_id=user.get("unionid") or token_data.get("unionid") or user.get("openid") or openid,
            username=user.get("nickname"),
            avatar=user.get("headimgurl"),
            raw=user,
        )
