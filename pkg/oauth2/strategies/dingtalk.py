"""钉钉扫码登录（新版 OAuth2 接口）"""

from typing import Any

from pkg.oauth2.base import BaseOAuthProvider, NormalizedProfile, TokenSet
from pkg.oauth2.exceptions import ProfileFetchError, TokenExchangeError


class DingTalkOAuthProvider(BaseOAuthProvider):
    """钉钉 OAuth2 适配器

    令牌接口使用驼峰 JSON（clientId / accessToken / expireIn），
    用户信息接口通过 x-acs-dingtalk-access-token 头鉴权。
    第三方企业应用可在 extra_config 中配置 corpId。
    """

    name = "dingtalk"
    display_name = "钉钉"
    authorize_url = "https://login.dingtalk.com/oauth2/auth"
    default_scopes = ("openid",)
    supports_refresh = True

    TOKEN_URL = "https://api.dingtalk.com/v1.0/oauth2/userAccessToken"
    USER_INFO_URL = "https://api.dingtalk.com/v1.0/contact/users/me"

    def authorization_params(self, state: str, scopes: list[str]) -> dict[str, Any]:
        params = super().authorization_params(state, scopes)
        params["prompt"] = "consent"
        if corp_id := self.config.extra_config.get("corpId"):
            params["corpId"] = corp_id
        return params

    def check_error_payload(self, data: dict[str, Any]) -> str | None:
        errcode = data.get("errcode")
        if errcode not in (None, 0, "0"):
            return f"errcode={errcode}, errmsg={data.get('errmsg')}"
        return None

    async def _token_request(self, body: dict[str, Any], action: str) -> TokenSet:
        data = await self._request_json(
            "POST",
            self.TOKEN_URL,
            error_cls=TokenExchangeError,
            action=action,
            json={**body, "clientId": self.config.client_id, "clientSecret": self.config.client_secret},
            headers={"Content-Type": "application/json"},
        )
        return self._parse_token_set(
            {
                "access_token": data.get("accessToken"),
                "refresh_token": data.get("refreshToken"),
                "expires_in": data.get("expireIn"),
                "token_type": "bearer",
                "scope": data.get("scope"),
                **{k: v for k, v in data.items() if k not in ("accessToken", "refreshToken")},
            },
            action=action,
        )

    async def exchange_code(self, code: str, redirect_uri: str | None = None) -> TokenSet:
        return await self._token_request({"code": code, "grantType": "authorization_code"}, "exchange code")

    async def refresh_token(self, refresh_token: str) -> TokenSet:
        return await self._token_request({"refreshToken": refresh_token, "grantType": "refresh_token"}, "refresh token")

    async def fetch_profile(self, access_token: str, token_data: dict[str, Any] | None = None) -> NormalizedProfile:
        user = await self._request_json(
            "GET",
            self.USER_INFO_URL,
            error_cls=ProfileFetchError,
            action="fetch profile",
            headers={"x-acs-dingtalk-access-token": access_token},
        )
        return self._make_profile(
            external_id=user.get("unionId") or user.get("openId"),
            username=user.get("nick") or user.get("name"),
            email=user.get("email"),
            avatar=user.get("avatarUrl") or user.get("avatar"),
            raw=user,
        )
