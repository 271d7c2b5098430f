"""飞书网页应用登录"""

from typing import Any

from pkg.oauth2.base import BaseOAuthProvider, NormalizedProfile, TokenSet
from pkg.oauth2.exceptions import ProfileFetchError, TokenExchangeError


class FeishuOAuthProvider(BaseOAuthProvider):
    """飞书 OAuth2 适配器

    飞书接口统一返回 {"code": 0, "msg": "success", "data": {...}}，code 非 0 即失败；
    v2 令牌接口直接返回令牌字段，不包 data。
    """

    name = "feishu"
    display_name = "飞书"
    authorize_url = "https://accounts.feishu.cn/open-apis/authen/v1/authorize"
    supports_refresh = True

    TOKEN_URL = "https://open.feishu.cn/open-apis/authen/v2/oauth/token"
    USER_INFO_URL = "https://open.feishu.cn/open-apis/authen/v1/user_info"

    def check_error_payload(self, data: dict[str, Any]) -> str | None:
        code = data.get("code")
        if code not in (None, 0, "0"):
            return f"code={code}, msg={data.get('msg')}"
        return None

    @staticmethod
    def _unwrap(data: dict[str, Any]) -> dict[str, Any]:
        inner = data.get("data")
        return inner if isinstance(inner, dict) else data

    async def _token_request(self, body: dict[str, Any], action: str) -> TokenSet:
        data = await self._request_json(
            "POST",
            self.TOKEN_URL,
            error_cls=TokenExchangeError,
            action=action,
            json={**body, "client_id": self.config.client_id, "client_secret": self.config.client_secret},
            headers={"Content-Type": "application/json; charset=utf-8"},
        )
        return self._parse_token_set(self._unwrap(data), action=action)

    async def exchange_code(self, code: str, redirect_uri: str | None = None) -> TokenSet:
        return await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri or self.config.redirect_uri,
            },
            "exchange code",
        )

    async def refresh_token(self, refresh_token: str) -> TokenSet:
        return await self._token_request({"grant_type": "refresh_token", "refresh_token": refresh_token}, "refresh token")

    async def fetch_profile(self, access_token: str, token_data: dict[str, Any] | None = None) -> NormalizedProfile:
        data = await self._request_json(
            "GET",
            self.USER_INFO_URL,
            error_cls=ProfileFetchError,
            action="fetch profile",
            headers={"Authorization": f"Bearer {access_token}"},
        )
        user = self._unwrap(data)
        return self._make_profile(
            external_id=user.get("union_id") or user.get("user_id") or user.get("open_id"),
            username=user.get("name") or user.get("en_name"),
            email=user.get("email") or user.get("enterprise_email"),
            avatar=user.get("avatar_url") or user.get("picture"),
            raw=user,
        )
