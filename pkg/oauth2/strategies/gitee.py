"""码云（Gitee）登录"""

from typing import Any

from pkg.oauth2.base import BaseOAuthProvider, NormalizedProfile, TokenSet
from pkg.oauth2.exceptions import ProfileFetchError, TokenExchangeError


class GiteeOAuthProvider(BaseOAuthProvider):
    name = "gitee"
    display_name = "码云"
    authorize_url = "https://gitee.com/oauth/authorize"
    default_scopes = ("user_info",)
    supports_refresh = True

    TOKEN_URL = "https://gitee.com/oauth/token"
    USER_INFO_URL = "https://gitee.com/api/v5/user"

    async def _token_request(self, form: dict[str, Any], action: str) -> TokenSet:
        data = await self._request_json(
            "POST",
            self.TOKEN_URL,
            error_cls=TokenExchangeError,
            action=action,
            data={**form, "client_id": self.config.client_id, "client_secret": self.config.client_secret},
            headers={"Accept": "application/json"},
        )
        return self._parse_token_set(data, action=action)

    async def exchange_code(self, code: str, redirect_uri: str | None = None) -> TokenSet:
        return await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri or self.config.redirect_uri,
            },
            action="exchange code",
        )

    async def refresh_token(self, refresh_token: str) -> TokenSet:
        return await self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
            action="refresh token",
        )

    async def fetch_profile(self, access_token: str, token_data: dict[str, Any] | None = None) -> NormalizedProfile:
        user = await self._request_json(
            "GET",
            self.USER_INFO_URL,
            error_cls=ProfileFetchError,
            action="fetch profile",
            params={"access_token": access_token},
        )
        # Gitee 出错时返回 200 + {"message": "..."}
        if "message" in user:
            self._raise_communication_error(ProfileFetchError, "fetch profile", f"message={user['message']}")

        return self._make_profile(
            external_id=user.get("id"),
            username=user.get("login") or user.get("name"),
            email=user.get("email"),
            avatar=user.get("avatar_url"),
            raw=user,
        )
