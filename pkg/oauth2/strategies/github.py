"""GitHub OAuth App 登录"""

from typing import Any

from pkg.logger import logger
from pkg.oauth2.base import BaseOAuthProvider, NormalizedProfile, TokenSet
from pkg.oauth2.exceptions import ProfileFetchError, ProviderCommunicationError, TokenExchangeError


class GitHubOAuthProvider(BaseOAuthProvider):
    """GitHub OAuth2 适配器

    GitHub 的 access_token 不过期，也不提供 refresh_token。
    用户未公开邮箱时，若授权范围包含 user:email，会额外查询 /user/emails。
    """

    name = "github"
    display_name = "GitHub"
    authorize_url = "https://github.com/login/oauth/authorize"
    default_scopes = ("read:user", "user:email")

    TOKEN_URL = "https://github.com/login/oauth/access_token"
    USER_INFO_URL = "https://api.github.com/user"
    USER_EMAILS_URL = "https://api.github.com/user/emails"

    def authorization_params(self, state: str, scopes: list[str]) -> dict[str, Any]:
        params = super().authorization_params(state, scopes)
        allow_signup = self.config.extra_config.get("allow_signup")
        if allow_signup is not None:
            params["allow_signup"] = "true" if allow_signup else "false"
        return params

    async def exchange_code(self, code: str, redirect_uri: str | None = None) -> TokenSet:
        data = await self._request_json(
            "POST",
            self.TOKEN_URL,
            error_cls=TokenExchangeError,
            action="exchange code",
            data={
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
                "code": code,
                "redirect_uri": redirect_uri or self.config.redirect_uri,
            },
            headers={"Accept": "application/json"},
        )
        return self._parse_token_set(data)

    def _api_headers(self, access_token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/vnd.github+json",
        }

    async def fetch_profile(self, access_token: str, token_data: dict[str, Any] | None = None) -> NormalizedProfile:
        user = await self._request_json(
            "GET",
            self.USER_INFO_URL,
            error_cls=ProfileFetchError,
            action="fetch profile",
            headers=self._api_headers(access_token),
        )

        email = user.get("email")
        if not email and "user:email" in self._granted_scopes(token_data):
            email = await self._fetch_primary_email(access_token)

        return self._make_profile(
            external_id=user.get("id"),
            username=user.get("login") or user.get("name"),
            email=email,
            avatar=user.get("avatar_url"),
            raw=user,
        )

    def _granted_scopes(self, token_data: dict[str, Any] | None) -> list[str]:
        granted = (token_data or {}).get("scope")
        if granted:
            return [s.strip() for s in str(granted).split(",") if s.strip()]
        return self.resolve_scopes()

    async def _fetch_primary_email(self, access_token: str) -> str | None:
        """主邮箱优先，其次第一个已验证邮箱；查询失败不影响登录"""
        try:
            result = await self._send(
                "GET",
                self.USER_EMAILS_URL,
                error_cls=ProfileFetchError,
                action="fetch emails",
                headers=self._api_headers(access_token),
            )
            emails = result.json()
        except (ProviderCommunicationError, RuntimeError) as e:
            logger.warning(f"{self.log_prefix} Failed to fetch user emails: {e}")
            return None

        if not isinstance(emails, list):
            return None

        for item in emails:
            if isinstance(item, dict) and item.get("primary") and item.get("email"):
                return item["email"]
        for item in emails:
            if isinstance(item, dict) and item.get("verified") and item.get("email"):
                return item["email"]
        return None
