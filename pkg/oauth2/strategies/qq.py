"""QQ 互联登录"""

import re
from typing import Any
from urllib.parse import parse_qsl

from pkg.oauth2.base import BaseOAuthProvider, NormalizedProfile, TokenSet
from pkg.oauth2.exceptions import ProfileFetchError, ProviderCommunicationError, TokenExchangeError
from pkg.toolkit.json import orjson_loads

_JSONP_RE = re.compile(r"^\s*callback\s*\(\s*(?P<body>.*?)\s*\)\s*;?\s*$", re.DOTALL)


def parse_qq_payload(text: str) -> dict[str, Any]:
    """
    解析 QQ 互联的响应体

    QQ 的接口可能返回 JSON、JSONP（callback( {...} );）或表单编码（access_token=...&expires_in=...）。

    Raises:
        ValueError: 三种格式都无法解析
    """
    body = (text or "").strip()
    if match := _JSONP_RE.match(body):
        body = match.group("body")

    try:
        data = orjson_loads(body)
    except ValueError:
        data = dict(parse_qsl(body, keep_blank_values=False))
        if not data:
            raise ValueError(f"unrecognized response format: {body[:100]}") from None

    if not isinstance(data, dict):
        raise ValueError(f"unexpected payload type {type(data).__name__}")
    return data


class QQOAuthProvider(BaseOAuthProvider):
    """QQ 互联 OAuth2 适配器

    用户标识 openid 需要单独调用 /oauth2.0/me 获取，标准流程不提供刷新。
    """

    name = "qq"
    display_name = "QQ"
    authorize_url = "https://graph.qq.com/oauth2.0/authorize"
    default_scopes = ("get_user_info",)
    scope_separator = ","

    TOKEN_URL = "https://graph.qq.com/oauth2.0/token"
    OPENID_URL = "https://graph.qq.com/oauth2.0/me"
    USER_INFO_URL = "https://graph.qq.com/user/get_user_info"

    def check_error_payload(self, data: dict[str, Any]) -> str | None:
        ret = data.get("ret")
        if ret not in (None, 0, "0"):
            return f"ret={ret}, msg={data.get('msg')}"
        return None

    async def _request_qq(
        self, url: str, *, error_cls: type[ProviderCommunicationError], action: str, params: dict[str, Any]
    ) -> dict[str, Any]:
        result = await self._send("GET", url, error_cls=error_cls, action=action, params=params)
        try:
            data = parse_qq_payload(result.text)
        except ValueError as e:
            self._raise_communication_error(error_cls, action, str(e))
        return self._check_payload(data, error_cls, action)

    async def exchange_code(self, code: str, redirect_uri: str | None = None) -> TokenSet:
        data = await self._request_qq(
            self.TOKEN_URL,
            error_cls=TokenExchangeError,
            action="exchange code",
            params={
                "grant_type": "authorization_code",
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
                "code": code,
                "redirect_uri": redirect_uri or self.config.redirect_uri,
            },
        )
        return self._parse_token_set(data)

    async def fetch_profile(self, access_token: str, token_data: dict[str, Any] | None = None) -> NormalizedProfile:
        me = await self._request_qq(
            self.OPENID_URL,
            error_cls=ProfileFetchError,
            action="fetch openid",
            params={"access_token": access_token},
        )
        openid = me.get("openid")
        if not openid:
            self._raise_communication_error(ProfileFetchError, "fetch openid", "openid missing in response")

        user = await self._request_qq(
            self.USER_INFO_URL,
            error_cls=ProfileFetchError,
            action="fetch profile",
            params={
                "access_token": access_token,
                "oauth_consumer_key": self.config.client_id,
                "openid": openid,
            },
        )
        return self._make_profile(
            external_id=openid,
            username=user.get("nickname"),
            avatar=(
                user.get("figureurl_qq_2")
                or user.get("figureurl_qq_1")
                or user.get("figureurl_2")
                or user.get("figureurl_1")
                or user.get("figureurl")
            ),
            raw={**user, "openid": openid},
        )
