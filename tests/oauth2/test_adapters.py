from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from pkg.oauth2 import (
    DingTalkOAuthProvider,
    FeishuOAuthProvider,
    GiteeOAuthProvider,
    GitHubOAuthProvider,
    OAuthClientConfig,
    QQOAuthProvider,
    WeChatOAuthProvider,
)
from pkg.oauth2.exceptions import ProfileFetchError, TokenExchangeError
from pkg.oauth2.strategies.qq import parse_qq_payload
from pkg.toolkit.json import orjson_loads


def make_config(slug: str, **overrides) -> OAuthClientConfig:
    values = {
        "client_id": f"{slug}-client",
        "client_secret": f"{slug}-secret",
        "redirect_uri": f"https://app.example.com/v1/oauth/{slug}/callback",
    }
    values.update(overrides)
    return OAuthClientConfig(**values)


def form_of(request: httpx.Request) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


def query_of(request: httpx.Request) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(request.url.query.decode()).items()}


class TestGitHub:
    @pytest.fixture
    def provider(self, http_client):
        return GitHubOAuthProvider(make_config("github"), http_client=http_client)

    async def test_exchange_code(self, provider, provider_server):
        provider_server.on_json(
            "POST",
            GitHubOAuthProvider.TOKEN_URL,
            {"access_token": "gho_abc", "token_type": "bearer", "scope": "read:user,user:email"},
        )

        tokens = await provider.exchange_code("code-1")

        assert tokens.access_token == "gho_abc"
        assert tokens.refresh_token is None
        assert tokens.expires_in is None
        request = provider_server.calls(GitHubOAuthProvider.TOKEN_URL)[0]
        assert form_of(request)["code"] == "code-1"
        assert form_of(request)["client_secret"] == "github-secret"
        assert request.headers["Accept"] == "application/json"

    async def test_exchange_code_error_payload(self, provider, provider_server):
        provider_server.on_json(
            "POST",
            GitHubOAuthProvider.TOKEN_URL,
            {"error": "bad_verification_code", "error_description": "The code passed is incorrect or expired."},
        )

        with pytest.raises(TokenExchangeError) as exc_info:
            await provider.exchange_code("stale")

        assert exc_info.value.provider == "github"
        assert "bad_verification_code" in exc_info.value.detail

    async def test_exchange_code_http_error(self, provider, provider_server):
        provider_server.on_json("POST", GitHubOAuthProvider.TOKEN_URL, {"message": "boom"}, status_code=500)

        with pytest.raises(TokenExchangeError):
            await provider.exchange_code("code-1")

    async def test_fetch_profile_with_public_email(self, provider, provider_server):
        provider_server.on_json(
            "GET",
            GitHubOAuthProvider.USER_INFO_URL,
            {"id": 1001, "login": "octocat", "email": "octo@example.com", "avatar_url": "https://a/1.png"},
        )

        profile = await provider.fetch_profile("gho_abc", token_data={"scope": "read:user,user:email"})

        assert profile.external_id == "1001"
        assert profile.username == "octocat"
        assert profile.email == "octo@example.com"
        assert profile.avatar == "https://a/1.png"
        request = provider_server.calls(GitHubOAuthProvider.USER_INFO_URL)[0]
        assert request.headers["Authorization"] == "Bearer gho_abc"
        assert provider_server.calls(GitHubOAuthProvider.USER_EMAILS_URL) == []

    async def test_fetch_profile_falls_back_to_primary_email(self, provider, provider_server):
        provider_server.on_json("GET", GitHubOAuthProvider.USER_INFO_URL, {"id": 1001, "login": "octocat"})
        provider_server.on_json(
            "GET",
            GitHubOAuthProvider.USER_EMAILS_URL,
            [
                {"email": "old@example.com", "primary": False, "verified": True},
                {"email": "main@example.com", "primary": True, "verified": True},
            ],
        )

        profile = await provider.fetch_profile("gho_abc", token_data={"scope": "read:user,user:email"})

        assert profile.email == "main@example.com"

    async def test_email_lookup_failure_does_not_block_login(self, provider, provider_server):
        provider_server.on_json("GET", GitHubOAuthProvider.USER_INFO_URL, {"id": 1001, "login": "octocat"})
        provider_server.on_json("GET", GitHubOAuthProvider.USER_EMAILS_URL, {"message": "forbidden"}, status_code=403)

        profile = await provider.fetch_profile("gho_abc", token_data={"scope": "user:email"})

        assert profile.external_id == "1001"
        assert profile.email is None

    async def test_no_email_lookup_without_scope(self, provider, provider_server):
        provider_server.on_json("GET", GitHubOAuthProvider.USER_INFO_URL, {"id": 1001, "login": "octocat"})

        profile = await provider.fetch_profile("gho_abc", token_data={"scope": "read:user"})

        assert profile.email is None
        assert provider_server.calls(GitHubOAuthProvider.USER_EMAILS_URL) == []

    async def test_fetch_profile_without_id(self, provider, provider_server):
        provider_server.on_json("GET", GitHubOAuthProvider.USER_INFO_URL, {"login": "ghost", "email": "g@example.com"})

        with pytest.raises(ProfileFetchError):
            await provider.fetch_profile("gho_abc", token_data={"scope": "read:user"})

    async def test_network_error(self, provider, provider_server):
        def _refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        provider_server.on("GET", GitHubOAuthProvider.USER_INFO_URL, _refuse)

        with pytest.raises(ProfileFetchError) as exc_info:
            await provider.fetch_profile("gho_abc")
        assert "Network Error" in exc_info.value.detail


class TestGitee:
    @pytest.fixture
    def provider(self, http_client):
        return GiteeOAuthProvider(make_config("gitee"), http_client=http_client)

    async def test_exchange_and_refresh(self, provider, provider_server):
        provider_server.on(
            "POST",
            GiteeOAuthProvider.TOKEN_URL,
            lambda req: httpx.Response(
                200,
                json={
                    "access_token": f"at-{form_of(req)['grant_type']}",
                    "refresh_token": "rt-next",
                    "expires_in": 86400,
                    "token_type": "bearer",
                },
            ),
        )

        tokens = await provider.exchange_code("code-1")
        refreshed = await provider.refresh_token("rt-old")

        assert provider.supports_refresh is True
        assert tokens.access_token == "at-authorization_code"
        assert tokens.expires_in == 86400
        assert refreshed.access_token == "at-refresh_token"
        refresh_form = form_of(provider_server.calls(GiteeOAuthProvider.TOKEN_URL)[1])
        assert refresh_form["refresh_token"] == "rt-old"
        assert refresh_form["client_id"] == "gitee-client"

    async def test_fetch_profile(self, provider, provider_server):
        provider_server.on_json(
            "GET", GiteeOAuthProvider.USER_INFO_URL, {"id": 77, "login": "gitee-user", "name": "码云用户"}
        )

        profile = await provider.fetch_profile("at")

        assert profile.external_id == "77"
        assert profile.username == "gitee-user"
        assert query_of(provider_server.calls(GiteeOAuthProvider.USER_INFO_URL)[0])["access_token"] == "at"

    async def test_message_payload_is_error(self, provider, provider_server):
        provider_server.on_json("GET", GiteeOAuthProvider.USER_INFO_URL, {"message": "401 Unauthorized"})

        with pytest.raises(ProfileFetchError):
            await provider.fetch_profile("at")

    async def test_missing_access_token(self, provider, provider_server):
        provider_server.on_json("POST", GiteeOAuthProvider.TOKEN_URL, {"token_type": "bearer"})

        with pytest.raises(TokenExchangeError):
            await provider.exchange_code("code-1")


class TestDingTalk:
    @pytest.fixture
    def provider(self, http_client):
        return DingTalkOAuthProvider(make_config("dingtalk", extra_config={"corpId": "ding123"}), http_client=http_client)

    def test_authorization_url(self, provider):
        url = provider.build_authorization_url("s1")
        query = parse_qs(urlsplit(url).query)

        assert url.startswith(DingTalkOAuthProvider.authorize_url)
        assert query["prompt"] == ["consent"]
        assert query["corpId"] == ["ding123"]
        assert query["scope"] == ["openid"]

    async def test_exchange_code_camel_case(self, provider, provider_server):
        provider_server.on_json(
            "POST",
            DingTalkOAuthProvider.TOKEN_URL,
            {"accessToken": "dt-at", "refreshToken": "dt-rt", "expireIn": 7200, "corpId": "ding123"},
        )

        tokens = await provider.exchange_code("code-1")

        assert tokens.access_token == "dt-at"
        assert tokens.refresh_token == "dt-rt"
        assert tokens.expires_in == 7200
        body = orjson_loads(provider_server.calls(DingTalkOAuthProvider.TOKEN_URL)[0].content)
        assert body == {
            "code": "code-1",
            "grantType": "authorization_code",
            "clientId": "dingtalk-client",
            "clientSecret": "dingtalk-secret",
        }

    async def test_errcode(self, provider, provider_server):
        provider_server.on_json("POST", DingTalkOAuthProvider.TOKEN_URL, {"errcode": 40078, "errmsg": "invalid code"})

        with pytest.raises(TokenExchangeError):
            await provider.exchange_code("code-1")

    async def test_fetch_profile_prefers_union_id(self, provider, provider_server):
        provider_server.on_json(
            "GET",
            DingTalkOAuthProvider.USER_INFO_URL,
            {"unionId": "union-1", "openId": "open-1", "nick": "钉钉用户", "avatarUrl": "https://a/d.png"},
        )

        profile = await provider.fetch_profile("dt-at")

        assert profile.external_id == "union-1"
        assert profile.username == "钉钉用户"
        request = provider_server.calls(DingTalkOAuthProvider.USER_INFO_URL)[0]
        assert request.headers["x-acs-dingtalk-access-token"] == "dt-at"


class TestFeishu:
    @pytest.fixture
    def provider(self, http_client):
        return FeishuOAuthProvider(make_config("feishu"), http_client=http_client)

    async def test_exchange_code(self, provider, provider_server):
        provider_server.on_json(
            "POST",
            FeishuOAuthProvider.TOKEN_URL,
            {"code": 0, "access_token": "fs-at", "refresh_token": "fs-rt", "expires_in": 7200, "token_type": "Bearer"},
        )

        tokens = await provider.exchange_code("code-1")

        assert tokens.access_token == "fs-at"
        assert tokens.refresh_token == "fs-rt"
        body = orjson_loads(provider_server.calls(FeishuOAuthProvider.TOKEN_URL)[0].content)
        assert body["grant_type"] == "authorization_code"
        assert body["client_id"] == "feishu-client"

    async def test_non_zero_code(self, provider, provider_server):
        provider_server.on_json("POST", FeishuOAuthProvider.TOKEN_URL, {"code": 20003, "msg": "invalid grant"})

        with pytest.raises(TokenExchangeError) as exc_info:
            await provider.exchange_code("code-1")
        assert "20003" in exc_info.value.detail

    async def test_fetch_profile_unwraps_data(self, provider, provider_server):
        provider_server.on_json(
            "GET",
            FeishuOAuthProvider.USER_INFO_URL,
            {"code": 0, "msg": "success", "data": {"union_id": "on_1", "open_id": "ou_1", "name": "飞书用户"}},
        )

        profile = await provider.fetch_profile("fs-at")

        assert profile.external_id == "on_1"
        assert profile.username == "飞书用户"
        assert provider_server.calls(FeishuOAuthProvider.USER_INFO_URL)[0].headers["Authorization"] == "Bearer fs-at"


class TestWeChat:
    @pytest.fixture
    def provider(self, http_client):
        return WeChatOAuthProvider(make_config("wechat"), http_client=http_client)

    def test_authorization_url(self, provider):
        url = provider.build_authorization_url("s1")
        query = parse_qs(urlsplit(url).query)

        assert url.endswith("#wechat_redirect")
        assert query["appid"] == ["wechat-client"]
        assert "client_id" not in query
        assert query["scope"] == ["snsapi_login"]

    async def test_full_flow_uses_openid_from_token(self, provider, provider_server):
        provider_server.on_json(
            "GET",
            WeChatOAuthProvider.ACCESS_TOKEN_URL,
            {
                "access_token": "wx-at",
                "expires_in": 7200,
                "refresh_token": "wx-rt",
                "openid": "openid-1",
                "scope": "snsapi_login",
            },
        )
        provider_server.on_json(
            "GET",
            WeChatOAuthProvider.USER_INFO_URL,
            {"openid": "openid-1", "unionid": "union-1", "nickname": "微信用户", "headimgurl": "https://a/w.png"},
        )

        tokens = await provider.exchange_code("code-1")
        profile = await provider.fetch_profile(tokens.access_token, token_data=tokens.raw)

        assert tokens.refresh_token == "wx-rt"
        assert profile.external_id == "union-1"
        assert profile.username == "微信用户"
        token_query = query_of(provider_server.calls(WeChatOAuthProvider.ACCESS_TOKEN_URL)[0])
        assert token_query["appid"] == "wechat-client"
        assert token_query["secret"] == "wechat-secret"
        user_query = query_of(provider_server.calls(WeChatOAuthProvider.USER_INFO_URL)[0])
        assert user_query["openid"] == "openid-1"
        assert user_query["lang"] == "zh_CN"

    async def test_fetch_profile_without_openid(self, provider, provider_server):
        with pytest.raises(ProfileFetchError):
            await provider.fetch_profile("wx-at", token_data={})
        assert provider_server.requests == []

    async def test_errcode(self, provider, provider_server):
        provider_server.on_json(
            "GET", WeChatOAuthProvider.ACCESS_TOKEN_URL, {"errcode": 40029, "errmsg": "invalid code"}
        )

        with pytest.raises(TokenExchangeError):
            await provider.exchange_code("code-1")

    async def test_refresh(self, provider, provider_server):
        provider_server.on_json(
            "GET",
            WeChatOAuthProvider.REFRESH_TOKEN_URL,
            {"access_token": "wx-at-2", "expires_in": 7200, "refresh_token": "wx-rt-2", "openid": "openid-1"},
        )

        tokens = await provider.refresh_token("wx-rt")

        assert tokens.access_token == "wx-at-2"
        assert query_of(provider_server.calls(WeChatOAuthProvider.REFRESH_TOKEN_URL)[0])["refresh_token"] == "wx-rt"


class TestQQ:
    @pytest.fixture
    def provider(self, http_client):
        return QQOAuthProvider(make_config("qq"), http_client=http_client)

    def test_parse_jsonp(self):
        assert parse_qq_payload('callback( {"client_id":"cid","openid":"OPENID"} );') == {
            "client_id": "cid",
            "openid": "OPENID",
        }

    def test_parse_form_encoded(self):
        assert parse_qq_payload("access_token=at&expires_in=7776000") == {
            "access_token": "at",
            "expires_in": "7776000",
        }

    def test_parse_unrecognized(self):
        with pytest.raises(ValueError):
            parse_qq_payload("")

    async def test_full_flow(self, provider, provider_server):
        provider_server.on(
            "GET",
            QQOAuthProvider.TOKEN_URL,
            httpx.Response(200, text="access_token=qq-at&expires_in=7776000&refresh_token=qq-rt"),
        )
        provider_server.on(
            "GET",
            QQOAuthProvider.OPENID_URL,
            httpx.Response(200, text='callback( {"client_id":"qq-client","openid":"QQ_OPENID"} );'),
        )
        provider_server.on_json(
            "GET",
            QQOAuthProvider.USER_INFO_URL,
            {"ret": 0, "msg": "", "nickname": "QQ用户", "figureurl_qq_2": "https://a/q100.png"},
        )

        tokens = await provider.exchange_code("code-1")
        profile = await provider.fetch_profile(tokens.access_token)

        assert tokens.access_token == "qq-at"
        assert tokens.expires_in == 7776000
        assert profile.external_id == "QQ_OPENID"
        assert profile.username == "QQ用户"
        assert profile.avatar == "https://a/q100.png"
        user_query = query_of(provider_server.calls(QQOAuthProvider.USER_INFO_URL)[0])
        assert user_query["oauth_consumer_key"] == "qq-client"
        assert user_query["openid"] == "QQ_OPENID"

    async def test_ret_error(self, provider, provider_server):
        provider_server.on(
            "GET",
            QQOAuthProvider.OPENID_URL,
            httpx.Response(200, text='callback( {"client_id":"qq-client","openid":"QQ_OPENID"} );'),
        )
        provider_server.on_json("GET", QQOAuthProvider.USER_INFO_URL, {"ret": -1, "msg": "client request's parameters are invalid"})

        with pytest.raises(ProfileFetchError):
            await provider.fetch_profile("qq-at")

    async def test_jsonp_error(self, provider, provider_server):
        provider_server.on(
            "GET",
            QQOAuthProvider.TOKEN_URL,
            httpx.Response(200, text='callback( {"error":100019,"error_description":"code to access token error"} );'),
        )

        with pytest.raises(TokenExchangeError):
            await provider.exchange_code("code-1")

    async def test_refresh_unsupported(self, provider):
        assert provider.supports_refresh is False
