"""
HTTP 接口测试：通过 httpx ASGITransport 调用应用，不触发 lifespan。

OAuthService 通过 dependency_overrides 注入测试实例，登录令牌存储使用 AsyncMock。
"""

from collections.abc import AsyncGenerator
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
import pytest_asyncio

import internal.app as app_module
from internal.config import init_settings
from internal.controllers.web.oauth import get_oauth_service
from internal.core.exception import errors
from internal.services.login_session import login_token_cache_key
from pkg.oauth2 import GitHubOAuthProvider, TokenSet
from tests.conftest import build_test_settings
from tests.factories import add_binding, mock_github, store_tokens

USER_TOKEN = "tk_user7"


@pytest.fixture
def app(monkeypatch, oauth_service, login_issuer, mock_cache):
    def _get_dict(key: str):
        if key == login_token_cache_key(USER_TOKEN):
            return {"id": 7}
        return None

    mock_cache.get_dict.side_effect = _get_dict
    monkeypatch.setattr(app_module, "new_login_session_issuer", lambda: login_issuer)

    application = app_module.create_app()
    application.dependency_overrides[get_oauth_service] = lambda: oauth_service
    return application


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[httpx.AsyncClient, None]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


def auth_headers(token: str = USER_TOKEN) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


JSON = {"Accept": "application/json"}


class TestProviders:
    async def test_anonymous(self, client, github_provider, gitee_provider):
        resp = await client.get("/v1/oauth/providers")

        body = resp.json()
        assert resp.status_code == 200
        assert body["code"] == 20000
        assert [item["name"] for item in body["data"]["items"]] == ["github", "gitee"]

    async def test_marks_bound_providers(self, client, github_provider, gitee_provider, binding_dao):
        await add_binding(binding_dao, 7, "gitee", "77")

        resp = await client.get("/v1/oauth/providers", headers=auth_headers())

        items = {item["name"]: item["is_bound"] for item in resp.json()["data"]["items"]}
        assert items == {"github": False, "gitee": True}

    async def test_trace_id_echoed(self, client):
        resp = await client.get("/v1/oauth/providers", headers={"X-Trace-ID": "trace-123"})

        assert resp.headers["X-Trace-ID"] == "trace-123"
        assert "X-Process-Time" in resp.headers


class TestAuthorize:
    async def test_json_response(self, client, github_provider):
        resp = await client.get("/v1/oauth/github/authorize", headers=JSON)

        data = resp.json()["data"]
        assert data["provider"] == "github"
        assert data["intent"] == "login"
        assert data["auth_url"].startswith(GitHubOAuthProvider.authorize_url)
        assert parse_qs(urlsplit(data["auth_url"]).query)["state"] == [data["state"]]

    async def test_redirects_by_default(self, client, github_provider):
        resp = await client.get("/v1/oauth/github/authorize")

        assert resp.status_code == 302
        assert resp.headers["location"].startswith(GitHubOAuthProvider.authorize_url)

    async def test_logged_in_user_binds(self, client, github_provider):
        resp = await client.get("/v1/oauth/github/authorize", headers={**JSON, **auth_headers()})
        assert resp.json()["data"]["intent"] == "bind"

    async def test_invalid_token_rejected(self, client, github_provider):
        resp = await client.get("/v1/oauth/github/authorize", headers={**JSON, **auth_headers("tk_forged")})

        assert resp.status_code == 401
        assert resp.json()["code"] == errors.Unauthorized.code

    async def test_unknown_provider(self, client):
        resp = await client.get("/v1/oauth/gitlab/authorize", headers=JSON)
        assert resp.json()["code"] == errors.OAuthProviderNotFound.code

    async def test_redirect_uri_must_match_frontend(self, client, github_provider):
        init_settings(build_test_settings(OAUTH_FRONTEND_REDIRECT_URL="https://app.example.com/oauth/done"))

        denied = await client.get(
            "/v1/oauth/github/authorize", params={"redirect_uri": "https://evil.example.com/steal"}, headers=JSON
        )
        allowed = await client.get(
            "/v1/oauth/github/authorize", params={"redirect_uri": "https://app.example.com/settings"}, headers=JSON
        )

        assert denied.json()["code"] == errors.BadRequest.code
        assert allowed.json()["code"] == 20000

    async def test_redirect_uri_rejected_without_frontend_config(self, client, github_provider, state_dao):
        """未配置前端地址时不接受任何跳转地址"""
        resp = await client.get(
            "/v1/oauth/github/authorize", params={"redirect_uri": "https://evil.example.net/steal"}, headers=JSON
        )

        assert resp.json()["code"] == errors.BadRequest.code
        assert await state_dao.counter.count() == 0

    async def test_rate_limited(self, client, github_provider):
        for _ in range(10):
            await client.get("/v1/oauth/github/authorize", headers={**JSON, **auth_headers()})

        resp = await client.get("/v1/oauth/github/authorize", headers={**JSON, **auth_headers()})

        assert resp.status_code == 429
        assert resp.json()["code"] == errors.OAuthRateLimited.code


class TestCallback:
    async def test_login_returns_token(self, client, oauth_service, github_provider, provider_server):
        mock_github(provider_server, external_id=42)
        auth = await oauth_service.begin_auth("github")

        resp = await client.get("/v1/oauth/github/callback", params={"state": auth.state, "code": "abc"})

        data = resp.json()["data"]
        assert data["action"] == "login"
        assert data["created"] is True
        assert data["token"].startswith("tk_")
        assert int(data["user_id"]) > 0

    async def test_redirect_carries_token_in_fragment(self, client, oauth_service, github_provider, provider_server):
        init_settings(build_test_settings(OAUTH_FRONTEND_REDIRECT_URL="https://app.example.com/oauth/done"))
        mock_github(provider_server, external_id=42)
        auth = await oauth_service.begin_auth("github", redirect_uri="https://app.example.com/oauth/done?from=login")

        resp = await client.get("/v1/oauth/github/callback", params={"state": auth.state, "code": "abc"})

        assert resp.status_code == 302
        location = urlsplit(resp.headers["location"])
        assert location.netloc == "app.example.com"
        assert parse_qs(location.query) == {"from": ["login"], "provider": ["github"], "action": ["login"], "created": ["1"]}
        assert parse_qs(location.fragment)["token"][0].startswith("tk_")

    async def test_foreign_redirect_never_receives_token(self, client, oauth_service, github_provider, provider_server):
        """state 中的跳转地址不在允许站点内时，登录令牌只通过 JSON 返回"""
        mock_github(provider_server, external_id=42)
        auth = await oauth_service.begin_auth("github", redirect_uri="https://evil.example.net/steal")

        resp = await client.get("/v1/oauth/github/callback", params={"state": auth.state, "code": "abc"})

        assert resp.status_code == 200
        assert "location" not in resp.headers
        assert resp.json()["data"]["token"].startswith("tk_")

    async def test_bind_via_callback(self, client, oauth_service, github_provider, provider_server, binding_dao):
        mock_github(provider_server, external_id=42)
        auth = await oauth_service.begin_auth("github", user_id=7)

        resp = await client.get("/v1/oauth/github/callback", params={"state": auth.state, "code": "abc"})

        data = resp.json()["data"]
        assert data["action"] == "bind"
        assert data["token"] is None
        assert (await binding_dao.get_by_user_provider(7, "github")).provider_user_id == "42"

    async def test_denied(self, client, oauth_service, github_provider):
        auth = await oauth_service.begin_auth("github")

        resp = await client.get(
            "/v1/oauth/github/callback", params={"state": auth.state, "error": "access_denied"}
        )

        assert resp.json()["code"] == errors.OAuthAccessDenied.code

    async def test_replay(self, client, oauth_service, github_provider, provider_server):
        mock_github(provider_server)
        auth = await oauth_service.begin_auth("github")
        params = {"state": auth.state, "code": "abc"}

        await client.get("/v1/oauth/github/callback", params=params)
        resp = await client.get("/v1/oauth/github/callback", params=params)

        assert resp.json()["code"] == errors.OAuthStateUsed.code

    async def test_already_bound_message_is_safe(self, client, oauth_service, github_provider, provider_server, binding_dao):
        await add_binding(binding_dao, 9, "github", "42")
        mock_github(provider_server, external_id=42)
        auth = await oauth_service.begin_auth("github", user_id=7)

        resp = await client.get("/v1/oauth/github/callback", params={"state": auth.state, "code": "abc"})

        body = resp.json()
        assert body["code"] == errors.OAuthAccountAlreadyBound.code
        assert "owner" not in body["message"]


class TestAuthenticatedEndpoints:
    async def test_refresh_requires_login(self, client):
        resp = await client.post("/v1/oauth/github/refresh")
        assert resp.status_code == 401

    async def test_refresh_not_bound(self, client):
        resp = await client.post("/v1/oauth/github/refresh", headers=auth_headers())
        assert resp.json()["code"] == errors.OAuthBindingNotFound.code

    async def test_refresh(self, client, session_provider, token_vault, github_provider):

        await store_tokens(session_provider, token_vault, 7, "github", TokenSet(access_token="at"))

        resp = await client.post("/v1/oauth/github/refresh", headers=auth_headers(), json={"force": False})

        data = resp.json()["data"]
        assert data == {"provider": "github", "refreshed": False, "expires_at": None}

    async def test_unbind_requires_confirmation(self, client, binding_dao):
        await add_binding(binding_dao, 7, "github", "42")

        resp = await client.delete("/v1/oauth/github/binding", headers=auth_headers())
        assert resp.json()["code"] == errors.OAuthUnbindNotConfirmed.code

    async def test_unbind_last_method(self, client, binding_dao):
        await add_binding(binding_dao, 7, "github", "42")

        resp = await client.request(
            "DELETE", "/v1/oauth/github/binding", headers=auth_headers(), json={"confirm": True}
        )
        assert resp.json()["code"] == errors.OAuthLastAuthMethod.code

    async def test_unbind(self, client, binding_dao):
        await add_binding(binding_dao, 7, "github", "42")
        await add_binding(binding_dao, 7, "gitee", "77")

        resp = await client.request(
            "DELETE", "/v1/oauth/github/binding", headers=auth_headers(), json={"confirm": True}
        )

        assert resp.json()["data"]["provider"] == "github"
        assert await binding_dao.get_by_user_provider(7, "github") is None

    async def test_list_bindings(self, client, binding_dao):
        await add_binding(binding_dao, 7, "github", "42", provider_username="octocat")

        resp = await client.get("/v1/oauth/bindings", headers=auth_headers())

        items = resp.json()["data"]["items"]
        assert [(i["provider"], i["provider_username"]) for i in items] == [("github", "octocat")]
        assert "access_token" not in items[0]

    async def test_list_bindings_requires_login(self, client):
        resp = await client.get("/v1/oauth/bindings")
        assert resp.status_code == 401
