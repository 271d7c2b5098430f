from internal.services.login_session import LoginSessionIssuer, login_token_cache_key


class TestLoginSessionIssuer:
    async def test_issue_stores_user_with_ttl(self, login_issuer, mock_cache):
        result = await login_issuer.issue(7, provider="github", client_ip="10.0.0.1")

        assert result.token.startswith("tk_")
        assert result.user_id == 7
        key, value = mock_cache.set_dict.await_args.args
        assert key == login_token_cache_key(result.token)
        assert value["id"] == 7
        assert value["provider"] == "github"
        assert mock_cache.set_dict.await_args.kwargs["ex"] == 3600

    async def test_repr_hides_token(self, login_issuer):
        result = await login_issuer.issue(7)
        assert result.token not in repr(result)

    async def test_verify(self, login_issuer, mock_cache):
        mock_cache.get_dict.return_value = {"id": 7, "provider": "github"}

        assert await login_issuer.verify("tk_abc") == 7
        mock_cache.get_dict.assert_awaited_once_with("login:token:tk_abc")

    async def test_verify_unknown_token(self, login_issuer, mock_cache):
        mock_cache.get_dict.return_value = None
        assert await login_issuer.verify("tk_unknown") is None

    async def test_verify_empty_token_skips_cache(self, login_issuer, mock_cache):
        assert await login_issuer.verify("") is None
        mock_cache.get_dict.assert_not_awaited()

    async def test_verify_rejects_malformed_payload(self, login_issuer, mock_cache):
        mock_cache.get_dict.return_value = {"id": "7"}
        assert await login_issuer.verify("tk_abc") is None

    async def test_revoke(self, mock_cache):
        issuer = LoginSessionIssuer(mock_cache, expire_minutes=5)

        assert await issuer.revoke("tk_abc") is True
        mock_cache.delete_key.assert_awaited_once_with("login:token:tk_abc")
