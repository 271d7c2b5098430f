import pytest

from internal.models.oauth_provider import ProviderStatus
from pkg.oauth2 import GitHubOAuthProvider
from pkg.oauth2.exceptions import (
    ConfigurationError,
    ProviderDisabledError,
    ProviderInUseError,
    ProviderNotFoundError,
)


class TestCreateProvider:
    async def test_secret_encrypted(self, provider_service, provider_dao, codec):
        provider = await provider_service.create_provider(
            name=" GitHub ",
            client_id="gh-client",
            client_secret="gh-secret",
            redirect_uri="https://app.example.com/v1/oauth/github/callback",
            scopes=["read:user"],
        )

        row = await provider_dao.get_by_name("github")
        assert provider.name == "github"
        assert row.display_name == "GitHub"
        assert row.client_secret != "gh-secret"
        assert codec.decrypt(row.client_secret) == "gh-secret"
        assert row.scopes == ["read:user"]

    async def test_unsupported_platform(self, provider_service):
        with pytest.raises(ProviderNotFoundError):
            await provider_service.create_provider(
                name="gitlab", client_id="x", client_secret="y", redirect_uri="https://app.example.com/cb"
            )

    async def test_duplicate_rejected(self, provider_service, github_provider):
        with pytest.raises(ConfigurationError):
            await provider_service.create_provider(
                name="github", client_id="x", client_secret="y", redirect_uri="https://app.example.com/cb"
            )

    async def test_restore_tombstone(self, provider_service, provider_dao, github_provider, codec):
        """同名的逻辑删除记录会被恢复而不是新建"""
        await provider_service.remove_provider(github_provider.id)

        restored = await provider_service.create_provider(
            name="github",
            client_id="gh-client-2",
            client_secret="gh-secret-2",
            redirect_uri="https://app.example.com/v1/oauth/github/callback",
        )

        assert restored.id == github_provider.id
        assert restored.deleted_at is None
        assert restored.client_id == "gh-client-2"
        assert codec.decrypt(restored.client_secret) == "gh-secret-2"


class TestUpdateProvider:
    async def test_update_fields(self, provider_service, github_provider, codec):
        updated = await provider_service.update_provider(
            github_provider.id, display_name="GitHub 登录", client_secret="", sort=9
        )

        assert updated.display_name == "GitHub 登录"
        assert updated.sort == 9
        assert codec.decrypt(updated.client_secret) == "gh-secret"

    async def test_rotate_secret(self, provider_service, github_provider, codec):
        updated = await provider_service.update_provider(github_provider.id, client_secret="rotated")
        assert codec.decrypt(updated.client_secret) == "rotated"

    async def test_rename_blocked_by_bindings(self, provider_service, github_provider, binding_dao):
        binding = binding_dao.create(user_id=7, provider="github", provider_user_id="42", access_token="enc", status=1)
        await binding_dao.add(binding)

        with pytest.raises(ProviderInUseError):
            await provider_service.update_provider(github_provider.id, name="gitee")

    async def test_rename_without_bindings(self, provider_service, github_provider):
        updated = await provider_service.update_provider(github_provider.id, name="gitee")
        assert updated.name == "gitee"

    async def test_unknown_field(self, provider_service, github_provider):
        with pytest.raises(ValueError):
            await provider_service.update_provider(github_provider.id, deleted_at=None)

    async def test_missing_provider(self, provider_service):
        with pytest.raises(ProviderNotFoundError):
            await provider_service.update_provider(123, sort=1)


class TestLookup:
    async def test_get_enabled_provider(self, provider_service, github_provider):
        provider = await provider_service.get_enabled_provider("GITHUB")
        assert provider.id == github_provider.id

    async def test_disabled_provider(self, provider_service, github_provider):
        await provider_service.update_provider(github_provider.id, enabled=False)

        with pytest.raises(ProviderDisabledError):
            await provider_service.get_enabled_provider("github")

    async def test_suspended_provider(self, provider_service, github_provider):
        await provider_service.update_provider(github_provider.id, status=ProviderStatus.SUSPENDED)

        with pytest.raises(ProviderDisabledError):
            await provider_service.get_enabled_provider("github")

    async def test_removed_provider(self, provider_service, github_provider):
        await provider_service.remove_provider(github_provider.id)

        with pytest.raises(ProviderNotFoundError):
            await provider_service.get_enabled_provider("github")

    async def test_list_available_sorted(self, provider_service, github_provider, gitee_provider):
        await provider_service.update_provider(github_provider.id, sort=5)

        names = [p.name for p in await provider_service.list_available()]
        assert names == ["gitee", "github"]


class TestClientConfig:
    async def test_build_client_config_decrypts(self, provider_service, github_provider):
        config = provider_service.build_client_config(github_provider)

        assert config.client_id == "gh-client"
        assert config.client_secret == "gh-secret"
        assert config.redirect_uri == "https://app.example.com/v1/oauth/github/callback"

    async def test_corrupted_secret(self, provider_service, github_provider):
        github_provider.client_secret = "not-a-fernet-token"

        with pytest.raises(ConfigurationError):
            provider_service.build_client_config(github_provider)

    async def test_create_adapter(self, provider_service, github_provider, http_client):
        adapter = await provider_service.create_adapter("github", http_client=http_client)
        assert isinstance(adapter, GitHubOAuthProvider)
        assert adapter.config.client_secret == "gh-secret"
