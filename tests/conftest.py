"""
Pytest 配置文件 (conftest.py)

提供测试运行所需的共享 fixtures：
1. 真实 logger（仅输出到控制台，同步写入）
2. 注入测试配置，不依赖 configs/ 目录
3. 内存 SQLite（StaticPool，所有会话共享同一连接）
4. httpx MockTransport 模拟第三方平台
5. 组装好的服务对象（OAuthService 及其依赖）
"""

from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import internal.models  # noqa: F401  注册所有表到 Base.metadata
from internal.config import Settings, init_settings, reset_settings
from internal.dao.oauth_provider import OAuthProviderDao
from internal.dao.oauth_state import OAuthStateDao
from internal.dao.user import UserDao
from internal.dao.user_oauth_account import UserOAuthAccountDao
from internal.services.login_session import LoginSessionIssuer
from internal.services.oauth import OAuthService
from internal.services.oauth_provider import OAuthProviderService
from internal.services.oauth_state import OAuthStateStore
from internal.services.token_vault import TokenVault
from internal.services.user import AuthMethodPolicy, UserProvisioner
from pkg.crypto import AESCipher
from pkg.database import Base
from pkg.logger import init_logger
from pkg.toolkit.cache import CacheClient
from pkg.toolkit.http_cli import AsyncHttpClient
from pkg.toolkit.json import orjson_dumps, orjson_loads

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_AES_SECRET = AESCipher.generate_key()

# ==========================================
# 1. Logger
# ==========================================

init_logger(level="DEBUG", write_to_file=False, write_to_console=True, enqueue=False)


def pytest_configure(config: pytest.Config):
    config.addinivalue_line("markers", "integration: 集成测试，需要 Redis 等外部服务")


# ==========================================
# 2. 配置
# ==========================================


def build_test_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "APP_ENV": "test",
        "DEBUG": True,
        "AES_SECRET": TEST_AES_SECRET,
        "BACKEND_CORS_ORIGINS": [],
        "DB_TYPE": "mysql",
        "DB_HOST": "localhost",
        "DB_USERNAME": "test",
        "DB_PASSWORD": "test",
        "DB_DATABASE": "oauth_test",
        "REDIS_HOST": "localhost",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture(autouse=True)
def test_settings():
    settings = init_settings(build_test_settings())
    yield settings
    reset_settings()


# ==========================================
# 3. 时钟
# ==========================================


class FakeClock:
    """可手动拨动的 naive UTC 时钟"""

    def __init__(self, now: datetime | None = None):
        self.now = now or datetime(2025, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ==========================================
# 4. 数据库
# ==========================================


@pytest_asyncio.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        json_serializer=orjson_dumps,
        json_deserializer=orjson_loads,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_provider(db_engine: AsyncEngine) -> Callable:
    """与 internal.infra.database.get_session 签名一致的会话提供者"""
    session_maker = async_sessionmaker(bind=db_engine, class_=AsyncSession, expire_on_commit=False)

    @asynccontextmanager
    async def _provider(autoflush: bool = True):
        async with session_maker() as session:
            try:
                if autoflush:
                    yield session
                else:
                    with session.no_autoflush:
                        yield session
            except Exception:
                if session.is_active:
                    await session.rollback()
                raise

    return _provider


@pytest.fixture
def user_dao(session_provider) -> UserDao:
    return UserDao(session_provider=session_provider)


@pytest.fixture
def state_dao(session_provider) -> OAuthStateDao:
    return OAuthStateDao(session_provider=session_provider)


@pytest.fixture
def binding_dao(session_provider) -> UserOAuthAccountDao:
    return UserOAuthAccountDao(session_provider=session_provider)


@pytest.fixture
def provider_dao(session_provider) -> OAuthProviderDao:
    return OAuthProviderDao(session_provider=session_provider)


# ==========================================
# 5. 第三方平台模拟
# ==========================================


def request_base_url(request: httpx.Request) -> str:
    return f"{request.url.scheme}://{request.url.host}{request.url.path}"


class MockProviderServer:
    """
    按 (METHOD, scheme://host/path) 注册响应，记录所有收到的请求。

    响应可以是 httpx.Response，也可以是接收 httpx.Request 的函数。
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], Any] = {}
        self.requests: list[httpx.Request] = []

    def on(self, method: str, url: str, response: Any) -> None:
        self.routes[(method.upper(), url)] = response

    def on_json(self, method: str, url: str, payload: Any, status_code: int = 200) -> None:
        self.on(method, url, lambda _req: httpx.Response(status_code, json=payload))

    def calls(self, url: str) -> list[httpx.Request]:
        return [r for r in self.requests if request_base_url(r) == url]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.routes.get((request.method, request_base_url(request)))
        if response is None:
            return httpx.Response(404, json={"message": "Not Found"})
        return response(request) if callable(response) else response


@pytest.fixture
def provider_server() -> MockProviderServer:
    return MockProviderServer()


@pytest_asyncio.fixture
async def http_client(provider_server: MockProviderServer) -> AsyncGenerator[AsyncHttpClient, None]:
    client = AsyncHttpClient(timeout=5, transport=httpx.MockTransport(provider_server))
    yield client
    await client.close()


# ==========================================
# 6. 服务
# ==========================================


@pytest.fixture
def codec() -> AESCipher:
    return AESCipher(TEST_AES_SECRET)


@pytest.fixture
def provider_service(provider_dao, binding_dao, codec) -> OAuthProviderService:
    return OAuthProviderService(dao=provider_dao, binding_dao=binding_dao, codec=codec, http_timeout=5)


@pytest.fixture
def state_store(state_dao, clock) -> OAuthStateStore:
    return OAuthStateStore(dao=state_dao, ttl_minutes=15, clock=clock)


@pytest.fixture
def token_vault(binding_dao, codec, clock) -> TokenVault:
    return TokenVault(dao=binding_dao, codec=codec, refresh_margin_seconds=300, clock=clock)


@pytest.fixture
def mock_cache() -> AsyncMock:
    """登录令牌存储的 Redis 替身"""
    cache = AsyncMock(spec=CacheClient)
    cache.set_dict.return_value = True
    cache.get_dict.return_value = None
    cache.delete_key.return_value = 1
    return cache


@pytest.fixture
def login_issuer(mock_cache) -> LoginSessionIssuer:
    return LoginSessionIssuer(mock_cache, expire_minutes=60)


@pytest.fixture
def oauth_service(
    provider_service,
    state_store,
    token_vault,
    binding_dao,
    user_dao,
    session_provider,
    login_issuer,
    http_client,
    clock,
) -> OAuthService:
    return OAuthService(
        provider_service=provider_service,
        state_store=state_store,
        token_vault=token_vault,
        binding_dao=binding_dao,
        provisioner=UserProvisioner(dao=user_dao),
        auth_policy=AuthMethodPolicy(user_dao=user_dao, binding_dao=binding_dao),
        session_provider=session_provider,
        login_issuer=login_issuer,
        http_client=http_client,
        rate_limit_window_minutes=15,
        rate_limit_user=10,
        rate_limit_ip=20,
        clock=clock,
    )


@pytest_asyncio.fixture
async def github_provider(provider_service):
    return await provider_service.create_provider(
        name="github",
        client_id="gh-client",
        client_secret="gh-secret",
        redirect_uri="https://app.example.com/v1/oauth/github/callback",
        sort=1,
    )


@pytest_asyncio.fixture
async def gitee_provider(provider_service):
    return await provider_service.create_provider(
        name="gitee",
        client_id="gitee-client",
        client_secret="gitee-secret",
        redirect_uri="https://app.example.com/v1/oauth/gitee/callback",
        sort=2,
    )
