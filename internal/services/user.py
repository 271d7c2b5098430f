import hashlib
import re
import secrets

from sqlalchemy.ext.asyncio import AsyncSession

from internal.dao.user import UserDao, user_dao
from internal.dao.user_oauth_account import UserOAuthAccountDao, user_oauth_account_dao
from internal.models.user import User
from pkg.logger import logger
from pkg.oauth2 import NormalizedProfile

# 与 User.username 列宽一致
_USERNAME_MAX_LEN = 64
_USERNAME_ILLEGAL = re.compile(r"[^0-9A-Za-z_.\-]")


class UserProvisioner:
    """根据第三方用户信息创建本地用户，只在调用方事务内写入"""

    def __init__(self, *, dao: UserDao):
        self._dao = dao

    @staticmethod
    def base_username(provider: str, external_id: str) -> str:
        """
        生成形如 github_12345 的用户名。

        超过列宽时对 external_id 做哈希截断，保证同一第三方账号生成的用户名稳定。
        """
        candidate = _USERNAME_ILLEGAL.sub("_", f"{provider}_{external_id}")
        if len(candidate) <= _USERNAME_MAX_LEN:
            return candidate
        digest = hashlib.sha256(external_id.encode("utf-8")).hexdigest()
        return f"{provider}_{digest}"[:_USERNAME_MAX_LEN]

    async def _unique_username(self, base: str, sess: AsyncSession) -> str:
        if not await self._dao.is_username_exist(base, sess=sess):
            return base

        while True:
            suffix = secrets.token_hex(3)
            candidate = f"{base[: _USERNAME_MAX_LEN - len(suffix) - 1]}_{suffix}"
            if not await self._dao.is_username_exist(candidate, sess=sess):
                return candidate

    async def create_user_from_profile(
        self, sess: AsyncSession, *, provider: str, profile: NormalizedProfile
    ) -> User:
        username = await self._unique_username(self.base_username(provider, profile.external_id), sess)
        user = self._dao.create(
            username=username,
            nickname=profile.username or username,
            email=profile.email,
            avatar=profile.avatar,
        )
        await self._dao.add(user, sess=sess)
        logger.info(f"User provisioned from oauth profile, user_id={user.id}, provider={provider}")
        return user


class AuthMethodPolicy:
    """判断用户在解绑某个平台后是否还有其他登录方式"""

    def __init__(self, *, user_dao: UserDao, binding_dao: UserOAuthAccountDao):
        self._user_dao = user_dao
        self._binding_dao = binding_dao

    async def has_other_login_method(
        self, user_id: int, *, excluding_provider: str, sess: AsyncSession | None = None
    ) -> bool:
        user = await self._user_dao.query_by_primary_id(user_id, sess=sess)
        if user is not None and user.password_hash:
            return True

        bindings = await self._binding_dao.count_by_user(user_id, sess=sess)
        current = await self._binding_dao.get_by_user_provider(user_id, excluding_provider, sess=sess)
        return bindings - (1 if current is not None else 0) > 0


def new_user_provisioner() -> UserProvisioner:
    return UserProvisioner(dao=user_dao)


def new_auth_method_policy() -> AuthMethodPolicy:
    return AuthMethodPolicy(user_dao=user_dao, binding_dao=user_oauth_account_dao)
