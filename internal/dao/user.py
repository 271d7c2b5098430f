from sqlalchemy.ext.asyncio import AsyncSession

from internal.infra.database import get_session
from internal.models.user import User
from pkg.database import BaseDao


class UserDao(BaseDao[User]):
    _model_cls: type[User] = User

    async def get_by_username(self, username: str, *, sess: AsyncSession | None = None) -> User | None:
        return await self.querier.eq_(User.username, username).first(sess=sess)

    async def is_username_exist(self, username: str, *, sess: AsyncSession | None = None) -> bool:
        # 已逻辑删除的用户名同样不可复用
        count = await self.counter_inc_deleted.eq_(User.username, username).count(sess=sess)
        return count > 0


user_dao = UserDao(session_provider=get_session)
