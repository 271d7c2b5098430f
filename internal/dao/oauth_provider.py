from sqlalchemy.ext.asyncio import AsyncSession

from internal.infra.database import get_session
from internal.models.oauth_provider import OAuthProvider, ProviderStatus
from pkg.database import BaseDao


class OAuthProviderDao(BaseDao[OAuthProvider]):
    _model_cls: type[OAuthProvider] = OAuthProvider

    async def get_by_name(
        self, name: str, *, include_deleted: bool = False, sess: AsyncSession | None = None
    ) -> OAuthProvider | None:
        qb = self.querier_inc_deleted if include_deleted else self.querier
        return await qb.eq_(OAuthProvider.name, name).first(sess=sess)

    async def list_available(self) -> list[OAuthProvider]:
        return await (
            self.querier.eq_(OAuthProvider.enabled, True)
            .eq_(OAuthProvider.status, ProviderStatus.ACTIVE)
            .asc_(OAuthProvider.sort)
            .asc_(OAuthProvider.id)
            .all()
        )


oauth_provider_dao = OAuthProviderDao(session_provider=get_session)
