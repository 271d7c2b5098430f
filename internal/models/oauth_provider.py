from enum import IntEnum
from typing import Any

from sqlalchemy import Boolean, Integer, SmallInteger, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from pkg.database import JSONType, ModelMixin, SoftDeleteMixin


class ProviderStatus(IntEnum):
    ACTIVE = 1
    SUSPENDED = 2


class OAuthProvider(ModelMixin, SoftDeleteMixin):
    """第三方登录平台配置，client_secret 以密文存储"""

    __tablename__ = "oauth_provider"

    name: Mapped[str] = mapped_column(String(32), unique=True)
    display_name: Mapped[str] = mapped_column(String(64))
    client_id: Mapped[str] = mapped_column(String(255))
    client_secret: Mapped[str] = mapped_column(Text)
    redirect_uri: Mapped[str] = mapped_column(String(512))
    scopes: Mapped[list[str] | None] = mapped_column(JSONType, default=None)
    extra_config: Mapped[dict[str, Any] | None] = mapped_column(JSONType, default=None)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    status: Mapped[int] = mapped_column(SmallInteger, default=ProviderStatus.ACTIVE)
    sort: Mapped[int] = mapped_column(Integer, default=0)
    remark: Mapped[str | None] = mapped_column(String(255), default=None)

    @property
    def is_available(self) -> bool:
        return self.enabled and self.status == ProviderStatus.ACTIVE and not self.is_deleted
