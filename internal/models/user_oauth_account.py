from datetime import datetime
from enum import IntEnum
from typing import Any

from sqlalchemy import BigInteger, DateTime, SmallInteger, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pkg.database import JSONType, ModelMixin


class BindingStatus(IntEnum):
    ACTIVE = 1
    DISABLED = 2


class UserOAuthAccount(ModelMixin):
    """
    本地用户与第三方账号的绑定关系。

    - (provider, provider_user_id) 唯一：一个第三方账号只能绑定一个本地用户
    - (user_id, provider) 唯一：一个用户在同一平台只能绑定一个账号
    - access_token / refresh_token 为密文；token_expires_at 为空表示永不过期
    - 解绑时物理删除
    """

    __tablename__ = "user_oauth_account"
    __table_args__ = (
        UniqueConstraint("provider", "provider_user_id", name="uq_oauth_account_provider_external"),
        UniqueConstraint("user_id", "provider", name="uq_oauth_account_user_provider"),
    )

    user_id: Mapped[int] = mapped_column(BigInteger, index=True)
    provider: Mapped[str] = mapped_column(String(32))
    provider_user_id: Mapped[str] = mapped_column(String(128))
    provider_username: Mapped[str | None] = mapped_column(String(128), default=None)
    provider_email: Mapped[str | None] = mapped_column(String(255), default=None)
    provider_avatar: Mapped[str | None] = mapped_column(String(512), default=None)
    provider_data: Mapped[dict[str, Any] | None] = mapped_column(JSONType, default=None)
    access_token: Mapped[str] = mapped_column(Text)
    refresh_token: Mapped[str | None] = mapped_column(Text, default=None)
    token_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), default=None)
    status: Mapped[int] = mapped_column(SmallInteger, default=BindingStatus.ACTIVE)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), default=None)
    last_login_ip: Mapped[str | None] = mapped_column(String(64), default=None)

    @property
    def is_active(self) -> bool:
        return self.status == BindingStatus.ACTIVE

    def expires_within(self, seconds: int, now: datetime) -> bool:
        if self.token_expires_at is None:
            return False
        return (self.token_expires_at - now).total_seconds() <= seconds
