from datetime import datetime
from enum import IntEnum, StrEnum
from typing import Any

from sqlalchemy import BigInteger, DateTime, Index, SmallInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from pkg.database import JSONType, ModelMixin


class StateStatus(IntEnum):
    VALID = 1
    CONSUMED = 2
    EXPIRED = 3


class OAuthIntent(StrEnum):
    LOGIN = "login"
    BIND = "bind"


class OAuthState(ModelMixin):
    """一次性 CSRF state，消费后保留用于审计"""

    __tablename__ = "oauth_state"
    __table_args__ = (
        Index("ix_oauth_state_user_created", "user_id", "created_at"),
        Index("ix_oauth_state_ip_created", "client_ip", "created_at"),
        Index("ix_oauth_state_status_expires", "status", "expires_at"),
    )

    state: Mapped[str] = mapped_column(String(64), unique=True)
    provider: Mapped[str] = mapped_column(String(32))
    user_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    payload: Mapped[dict[str, Any] | None] = mapped_column(JSONType, default=None)
    client_ip: Mapped[str | None] = mapped_column(String(64), default=None)
    user_agent: Mapped[str | None] = mapped_column(String(512), default=None)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=False))
    status: Mapped[int] = mapped_column(SmallInteger, default=StateStatus.VALID)
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), default=None)
