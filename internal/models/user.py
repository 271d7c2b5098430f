from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from pkg.database import ModelMixin, SoftDeleteMixin


class User(ModelMixin, SoftDeleteMixin):
    __tablename__ = "user"

    username: Mapped[str] = mapped_column(String(64), unique=True)
    nickname: Mapped[str | None] = mapped_column(String(128), default=None)
    email: Mapped[str | None] = mapped_column(String(255), default=None)
    avatar: Mapped[str | None] = mapped_column(String(512), default=None)
    # 为空表示仅能通过第三方登录
    password_hash: Mapped[str | None] = mapped_column(String(255), default=None)
