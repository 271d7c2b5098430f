from typing import Annotated

from pydantic import BaseModel, Field, HttpUrl

from pkg.toolkit.types import SmartDatetime, SmartInt


class AuthorizeReqSchema(BaseModel):
    redirect_uri: Annotated[HttpUrl | None, Field(default=None, description="授权完成后跳回的前端地址")]


class AuthorizeRespSchema(BaseModel):
    auth_url: str
    state: str
    provider: str
    intent: str


class ProviderItemSchema(BaseModel):
    name: str
    display_name: str
    sort: int
    is_bound: bool = False


class ProviderListRespSchema(BaseModel):
    items: list[ProviderItemSchema]


class CallbackRespSchema(BaseModel):
    action: str
    provider: str
    user_id: SmartInt
    binding_id: SmartInt
    created: bool = False
    token: str | None = None
    token_expires_at: SmartDatetime | None = None


class RefreshReqSchema(BaseModel):
    force: bool = False


class RefreshRespSchema(BaseModel):
    """刷新结果，不返回令牌明文"""

    provider: str
    refreshed: bool
    expires_at: SmartDatetime | None = None


class UnbindReqSchema(BaseModel):
    confirm: bool = False


class UnbindRespSchema(BaseModel):
    provider: str
    unbound_at: SmartDatetime


class BindingItemSchema(BaseModel):
    id: SmartInt
    provider: str
    provider_user_id: str
    provider_username: str | None = None
    provider_email: str | None = None
    provider_avatar: str | None = None
    status: int
    token_expires_at: SmartDatetime | None = None
    last_login_at: SmartDatetime | None = None
    created_at: SmartDatetime


class BindingListRespSchema(BaseModel):
    items: list[BindingItemSchema]
