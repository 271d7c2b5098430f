"""该目录主要用于数据库模型"""

from internal.models.oauth_provider import OAuthProvider, ProviderStatus
from internal.models.oauth_state import OAuthIntent, OAuthState, StateStatus
from internal.models.user import User
from internal.models.user_oauth_account import BindingStatus, UserOAuthAccount

__all__ = [
    "BindingStatus",
    "OAuthIntent",
    "OAuthProvider",
    "OAuthState",
    "ProviderStatus",
    "StateStatus",
    "User",
    "UserOAuthAccount",
]
