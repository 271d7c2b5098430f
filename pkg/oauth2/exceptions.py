"""
OAuth 错误体系

所有错误都继承自 OAuthError，调用方（HTTP 层）按族映射为用户可读的错误码：

    OAuthError
    ├── ConfigurationError          provider 不存在 / 已禁用 / 被绑定引用无法改名
    ├── StateError                  state 不存在 / 已过期 / 已使用 / provider 不匹配 / 流程状态异常
    ├── ProviderCommunicationError  换取 token / 拉取用户信息失败 / 用户拒绝授权
    ├── ConflictError               账号已被其他用户绑定 / 最后一种登录方式 / 绑定已禁用 / 未确认解绑
    ├── BindingNotFoundError
    ├── UnsupportedOperation        provider 不支持该能力（如刷新 token）
    ├── TokenRefreshUnavailable
    ├── RateLimitExceededError
    └── InternalPersistenceError

message 是可以返回给客户端的安全文案；detail 只写日志，可能包含第三方原始响应。
"""


class OAuthError(Exception):
    default_message: str = "第三方授权失败"

    def __init__(self, message: str | None = None, *, provider: str | None = None, detail: str | None = None):
        self.message = message or self.default_message
        self.provider = provider
        self.detail = detail
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.provider:
            return f"[{self.provider}] {self.message}"
        return self.message


# --- 配置类 ---
class ConfigurationError(OAuthError):
    default_message = "第三方登录配置错误"


class ProviderNotFoundError(ConfigurationError):
    default_message = "不支持的第三方登录方式"


class ProviderDisabledError(ConfigurationError):
    default_message = "该第三方登录方式已禁用"


class ProviderInUseError(ConfigurationError):
    default_message = "该第三方登录方式已被账号绑定，无法修改标识"


# --- state 类 ---
class StateError(OAuthError):
    default_message = "授权状态无效，请重新发起授权"


class StateNotFoundError(StateError):
    default_message = "授权状态不存在，请重新发起授权"


class StateExpiredError(StateError):
    default_message = "授权已过期，请重新发起授权"


class StateAlreadyUsedError(StateError):
    default_message = "授权状态已被使用，请重新发起授权"


class StateProviderMismatchError(StateError):
    default_message = "授权状态与登录方式不匹配"


class InvalidFlowStateError(StateError):
    default_message = "授权流程状态异常"


# --- 第三方通信类 ---
class ProviderCommunicationError(OAuthError):
    default_message = "与第三方平台通信失败，请稍后重试"


class TokenExchangeError(ProviderCommunicationError):
    default_message = "获取第三方访问令牌失败"


class ProfileFetchError(ProviderCommunicationError):
    default_message = "获取第三方用户信息失败"


class ProviderDeniedError(ProviderCommunicationError):
    default_message = "用户取消了授权"


# --- 冲突类 ---
class ConflictError(OAuthError):
    default_message = "操作冲突"


class AccountAlreadyBoundError(ConflictError):
    default_message = "该第三方账号已被其他用户绑定"


class LastAuthMethodError(ConflictError):
    default_message = "这是您唯一的登录方式，无法解绑"


class BindingDisabledError(ConflictError):
    default_message = "该第三方账号绑定已被禁用"


class UnbindNotConfirmedError(ConflictError):
    default_message = "请确认解绑操作"


# --- 其他 ---
class BindingNotFoundError(OAuthError):
    default_message = "未绑定该第三方账号"


class UnsupportedOperation(OAuthError):
    default_message = "该第三方平台不支持此操作"


class TokenRefreshUnavailable(OAuthError):
    default_message = "无法刷新第三方访问令牌，请重新授权"


class RateLimitExceededError(OAuthError):
    default_message = "授权请求过于频繁，请稍后再试"


class InternalPersistenceError(OAuthError):
    default_message = "系统繁忙，请稍后重试"
