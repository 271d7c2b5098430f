from pkg.oauth2 import exceptions as oauth_exc
from pkg.toolkit.response import AppError, BaseCodes


class GlobalCodes(BaseCodes):
    """
    全局状态码定义
    """

    # 客户端错误 (40000 - 40999)
    BadRequest = AppError(40000, {"zh": "请求参数错误", "en": "Bad Request"})
    Unauthorized = AppError(40001, {"zh": "未授权，请登录", "en": "Unauthorized"}, http_status=401)
    Forbidden = AppError(40003, {"zh": "权限不足，禁止访问", "en": "Forbidden"})
    NotFound = AppError(40004, {"zh": "资源不存在", "en": "Not Found"})

    # 第三方登录：配置 (41000 - 41009)
    OAuthConfigError = AppError(41000, {"zh": "第三方登录配置错误", "en": "OAuth Provider Misconfigured"})
    OAuthProviderNotFound = AppError(41001, {"zh": "不支持的第三方登录方式", "en": "OAuth Provider Not Found"})
    OAuthProviderDisabled = AppError(41002, {"zh": "该第三方登录方式已禁用", "en": "OAuth Provider Disabled"})
    OAuthProviderInUse = AppError(
        41003, {"zh": "该第三方登录方式已被账号绑定，无法修改标识", "en": "OAuth Provider In Use"}
    )

    # 第三方登录：state (41010 - 41019)
    OAuthStateInvalid = AppError(41010, {"zh": "授权状态无效，请重新发起授权", "en": "Invalid OAuth State"})
    OAuthStateNotFound = AppError(41011, {"zh": "授权状态不存在，请重新发起授权", "en": "OAuth State Not Found"})
    OAuthStateExpired = AppError(41012, {"zh": "授权已过期，请重新发起授权", "en": "OAuth State Expired"})
    OAuthStateUsed = AppError(41013, {"zh": "授权状态已被使用，请重新发起授权", "en": "OAuth State Already Used"})
    OAuthStateMismatch = AppError(41014, {"zh": "授权状态与登录方式不匹配", "en": "OAuth State Provider Mismatch"})

    # 第三方登录：与第三方平台通信 (41020 - 41029)
    OAuthProviderUnavailable = AppError(
        41020, {"zh": "与第三方平台通信失败，请稍后重试", "en": "OAuth Provider Unavailable"}
    )
    OAuthTokenExchangeFailed = AppError(41021, {"zh": "获取第三方访问令牌失败", "en": "OAuth Token Exchange Failed"})
    OAuthProfileFetchFailed = AppError(41022, {"zh": "获取第三方用户信息失败", "en": "OAuth Profile Fetch Failed"})
    OAuthAccessDenied = AppError(41023, {"zh": "用户取消了授权", "en": "OAuth Access Denied"})

    # 第三方登录：冲突 (41030 - 41039)
    OAuthConflict = AppError(41030, {"zh": "操作冲突", "en": "OAuth Conflict"})
    OAuthAccountAlreadyBound = AppError(
        41031, {"zh": "该第三方账号已被其他用户绑定", "en": "OAuth Account Already Bound"}
    )
    OAuthLastAuthMethod = AppError(41032, {"zh": "这是您唯一的登录方式，无法解绑", "en": "Last Login Method"})
    OAuthBindingDisabled = AppError(41033, {"zh": "该第三方账号绑定已被禁用", "en": "OAuth Binding Disabled"})
    OAuthUnbindNotConfirmed = AppError(41034, {"zh": "请确认解绑操作", "en": "Unbind Not Confirmed"})

    # 第三方登录：其他 (41040 - 41049)
    OAuthBindingNotFound = AppError(41040, {"zh": "未绑定该第三方账号", "en": "OAuth Binding Not Found"})
    OAuthUnsupportedOperation = AppError(
        41041, {"zh": "该第三方平台不支持此操作", "en": "Unsupported OAuth Operation"}
    )
    OAuthTokenRefreshUnavailable = AppError(
        41042, {"zh": "无法刷新第三方访问令牌，请重新授权", "en": "OAuth Token Refresh Unavailable"}
    )
    OAuthRateLimited = AppError(
        41043, {"zh": "授权请求过于频繁，请稍后再试", "en": "Too Many OAuth Requests"}, http_status=429
    )

    # 服务端错误 (50000 - 59999)
    InternalServerError = AppError(50000, {"zh": "服务器内部错误", "en": "Internal Server Error"})
    PersistenceError = AppError(50001, {"zh": "系统繁忙，请稍后重试", "en": "Persistence Error"})


errors = GlobalCodes


class AppException(Exception):
    def __init__(self, error: AppError, message: str = ""):
        """
        业务异常，由 ASGIRecordMiddleware 统一转换为错误响应。

        :param error: GlobalCodes 中定义的错误对象
        :param message: 附加说明，会拼接在错误文案之后
        """
        self.error = error
        self.message = message
        super().__init__(message or error.get_msg("en"))

    def __str__(self):
        return f"AppException: code={self.error.code}, message={self.message}"


# 按继承链由具体到抽象匹配
_OAUTH_ERROR_MAP: dict[type[oauth_exc.OAuthError], AppError] = {
    oauth_exc.ProviderNotFoundError: errors.OAuthProviderNotFound,
    oauth_exc.ProviderDisabledError: errors.OAuthProviderDisabled,
    oauth_exc.ProviderInUseError: errors.OAuthProviderInUse,
    oauth_exc.ConfigurationError: errors.OAuthConfigError,
    oauth_exc.StateNotFoundError: errors.OAuthStateNotFound,
    oauth_exc.StateExpiredError: errors.OAuthStateExpired,
    oauth_exc.StateAlreadyUsedError: errors.OAuthStateUsed,
    oauth_exc.StateProviderMismatchError: errors.OAuthStateMismatch,
    oauth_exc.StateError: errors.OAuthStateInvalid,
    oauth_exc.TokenExchangeError: errors.OAuthTokenExchangeFailed,
    oauth_exc.ProfileFetchError: errors.OAuthProfileFetchFailed,
    oauth_exc.ProviderDeniedError: errors.OAuthAccessDenied,
    oauth_exc.ProviderCommunicationError: errors.OAuthProviderUnavailable,
    oauth_exc.AccountAlreadyBoundError: errors.OAuthAccountAlreadyBound,
    oauth_exc.LastAuthMethodError: errors.OAuthLastAuthMethod,
    oauth_exc.BindingDisabledError: errors.OAuthBindingDisabled,
    oauth_exc.UnbindNotConfirmedError: errors.OAuthUnbindNotConfirmed,
    oauth_exc.ConflictError: errors.OAuthConflict,
    oauth_exc.BindingNotFoundError: errors.OAuthBindingNotFound,
    oauth_exc.UnsupportedOperation: errors.OAuthUnsupportedOperation,
    oauth_exc.TokenRefreshUnavailable: errors.OAuthTokenRefreshUnavailable,
    oauth_exc.RateLimitExceededError: errors.OAuthRateLimited,
    oauth_exc.InternalPersistenceError: errors.PersistenceError,
}


def oauth_error_to_app_error(exc: oauth_exc.OAuthError) -> AppError:
    for cls in type(exc).__mro__:
        if cls in _OAUTH_ERROR_MAP:
            return _OAUTH_ERROR_MAP[cls]
    return errors.BadRequest


def oauth_error_to_app_exception(exc: oauth_exc.OAuthError) -> AppException:
    """message 与错误码文案相同时不再重复拼接；detail 只写日志，不返回给客户端"""
    error = oauth_error_to_app_error(exc)
    message = "" if exc.message == error.get_msg("zh") else exc.message
    return AppException(error, message=message)
