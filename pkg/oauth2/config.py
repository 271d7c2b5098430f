"""第三方 OAuth 客户端配置 - 类型安全的配置容器"""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class OAuthClientConfig:
    """OAuth2 应用配置

    client_secret 在这里是明文，只存在于单次请求的适配器内，
    不入库、不出现在日志与 repr 中。

    Attributes:
        client_id: 应用 ID（微信为 AppID）
        client_secret: 应用密钥（微信为 AppSecret）
        redirect_uri: 授权回调地址
        scopes: 授权范围，为空时使用各平台默认值
        extra_config: 平台特有参数，如 GitHub allow_signup、钉钉 corp_id
    """

    client_id: str
    client_secret: str = field(repr=False)
    redirect_uri: str
    scopes: tuple[str, ...] = ()
    extra_config: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        missing = [name for name in ("client_id", "client_secret", "redirect_uri") if not getattr(self, name)]
        if missing:
            raise ValueError(f"OAuth client config requires {', '.join(missing)}")

        object.__setattr__(self, "scopes", tuple(s for s in (self.scopes or ()) if s))
        object.__setattr__(self, "extra_config", dict(self.extra_config or {}))
