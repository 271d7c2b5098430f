"""敏感字段脱敏：OAuth 的 token、client_secret、授权码等绝不能原样落日志"""
import re
from collections.abc import Mapping
from typing import Any

SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        "access_token",
        "refresh_token",
        "id_token",
        "client_secret",
        "clientsecret",
        "secret",
        "code",
        "accesstoken",
        "refreshtoken",
        "authorization",
        "x-acs-dingtalk-access-token",
        "password",
    }
)

MASK = "******"

# 匹配 key=value / "key": "value" / key: value 三种写法
_TEXT_PATTERN = re.compile(
    r"(?P<key>\b(?:access_token|refresh_token|id_token|client_secret|secret|code|accessToken|refreshToken|clientSecret)\b"
    r"[\"']?\s*[:=]\s*[\"']?)(?P<value>[^\"'&,\s}]+)",
)


def is_sensitive_key(key: str) -> bool:
    return key.lower() in SENSITIVE_KEYS


def mask_mapping(data: Mapping[str, Any] | None) -> dict[str, Any] | None:
    """返回脱敏后的浅拷贝，原字典不变"""
    if data is None:
        return None
    return {k: (MASK if is_sensitive_key(str(k)) and v else v) for k, v in data.items()}


def mask_text(text: str) -> str:
    """对自由文本中的 key=value 片段做脱敏"""
    if not text:
        return text
    return _TEXT_PATTERN.sub(lambda m: f"{m.group('key')}{MASK}", text)
