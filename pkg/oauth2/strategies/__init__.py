from .dingtalk import DingTalkOAuthProvider
from .feishu import FeishuOAuthProvider
from .gitee import GiteeOAuthProvider
from .github import GitHubOAuthProvider
from .qq import QQOAuthProvider
from .wechat import WeChatOAuthProvider

__all__ = [
    "DingTalkOAuthProvider",
    "FeishuOAuthProvider",
    "GiteeOAuthProvider",
    "GitHubOAuthProvider",
    "QQOAuthProvider",
    "WeChatOAuthProvider",
]
