from internal.config.loader import get_settings, init_settings, reset_settings
from internal.config.settings import Settings
from pkg.toolkit.types import LazyProxy

# 首次访问属性时才加载配置，测试环境可以不依赖 configs/ 目录
settings: Settings = LazyProxy[Settings](get_settings)  # type: ignore[assignment]

__all__ = ["Settings", "settings", "get_settings", "init_settings", "reset_settings"]
