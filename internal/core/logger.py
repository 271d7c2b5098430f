from internal import BASE_DIR
from internal.config import settings
from pkg.logger import init_logger


def init_app_logger() -> None:
    """按应用配置初始化 pkg.logger，开发环境同时输出到控制台"""
    init_logger(
        level="DEBUG" if settings.DEBUG else settings.LOG_LEVEL,
        base_log_dir=BASE_DIR / "logs",
        log_format=settings.LOG_FORMAT,
        write_to_console=settings.APP_ENV in ("local", "dev") or settings.DEBUG,
    )
