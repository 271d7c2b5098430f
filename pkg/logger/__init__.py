"""
pkg.logger - 统一的日志管理包

使用示例:
    from pkg.logger import init_logger, logger

    # 在应用启动时初始化
    init_logger(level="DEBUG", base_log_dir=Path("/var/log/oauth"))

    # 之后在任何地方使用
    logger.info("Application started")
"""
from datetime import UTC, time, timedelta
from pathlib import Path
from typing import TYPE_CHECKING

from pkg.logger.handler import LogFormat, LoggerHandler, RetentionType, RotationType
from pkg.toolkit.types import LazyProxy

if TYPE_CHECKING:
    from loguru import Logger

_logger_manager: "LoggerHandler | None" = None
_logger: "Logger | None" = None


def _get_logger() -> "Logger":
    if _logger is None:
        raise RuntimeError("Logger not initialized. Call init_logger() first.")
    return _logger


def init_logger(
    *,
    level: str = "INFO",
    base_log_dir: Path | None = None,
    system_subdir: str | None = None,
    rotation: RotationType = time(0, 0, 0, tzinfo=UTC),
    retention: RetentionType = timedelta(days=30),
    compression: str | None = None,
    use_utc: bool = True,
    enqueue: bool = True,
    log_format: LogFormat | str = LogFormat.TEXT,
    mask_secrets: bool = True,
    write_to_file: bool = True,
    write_to_console: bool = True,
) -> "Logger":
    """
    初始化应用层 Logger。

    :param level: 日志等级
    :param base_log_dir: 日志存放的根目录
    :param system_subdir: 系统日志子目录名
    :param rotation: 轮转策略 (默认: 每天 00:00, UTC时间)
    :param retention: 保留策略 (默认: 30天)
    :param compression: 压缩格式
    :param use_utc: 是否强制使用 UTC 时间
    :param enqueue: 是否使用多进程安全的队列写入
    :param log_format: 日志格式
    :param mask_secrets: 是否对 token / secret 脱敏
    :param write_to_file: 是否写入文件
    :param write_to_console: 是否输出到控制台
    """
    global _logger_manager, _logger

    _logger_manager = LoggerHandler(
        level=level,
        base_log_dir=base_log_dir,
        system_subdir=system_subdir,
        rotation=rotation,
        retention=retention,
        compression=compression,
        use_utc=use_utc,
        enqueue=enqueue,
        log_format=LogFormat(log_format),
        mask_secrets=mask_secrets,
    )
    _logger = _logger_manager.setup(write_to_file=write_to_file, write_to_console=write_to_console)
    return _logger


logger: "Logger" = LazyProxy["Logger"](_get_logger)  # type: ignore[assignment]

__all__ = [
    "LoggerHandler",
    "LogFormat",
    "RotationType",
    "RetentionType",
    "init_logger",
    "logger",
]
