import sys
from datetime import UTC, time, timedelta
from enum import StrEnum
from pathlib import Path
from typing import Any

import loguru

from pkg.toolkit import context
from pkg.toolkit.json import orjson_dumps
from pkg.toolkit.mask import mask_text
from pkg.toolkit.time import format_iso_datetime

# 默认日志目录
_DEFAULT_BASE_LOG_DIR = Path("/tmp/oauth_service_logs")

# 类型别名
RotationType = str | int | time | timedelta
RetentionType = str | int | timedelta


class LogFormat(StrEnum):
    """日志格式枚举"""

    JSON = "json"
    TEXT = "text"


class LoggerHandler:
    """
    日志管理器
    配置在实例化 (__init__) 时传入，并在 setup() 时生效。
    """

    SYSTEM_LOG_NAMESPACE: str = "system"

    def __init__(
        self,
        *,
        level: str = "INFO",
        base_log_dir: Path | None = None,
        system_subdir: str | None = None,
        rotation: RotationType = time(0, 0, 0, tzinfo=UTC),
        retention: RetentionType = timedelta(days=30),
        compression: str | None = None,
        use_utc: bool = True,
        enqueue: bool = True,
        log_format: LogFormat = LogFormat.TEXT,
        mask_secrets: bool = True,
    ):
        """
        :param level: 日志等级 (e.g., "INFO", "DEBUG")
        :param base_log_dir: 日志存放的根目录
        :param system_subdir: 系统日志子目录名，传 None 则直接存在 base_log_dir 下
        :param rotation: 轮转策略 (默认: 每天 00:00, UTC时间)
        :param retention: 保留策略 (默认: 30天)
        :param compression: 压缩格式 (e.g., "zip")
        :param use_utc: 是否强制使用 UTC 时间
        :param enqueue: 是否使用多进程安全的队列写入
        :param log_format: 日志格式 (LogFormat.JSON 或 LogFormat.TEXT)
        :param mask_secrets: 是否对消息中的 token / secret / code 做脱敏
        """

        self._logger = loguru.logger
        self._is_initialized = False

        self.level = level
        self.base_log_dir = base_log_dir or _DEFAULT_BASE_LOG_DIR
        self.system_log_dir = (self.base_log_dir / system_subdir) if system_subdir else self.base_log_dir
        self.retention = retention
        self.compression = compression
        self.use_utc = use_utc
        self.enqueue = enqueue
        self.log_format = LogFormat(log_format)
        self.mask_secrets = mask_secrets

        is_json = self.log_format == LogFormat.JSON
        self.console_format = self._json_formatter if is_json else self._console_formatter
        self.file_format = self._json_formatter if is_json else self._file_formatter
        self.colorize = not is_json

        # 强制 UTC 时，为无时区的轮转时刻补上 UTC，确保轮转时刻与日志时间一致
        if self.use_utc and isinstance(rotation, time) and rotation.tzinfo is None:
            self.rotation = rotation.replace(tzinfo=UTC)
        else:
            self.rotation = rotation

    def setup(self, *, write_to_file: bool = True, write_to_console: bool = True) -> "loguru.Logger":
        """
        应用配置并初始化系统日志。
        """
        self._logger.remove()

        self._logger.configure(
            extra={
                "trace_id": None,
                "log_namespace": self.SYSTEM_LOG_NAMESPACE,
                "json_content": None,
            },
            patcher=self._patch_record,
        )

        if write_to_console:
            self._logger.add(
                sink=sys.stderr,
                level=self.level,
                enqueue=self.enqueue,
                colorize=self.colorize,
                diagnose=False,
                format=self.console_format,
                filter=self._filter_system,
            )

        if write_to_file:
            self._ensure_dir(self.system_log_dir)
            self._logger.add(
                sink=self.system_log_dir / "{time:YYYY-MM-DD}.log",
                level=self.level,
                rotation=self.rotation,
                retention=self.retention,
                compression=self.compression,
                enqueue=self.enqueue,
                diagnose=False,
                format=self.file_format,
                filter=self._filter_system,
            )

        mode_str = "UTC" if self.use_utc else "Local Time"
        self._logger.info(
            f"Logger initialized. Mode: {mode_str} | Format: {self.log_format} | Rotation: {self.rotation} | Level: {self.level}"
        )
        self._is_initialized = True
        return self._logger

    # --- 格式化器 ---

    @classmethod
    def _console_formatter(cls, record: Any) -> str:
        trace_id = cls._get_trace_id(record)

        fmt = (
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSSZ}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
            f"<magenta>{trace_id}</magenta> | "
            "<level>{message}</level>"
        )

        if record["extra"].get("json_content") is not None:
            fmt += "\n<cyan>{extra[json_content]}</cyan>"
        return fmt + "\n{exception}"

    @classmethod
    def _file_formatter(cls, record: Any) -> str:
        trace_id = cls._get_trace_id(record)

        fmt = "{time:YYYY-MM-DD HH:mm:ss.SSSZ} | {level: <8} | {name}:{function}:{line} | " f"{trace_id} | " "{message}"

        json_content = record["extra"].get("json_content")
        if json_content is not None:
            record["extra"]["_text_json"] = orjson_dumps(json_content, default=str)
            fmt += "\n{extra[_text_json]}"

        return fmt + "\n{exception}"

    @classmethod
    def _json_formatter(cls, record: Any) -> str:
        """JSON Lines 格式化器"""
        extra_data = record["extra"].copy()
        json_content = extra_data.pop("json_content", None)
        extra_data.pop("_json_out", None)
        extra_data.pop("trace_id", None)

        log_record = {
            "time": format_iso_datetime(record["time"]),
            "level": record["level"].name,
            "trace_id": cls._get_trace_id(record),
            "location": f"{record['name']}.{record['function']}:{record['line']}",
            "message": record["message"],
            **extra_data,
        }
        if json_content is not None:
            log_record["json_content"] = json_content

        record["extra"]["_json_out"] = orjson_dumps(log_record, default=str)
        return "{extra[_json_out]}\n"

    # --- 辅助方法 ---

    def _patch_record(self, record: Any) -> None:
        if self.use_utc:
            record["time"] = record["time"].astimezone(UTC)
        if self.mask_secrets:
            record["message"] = mask_text(record["message"])

    @staticmethod
    def _filter_system(record: Any) -> bool:
        return record["extra"].get("log_namespace") == LoggerHandler.SYSTEM_LOG_NAMESPACE

    @staticmethod
    def _ensure_dir(path: Path):
        if not path.parent.exists():
            raise FileNotFoundError(f"Parent directory does not exist: {path.parent}")
        path.mkdir(exist_ok=True)

    @staticmethod
    def _get_trace_id(record: Any) -> str:
        """trace_id 优先级：extra[trace_id] > context.get_trace_id() > "-" """
        trace_id = record["extra"].get("trace_id")
        if not trace_id:
            trace_id = context.get_trace_id()
        return trace_id or "-"
