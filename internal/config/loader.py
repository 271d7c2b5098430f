"""配置加载器"""

from pathlib import Path

from dotenv import dotenv_values
from loguru import logger
from pydantic import SecretStr, ValidationError

from internal import BASE_DIR
from internal.config.settings import Settings
from pkg.toolkit.mask import MASK

CONFIG_DIR = BASE_DIR / "configs"


def _setup_startup_logger():
    """配置启动日志（此时应用 logger 尚未初始化）"""
    log_dir = BASE_DIR / "logs"
    log_dir.mkdir(exist_ok=True)
    logger.add(
        log_dir / "startup.log",
        rotation="1 day",
        retention="7 days",
        level="INFO",
        enqueue=True,
        encoding="utf-8",
    )
    return logger


def _validate_secrets_file(config_dir: Path = CONFIG_DIR) -> tuple[Path, dict]:
    """
    验证 .secrets 文件存在并返回路径和内容

    Returns:
        tuple[Path, dict]: (文件路径, 配置字典)

    Raises:
        FileNotFoundError: 文件不存在
        ValueError: APP_ENV 未设置
    """
    secrets_path = config_dir / ".secrets"

    if not secrets_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {secrets_path}")

    secrets_dict = dotenv_values(secrets_path)

    app_env = secrets_dict.get("APP_ENV")
    if not app_env:
        raise ValueError(f"APP_ENV not found in {secrets_path}")

    return secrets_path, secrets_dict


def load_config(config_dir: Path = CONFIG_DIR) -> Settings:
    """
    加载应用配置

    加载顺序：
    1. 验证 .secrets 文件并获取应用环境
    2. 检查对应环境配置文件是否存在
    3. 加载配置文件 (.env.{env} 和 .secrets)，后者覆盖前者
    """
    _logger = _setup_startup_logger()
    _logger.info("Loading configuration...")

    try:
        secrets_path, secrets_dict = _validate_secrets_file(config_dir)
        app_env = secrets_dict["APP_ENV"]
        _logger.info(f"Detected Environment: {app_env}")
    except (FileNotFoundError, ValueError) as e:
        _logger.critical(f"Configuration validation failed: {e}")
        raise

    env_file_path = config_dir / f".env.{app_env}"
    if not env_file_path.exists():
        msg = f"CRITICAL: Config file missing for environment '{app_env}' at {env_file_path}"
        _logger.critical(msg)
        raise FileNotFoundError(msg)

    load_files = [env_file_path, secrets_path]
    _logger.info(f"Loading files: {[f.name for f in load_files]}")

    try:
        _settings = Settings(_env_file=load_files)  # type: ignore
    except (ValidationError, ValueError) as e:
        _logger.critical(f"Config load failed: {e}")
        raise

    _logger.success("Configuration loaded successfully.")

    if _settings.ECHO_CONFIG:
        _logger.info("=" * 50)
        _logger.info("Configuration Details (ECHO_CONFIG=true):")
        for key in _settings.model_dump():
            value = getattr(_settings, key)
            _logger.info(f"  {key}: {MASK if isinstance(value, SecretStr) else value}")
        _logger.info("=" * 50)

    return _settings


# 全局配置实例（私有）
_settings_instance: Settings | None = None


def get_settings() -> Settings:
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = load_config()
    return _settings_instance


def init_settings(settings: Settings | None = None) -> Settings:
    """
    初始化并返回配置实例，在应用启动时调用；测试可直接注入构造好的 Settings
    """
    global _settings_instance
    if settings is not None:
        _settings_instance = settings
    elif _settings_instance is None:
        _settings_instance = load_config()
    return _settings_instance


def reset_settings():
    """
    重置配置实例（主要用于测试）
    """
    global _settings_instance
    _settings_instance = None
