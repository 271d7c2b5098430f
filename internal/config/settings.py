"""应用配置模型定义"""

from typing import Literal

from loguru import logger
from pydantic import MySQLDsn, PostgresDsn, RedisDsn, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from pkg.crypto import aes_decrypt
from pkg.logger import LogFormat

# =========================================================
# 配置定义
# =========================================================

# 支持的数据库类型
DBType = Literal["mysql", "postgresql"]

# 数据库驱动映射
DB_DRIVER_MAP: dict[str, str] = {
    "mysql": "mysql+aiomysql",
    "postgresql": "postgresql+asyncpg",
}


class Settings(BaseSettings):
    """
    应用全局配置。
    """

    # --- 核心环境配置 ---
    APP_ENV: Literal["local", "dev", "test", "prod"]
    DEBUG: bool = False

    # --- 日志配置 ---
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: LogFormat = LogFormat.TEXT  # 日志格式: TEXT 或 JSON

    # --- 密钥配置 ---
    # 同时用于 ENC(...) 配置解密与第三方密钥 / 令牌的入库加密
    AES_SECRET: SecretStr
    ECHO_CONFIG: bool = False  # 是否打印配置信息 (调试用)

    # --- CORS ---
    BACKEND_CORS_ORIGINS: list[str] = ["*"]

    # --- Database ---
    DB_TYPE: DBType  # 数据库类型: mysql, postgresql (必填)
    DB_HOST: str
    DB_PORT: int = 3306
    DB_USERNAME: str
    DB_PASSWORD: SecretStr
    DB_DATABASE: str
    DB_ECHO: bool = False  # 是否输出 SQL 日志
    SLOW_SQL_THRESHOLD: float = 0.5

    # --- Redis ---
    REDIS_HOST: str
    REDIS_PORT: int = 6379
    REDIS_PASSWORD: SecretStr = SecretStr("")
    REDIS_DB: int = 0
    REDIS_MAX_CONNECTIONS: int = 20

    # --- 登录令牌 ---
    LOGIN_TOKEN_EXPIRE_MINUTES: int = 60

    # --- OAuth ---
    OAUTH_STATE_TTL_MINUTES: int = 15
    OAUTH_TOKEN_REFRESH_MARGIN_SECONDS: int = 300
    OAUTH_HTTP_TIMEOUT: float = 10
    OAUTH_RATE_LIMIT_WINDOW_MINUTES: int = 15
    OAUTH_RATE_LIMIT_USER: int = 10
    OAUTH_RATE_LIMIT_IP: int = 20
    OAUTH_STATE_RETENTION_DAYS: int = 30
    OAUTH_REFRESH_BATCH_SIZE: int = 50
    # 回调完成后默认跳转的前端页面，state 中未携带 redirect_uri 时使用
    OAUTH_FRONTEND_REDIRECT_URL: str = ""

    model_config = SettingsConfigDict(
        case_sensitive=True,
        extra="ignore",
        env_file_encoding="utf-8",
    )

    @field_validator("DB_TYPE", mode="before")
    @classmethod
    def validate_db_type(cls, v: str) -> str:
        """校验数据库类型"""
        if not v:
            raise ValueError("DB_TYPE is required and cannot be empty")
        allowed = list(DB_DRIVER_MAP.keys())
        if v not in allowed:
            raise ValueError(f"DB_TYPE must be one of {allowed}, got '{v}'")
        return v

    @model_validator(mode="after")
    def decrypt_sensitive_fields(self) -> "Settings":
        """解密 ENC(...) 包裹的敏感字段"""
        fields_to_decrypt = ["DB_PASSWORD", "REDIS_PASSWORD"]
        aes_key = self.AES_SECRET.get_secret_value()

        if not aes_key:
            return self

        for field in fields_to_decrypt:
            secret_value: SecretStr | None = getattr(self, field)
            if secret_value is None:
                continue
            original_value = secret_value.get_secret_value()
            if original_value.startswith("ENC(") and original_value.endswith(")"):
                try:
                    decrypted_value = aes_decrypt(original_value[4:-1], aes_key)
                    object.__setattr__(self, field, SecretStr(decrypted_value))
                except ValueError as e:
                    logger.error(f"Failed to decrypt field '{field}': {e}")
                    raise ValueError(f"Failed to decrypt field '{field}'") from e
        return self

    @property
    def sqlalchemy_database_uri(self) -> str:
        """根据数据库类型动态生成连接 URI"""
        driver = DB_DRIVER_MAP.get(self.DB_TYPE)
        if not driver:
            raise ValueError(f"Unsupported database type: {self.DB_TYPE}")

        password = self.DB_PASSWORD.get_secret_value()

        if self.DB_TYPE == "mysql":
            return str(
                MySQLDsn.build(
                    scheme=driver,
                    username=self.DB_USERNAME,
                    password=password,
                    host=self.DB_HOST,
                    port=self.DB_PORT,
                    path=self.DB_DATABASE,
                    query="charset=utf8mb4",
                )
            )
        return str(
            PostgresDsn.build(
                scheme=driver,
                username=self.DB_USERNAME,
                password=password,
                host=self.DB_HOST,
                port=self.DB_PORT,
                path=self.DB_DATABASE,
            )
        )

    @property
    def redis_url(self) -> str:
        password = self.REDIS_PASSWORD.get_secret_value()
        return str(
            RedisDsn.build(
                scheme="redis",
                username=None,
                password=password if password else None,
                host=self.REDIS_HOST,
                port=self.REDIS_PORT,
                path=f"{self.REDIS_DB}",
            )
        )
