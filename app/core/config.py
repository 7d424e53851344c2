# 读取 .env 配置
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    # Database
    DB_SERVER: str = "localhost"
    DB_PORT: int = 3306
    DB_USER: str = "rank_user"
    DB_PASSWORD: str = "rank_password"
    DB_NAME: str = "marketplace"
    # 显式指定时覆盖上面拼出来的 MySQL 地址（例如 sqlite:///./ranking.db）
    DATABASE_URL: Optional[str] = None

    # Redis
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None
    REDIS_UNIX_SOCKET: Optional[str] = None
    RANKING_KEY_PREFIX: str = "ranking:"

    # 排序引擎参数
    SIGNAL_READ_TIMEOUT_SECONDS: float = 0.5
    SIGNAL_MAX_CONCURRENCY: int = 16
    PERSONALIZATION_WINDOW_DAYS: int = 30
    QUALITY_CACHE_TTL_SECONDS: int = 300
    RANKING_EXPERIMENT_ID: str = "ranking_formula_v1"
    TAG_QUALITY_EXPERIMENT_ID: str = "ai_tag_quality_v1"
    HEALTH_RANK_DEPTH: int = 50
    HEALTH_MAX_QUERIES: int = 5

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # 忽略多余的环境变量
    )

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        # 格式: mysql+pymysql://用户名:密码@地址:端口/数据库名
        return (
            f"mysql+pymysql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_SERVER}:{self.DB_PORT}/{self.DB_NAME}"
        )


settings = Settings()
