from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800

    JWT_SECRET_KEY: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    ADMIN_UI_ORIGINS: str = ""
    TRUST_PROXY_HEADERS: bool = False

    LOGIN_THROTTLE_MAX_REQUESTS: int = 15
    LOGIN_THROTTLE_WINDOW_SEC: int = 15
    LOGIN_THROTTLE_KEY_PREFIX: str = "loginThrottle"
    LOGIN_THROTTLE_BACKEND: str = "memory"
    LOGIN_THROTTLE_ATOMIC_INCREMENT: bool = False
    LOGIN_THROTTLE_FAIL_OPEN: bool = False

    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_TIMEOUT_SEC: float = 2.0


settings = Settings()
