from functools import lru_cache
from pathlib import Path
from typing import List, Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEV_JWT_SECRET = "change-me-in-production-0123456789abcdef"


class Settings(BaseSettings):
    """
    Application settings loaded from environment (and an optional .env file).
    """

    ENV: Literal["development", "testing", "staging", "production"] = "development"

    # MongoDB
    MONGODB_URI: str = "mongodb://127.0.0.1:27017"
    MONGODB_DB: str = "snapshoot"
    MONGO_SERVER_SELECTION_TIMEOUT_MS: int = 5000
    MONGO_SOCKET_TIMEOUT_MS: int = 45000

    # Auth (token verification only, issuance lives in the identity service)
    JWT_SECRET: str = DEV_JWT_SECRET
    JWT_ALGORITHM: str = "HS256"

    # Realtime
    PUSH_TIMEOUT_SECONDS: float = 5.0

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    LOG_FORMAT: Literal["json", "text"] = "json"

    CORS_ORIGINS: List[str] = ["*"]

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        return v.upper() if isinstance(v, str) else v

    @field_validator("LOG_FORMAT", mode="before")
    @classmethod
    def normalize_log_format(cls, v):
        return v.lower() if isinstance(v, str) else v

    @model_validator(mode="after")
    def require_real_secret_in_production(self):
        if self.ENV == "production" and self.JWT_SECRET == DEV_JWT_SECRET:
            raise ValueError("JWT_SECRET must be set in production")
        return self

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )


# Settings come from the process environment only, so one instance is enough.
@lru_cache()
def get_settings() -> Settings:
    return Settings()
