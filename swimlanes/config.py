from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .positioning import REBALANCE_THRESHOLD


class Settings(BaseSettings):
    """Application configuration loaded from environment variables and ``.env``."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    database_url: str = Field(default="sqlite:///./swimlanes.db", alias="DATABASE_URL")
    log_level: str = Field(default="INFO", alias="SWIMLANES_LOG_LEVEL")
    rebalance_threshold: int = Field(
        default=REBALANCE_THRESHOLD, ge=0, alias="SWIMLANES_REBALANCE_THRESHOLD"
    )
    sql_echo: bool = Field(default=False, alias="SWIMLANES_SQL_ECHO")


@lru_cache
def get_settings() -> Settings:
    return Settings()
