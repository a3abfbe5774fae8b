from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="BAYT_", extra="ignore", env_file=".env")

    app_name: str = "BaytBrands Dashboard API"
    cors_origin: str = "http://localhost:5173"

    # "memory" keeps everything in-process; "sql" persists through SQLAlchemy.
    store_backend: Literal["memory", "sql"] = "memory"
    database_url: str = "sqlite+pysqlite:///./baytbrands.db"
    seed_demo_data: bool = True

    # Used by ApiStore when the aggregator runs outside the API process.
    api_base_url: str = "http://localhost:8000"
    fetch_timeout_seconds: float = Field(default=5.0, gt=0, le=60)

    # Initials of the person looking at the dashboard and the sentinel used for AI-owned work.
    operator_initials: str = "ZB"
    ai_actor: str = "AI"
    currency_symbol: str = "$"

    log_level: str = "INFO"
    log_json: bool = False


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
