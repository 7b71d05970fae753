"""Application settings loaded from environment variables / `.env`."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_DATA_DIR = Path(__file__).resolve().parents[1] / "data"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    DATA_SOURCE: Literal["json", "db"] = Field(
        default="json",
        description="Row source backing the API: static JSON files or a relational store.",
    )
    DATA_DIR: Path = Field(default=DEFAULT_DATA_DIR, description="Directory holding <table>.json files.")
    DATABASE_URL: str = Field(default="sqlite:///am_market.db", description="SQLAlchemy URL for db mode.")

    TABLE_CACHE_TTL_SECONDS: float = Field(default=60.0, gt=0)
    TABLE_CACHE_MAX_ENTRIES: int = Field(default=256, ge=1)

    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    CORS_ORIGINS: List[str] = Field(default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"])


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
