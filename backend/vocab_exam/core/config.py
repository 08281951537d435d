from functools import lru_cache
from pathlib import Path
from typing import Any, List
import json

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]  # backend/vocab_exam/core -> backend


def parse_cors_origins(v: Any) -> List[str]:
    """Parse CORS origins from a JSON list, a comma-separated string or a list"""
    if isinstance(v, list):
        return v
    if isinstance(v, str):
        if v.startswith("["):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        return [origin.strip() for origin in v.split(",") if origin.strip()]
    return []


class Settings(BaseSettings):
    """Application settings, all configurable via environment variables"""

    model_config = SettingsConfigDict(
        env_file=str(BASE_DIR / ".env"),
        extra="ignore",
    )

    # Application
    APP_NAME: str = "VocabExams"

    # Database
    DATABASE_URL: str = "sqlite:///./vocab_exam.db"
    DB_ECHO: bool = False

    # Auth
    JWT_SECRET_KEY: str = "change-me-in-production"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 12
    BCRYPT_ROUNDS: int = 12

    # CORS, React dev servers by default
    CORS_ORIGINS: Any = ["http://localhost:3000", "http://localhost:5173"]

    # Exam clock
    TICK_INTERVAL_SECONDS: float = 1.0

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "text"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _split_cors_origins(cls, v: Any) -> List[str]:
        return parse_cors_origins(v)

    @field_validator("LOG_FORMAT")
    @classmethod
    def _check_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("text", "json"):
            raise ValueError("LOG_FORMAT must be 'text' or 'json'")
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
