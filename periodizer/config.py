"""Application configuration management."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DATA_DIR = Path(__file__).resolve().parent / "data"


class Settings(BaseSettings):
    """Centralised application settings derived from environment variables."""

    anthropic_api_key: str | None = Field(
        default=None,
        description="Anthropic API key. Text generation is disabled when unset.",
    )
    anthropic_model: str = Field(default="claude-sonnet-4-5-20250929")
    anthropic_timeout_seconds: float = Field(default=60.0, gt=0)

    database_url: str = Field(
        default="sqlite:///./data/periodizer.db",
        description="SQLAlchemy-compatible database URL.",
    )
    app_host: str = Field(default="0.0.0.0")
    app_port: int = Field(default=8000, ge=1, le=65535)

    debug: bool = Field(default=False)

    log_level: str = Field(default="INFO")
    log_dir: Path = Field(default=Path("logs"))
    data_dir: Path = Field(
        default=DATA_DIR,
        description="Directory holding the drill library, principles and team YAML files.",
    )

    # Plan generation defaults
    max_plan_days: int = Field(default=42, ge=1, le=42)
    default_weeks: int = Field(default=5, ge=1, le=6)
    default_variability: str = Field(default="medium")
    default_generation_mode: str = Field(default="curated")
    default_load_assignment: str = Field(default="deterministic")

    # Heuristic thresholds
    taper_importance_threshold: float = Field(default=1.15)
    importance_floor: float = Field(default=0.6)
    monotony_high: float = Field(default=2.0)
    monotony_moderate: float = Field(default=1.5)
    strain_high: float = Field(default=160.0)
    strain_moderate: float = Field(default=120.0)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        valid = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
        upper = value.upper()
        if upper not in valid:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(sorted(valid))}")
        return upper

    @field_validator("default_variability")
    @classmethod
    def normalize_variability(cls, value: str) -> str:
        lower = value.lower()
        if lower not in {"low", "medium", "high"}:
            raise ValueError("DEFAULT_VARIABILITY must be one of high, low, medium")
        return lower

    @field_validator("default_generation_mode")
    @classmethod
    def normalize_generation_mode(cls, value: str) -> str:
        lower = value.lower()
        if lower not in {"curated", "generative", "hybrid"}:
            raise ValueError("DEFAULT_GENERATION_MODE must be one of curated, generative, hybrid")
        return lower

    @field_validator("default_load_assignment")
    @classmethod
    def normalize_load_assignment(cls, value: str) -> str:
        lower = value.lower()
        if lower not in {"deterministic", "ai_assisted"}:
            raise ValueError("DEFAULT_LOAD_ASSIGNMENT must be one of ai_assisted, deterministic")
        return lower


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance so it can be reused across the app."""

    settings = Settings()
    settings.log_dir.mkdir(parents=True, exist_ok=True)
    return settings
