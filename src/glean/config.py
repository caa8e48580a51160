"""Configuration loading from environment variables with validation."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# Anchor default paths to the project root (two levels up from src/glean/)
_PROJECT_DIR = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="GLEAN_",
        case_sensitive=False,
    )

    # API credentials (loaded separately, no prefix)
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    readwise_token: str = ""
    judge_api_key: str = ""  # falls back to anthropic_api_key

    # Model settings
    model: str = "claude-sonnet-4-20250514"
    judge_model: str = "claude-sonnet-4-20250514"
    embedding_model: str = "text-embedding-3-small"
    max_tokens: int = 8192
    temperature: float = 0.7
    llm_max_retries: int = 3

    # Storage
    db_path: Path = _PROJECT_DIR / "data" / "glean.db"

    # Brand profile
    brand_config_path: Path = _PROJECT_DIR / "brand-config.json"
    brand_profile: str = ""  # overrides the profile line of the brand config

    # Workflow
    sync_max_age_days: int = 30
    top_highlights_limit: int = 20
    max_regeneration_attempts: int = 2

    # Logging
    log_level: str = "INFO"


def get_settings() -> Settings:
    """Load settings from environment and .env file."""
    load_dotenv(_PROJECT_DIR / ".env")
    return Settings(
        anthropic_api_key=os.getenv("ANTHROPIC_API_KEY", ""),
        openai_api_key=os.getenv("OPENAI_API_KEY", ""),
        readwise_token=os.getenv("READWISE_ACCESS_TOKEN", ""),
        judge_api_key=os.getenv("JUDGE_API_KEY", ""),
    )
