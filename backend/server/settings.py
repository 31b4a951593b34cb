"""Scorer server configuration via environment variables."""

import json
from typing import Annotated

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def parse_string_list(value: str | list[str]) -> list[str]:
    """Parse a JSON array string or a comma-separated string into a list of strings."""
    if isinstance(value, list):
        return value
    stripped = value.strip()
    if not stripped:
        return []
    if stripped.startswith("["):
        try:
            parsed = json.loads(stripped)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON array: {e}") from e
        if not isinstance(parsed, list) or not all(isinstance(item, str) for item in parsed):
            raise ValueError("JSON value must be an array of strings")
        return parsed
    return [item.strip() for item in stripped.split(",") if item.strip()]


class ScorerServerSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SCORER_")

    database_path: str = "backend/scorer.db"
    log_dir: str | None = "backend/logs/scorer"
    log_format: str | None = None  # falls back to LOG_FORMAT
    log_level: str | None = None  # falls back to LOG_LEVEL
    # Enforce one identity per canonical name in the store. Leave off while
    # legacy data with duplicate canonicals still needs importing.
    unique_canonical: bool = False
    # Bulk delete is for test/reset setups only
    allow_reset: bool = False
    cors_origins: Annotated[list[str], NoDecode] = []

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v)
