# pseudonymization/service/config.py

"""Application configuration using Pydantic Settings.

Manages environment variables, defaults, and validation rules.
"""

import logging
from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings.

    Loads values from environment variables (prefix 'PSEUDONYMIZATION_') or
    .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="PSEUDONYMIZATION_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Language model
    openai_api_key: Optional[str] = Field(
        default=None, description="API key for the chat-completion endpoint."
    )
    openai_base_url: Optional[str] = Field(
        default=None, description="Base URL of an OpenAI-compatible endpoint."
    )
    openai_model: str = Field(default="gpt-3.5-turbo")
    max_tokens: int = Field(default=2000, gt=0)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)

    # Entity extraction
    extraction_url: Optional[str] = Field(
        default=None, description="Endpoint that annotates an uploaded HOCR file."
    )
    extraction_api_key: Optional[str] = Field(default=None)
    request_timeout: float = Field(
        default=30.0, gt=0.0, description="Timeout in seconds for collaborator calls."
    )

    # Input limits
    improve_max_chars: int = Field(default=10_000, gt=0)
    hocr_max_chars: int = Field(default=50_000, gt=0)

    # Behaviour
    hocr_with_paragraphs: bool = Field(
        default=True, description="Emit ocr_par wrappers around lines."
    )
    simulate_when_unavailable: bool = Field(
        default=True,
        description="Fall back to the local simulation in the combined workflow.",
    )
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure the level is one the logging module knows."""
        level = v.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("openai_model")
    @classmethod
    def validate_model_name(cls, v: str) -> str:
        """Ensure model name is not empty."""
        if not v.strip():
            raise ValueError("Model name cannot be empty")
        return v


# Singleton settings instance
settings = Settings()
