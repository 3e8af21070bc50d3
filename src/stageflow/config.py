"""Runtime configuration.

Configuration is loaded from:
- environment variables with the `STAGEFLOW_` prefix
- and a local `.env` file (if present)

Pydantic-settings supports overriding the env file in tests via
`StageflowSettings(_env_file=path_to_env)`.
"""

from __future__ import annotations

import logging

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from stageflow.logging import configure_logging

_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class StageflowSettings(BaseSettings):
    """Engine and logging settings.

    Environment variables:
    - STAGEFLOW_LOG_LEVEL
    - STAGEFLOW_LOG_JSON
    - STAGEFLOW_DEBUG
    - STAGEFLOW_DEFAULT_STAGE_TIMEOUT_MS
    - STAGEFLOW_DEFAULT_MAX_ATTEMPTS
    - STAGEFLOW_DEFAULT_BACKOFF_MULTIPLIER
    """

    log_level: str = Field(
        default="INFO",
        description="Root logging level",
    )
    log_json: bool = Field(
        default=True,
        description="Emit logs as JSON lines instead of plain text",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug logging for the stageflow package",
    )

    default_stage_timeout_ms: float = Field(
        default=60_000,
        gt=0,
        description="Timeout applied to stages that do not declare one",
    )
    default_max_attempts: int = Field(
        default=1,
        ge=1,
        description="Attempt budget for stages without a retry policy",
    )
    default_backoff_multiplier: float = Field(
        default=1.0,
        gt=0,
        description="Backoff multiplier used when a retry policy does not set one",
    )

    model_config = SettingsConfigDict(
        env_prefix="STAGEFLOW_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in _LEVELS:
            raise ValueError(f"Unknown log level: {value}")
        return level

    def setup_logging(self) -> None:
        """Configure logging based on settings."""
        configure_logging(self.log_level, json_output=self.log_json)

        if self.debug:
            logging.getLogger("stageflow").setLevel(logging.DEBUG)
