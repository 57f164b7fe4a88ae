"""Process configuration using pydantic-settings.

This module defines the FlowSettings class that reads runtime options
from environment variables with the OCF_ prefix. Every field has a
default, so the CLI works without any environment set up; the pipeline
itself is configured separately in .opencode-flow/pipeline.yaml.
"""

import logging
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlowSettings(BaseSettings):
    """Runtime options from environment variables.

    All environment variables are prefixed with OCF_ (e.g., OCF_OPENCODE_PATH).
    """

    model_config = SettingsConfigDict(
        env_prefix="OCF_",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # External tools
    # -------------------------------------------------------------------------
    # Executable used to run each agent
    opencode_path: str = "opencode"

    # Executable used for worktree and branch management
    git_path: str = "git"

    # Per-agent time limit; unset means agents may run indefinitely
    agent_timeout_seconds: Optional[int] = None

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------
    log_level: str = "WARNING"

    log_format: Literal["console", "json"] = "console"

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("opencode_path", "git_path")
    @classmethod
    def validate_executable(cls, v: str) -> str:
        """Validate that executable paths are not empty."""
        if not v or not v.strip():
            raise ValueError("executable path cannot be empty")
        return v.strip()

    @field_validator("agent_timeout_seconds")
    @classmethod
    def validate_agent_timeout(cls, v: Optional[int]) -> Optional[int]:
        """Validate that the agent timeout is positive when set."""
        if v is not None and v < 1:
            raise ValueError("agent_timeout_seconds must be at least 1")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that the log level is a standard logging level name."""
        level = v.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level: {v}")
        return level


def get_settings() -> FlowSettings:
    """Create and return a FlowSettings instance.

    Returns:
        FlowSettings: Settings read from the current environment.

    Raises:
        pydantic.ValidationError: If an environment value is invalid.
    """
    return FlowSettings()
