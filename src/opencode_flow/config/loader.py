"""Pipeline configuration discovery and loading.

Finds the .opencode-flow directory by walking up from a start directory,
parses pipeline.yaml with PyYAML, and validates it into the immutable
PipelineConfig model. Every failure is reported as a ConfigError before
any pipeline work begins.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from opencode_flow.config.models import PipelineConfig


logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = ".opencode-flow"
CONFIG_FILE_NAME = "pipeline.yaml"

_VALUE_ERROR_PREFIX = "Value error, "


class ConfigError(Exception):
    """Raised when the pipeline configuration is missing or invalid."""

    pass


@dataclass(frozen=True)
class LoadedConfig:
    """A validated configuration and the directory it was loaded from.

    Attributes:
        config: The validated pipeline configuration.
        config_dir: Absolute path to the .opencode-flow directory.
    """

    config: PipelineConfig
    config_dir: Path


def find_config_dir(start_dir: Optional[Path] = None) -> Path:
    """Find the .opencode-flow directory at or above start_dir.

    Args:
        start_dir: Directory to start from; defaults to the current
            working directory.

    Returns:
        Absolute path to the .opencode-flow directory.

    Raises:
        ConfigError: If no .opencode-flow directory exists up to the
            filesystem root.
    """
    current = Path(start_dir or Path.cwd()).resolve()

    for directory in (current, *current.parents):
        candidate = directory / CONFIG_DIR_NAME
        if candidate.is_dir():
            return candidate

    raise ConfigError(
        f"Could not find {CONFIG_DIR_NAME} directory. Run 'ocf init' to initialize."
    )


def validate_config(raw: Any, config_dir: Path) -> PipelineConfig:
    """Validate parsed YAML into a PipelineConfig.

    Args:
        raw: The object produced by the YAML parser.
        config_dir: Directory prompt paths are resolved against.

    Returns:
        The validated configuration.

    Raises:
        ConfigError: Listing every validation problem with its location.
    """
    if not isinstance(raw, dict):
        raise ConfigError("Configuration must be a mapping")

    try:
        return PipelineConfig.model_validate(
            raw, context={"config_dir": Path(config_dir)}
        )
    except ValidationError as exc:
        problems = [_format_error(error) for error in exc.errors()]
        raise ConfigError(
            "Invalid pipeline configuration:\n  " + "\n  ".join(problems)
        ) from exc


def load_config(start_dir: Optional[Path] = None) -> LoadedConfig:
    """Load and validate .opencode-flow/pipeline.yaml.

    Args:
        start_dir: Directory to start searching from; defaults to cwd.

    Returns:
        LoadedConfig with the configuration and its directory.

    Raises:
        ConfigError: If the file is missing, unreadable, not valid YAML,
            or fails validation.
    """
    config_dir = find_config_dir(start_dir)
    config_path = config_dir / CONFIG_FILE_NAME

    if not config_path.is_file():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        content = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to read configuration file: {exc}") from exc

    try:
        raw = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse YAML: {exc}") from exc

    config = validate_config(raw, config_dir)

    logger.info(
        "Pipeline configuration loaded",
        extra={
            "config_dir": str(config_dir),
            "agents": config.agent_names,
        },
    )

    return LoadedConfig(config=config, config_dir=config_dir)


def _format_error(error: dict) -> str:
    """Render one pydantic error as "agents[0].promptPath: message"."""
    location = ""
    for part in error.get("loc", ()):
        if isinstance(part, int):
            location += f"[{part}]"
        else:
            location += f".{part}" if location else str(part)

    message = error.get("msg", "invalid value")
    if message.startswith(_VALUE_ERROR_PREFIX):
        message = message[len(_VALUE_ERROR_PREFIX):]

    return f"{location}: {message}" if location else message
