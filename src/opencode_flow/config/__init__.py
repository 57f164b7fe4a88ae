"""Pipeline configuration: discovery, YAML parsing, and validation.

The pipeline is configured by .opencode-flow/pipeline.yaml at or above
the working directory. Loading validates it into immutable models
before any pipeline work starts.
"""

from opencode_flow.config.loader import (
    CONFIG_DIR_NAME,
    CONFIG_FILE_NAME,
    ConfigError,
    LoadedConfig,
    find_config_dir,
    load_config,
    validate_config,
)
from opencode_flow.config.models import (
    AgentConfig,
    PipelineConfig,
    PipelineSettings,
)

__all__ = [
    # Models
    "AgentConfig",
    "PipelineConfig",
    "PipelineSettings",
    # Loader
    "CONFIG_DIR_NAME",
    "CONFIG_FILE_NAME",
    "ConfigError",
    "LoadedConfig",
    "find_config_dir",
    "load_config",
    "validate_config",
]
