"""Pipeline configuration models.

This module defines the validated, immutable shape of pipeline.yaml:
- PipelineSettings: optional defaults applied to every agent
- AgentConfig: one agent in the pipeline
- PipelineConfig: the ordered list of agents plus settings

YAML keys are camelCase (promptPath, defaultModel); the models expose
snake_case attributes and accept either spelling. Prompt file existence
is checked against the configuration directory passed in the validation
context under the "config_dir" key.
"""

from pathlib import Path
from typing import List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)


MODEL_SEPARATOR = "/"


def _validate_model_format(value: Optional[str]) -> Optional[str]:
    if value is not None and MODEL_SEPARATOR not in value:
        raise ValueError(f"must be in format 'provider/model', got: {value}")
    return value


class PipelineSettings(BaseModel):
    """Defaults applied to agents that do not override them.

    Attributes:
        default_model: Model for every agent, format provider/model.
        default_agent: OpenCode agent for every agent.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    default_model: Optional[str] = Field(default=None, alias="defaultModel")
    default_agent: Optional[str] = Field(default=None, alias="defaultAgent")

    @field_validator("default_model")
    @classmethod
    def validate_default_model(cls, v: Optional[str]) -> Optional[str]:
        return _validate_model_format(v)


class AgentConfig(BaseModel):
    """A single agent in the pipeline.

    Attributes:
        name: Unique name for this agent.
        prompt_path: Prompt markdown file, relative to the config directory.
        model: Model override, format provider/model.
        agent: OpenCode agent override.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    name: str = Field(..., min_length=1)
    prompt_path: str = Field(..., min_length=1, alias="promptPath")
    model: Optional[str] = None
    agent: Optional[str] = None

    @field_validator("model")
    @classmethod
    def validate_model(cls, v: Optional[str]) -> Optional[str]:
        return _validate_model_format(v)

    @field_validator("prompt_path")
    @classmethod
    def validate_prompt_file(cls, v: str, info: ValidationInfo) -> str:
        """Check the prompt file exists when a config directory is known."""
        config_dir = (info.context or {}).get("config_dir")
        if config_dir is None:
            return v
        resolved = (Path(config_dir) / v).resolve()
        if not resolved.is_file():
            raise ValueError(f"file not found: {v} (resolved to {resolved})")
        return v

    def resolve_prompt_path(self, config_dir: Path) -> Path:
        """Absolute path of the prompt file for this agent."""
        return (Path(config_dir) / self.prompt_path).resolve()

    def effective_model(self, settings: PipelineSettings) -> Optional[str]:
        """Model for this agent; the agent's own value wins over the default."""
        return self.model if self.model is not None else settings.default_model

    def effective_agent(self, settings: PipelineSettings) -> Optional[str]:
        """OpenCode agent for this agent; the agent's own value wins."""
        return self.agent if self.agent is not None else settings.default_agent


class PipelineConfig(BaseModel):
    """Full pipeline configuration loaded from pipeline.yaml.

    Agent order is execution order.

    Attributes:
        settings: Defaults shared by all agents.
        agents: Agents to run in sequence; at least one, names unique.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    settings: PipelineSettings = Field(default_factory=PipelineSettings)
    agents: List[AgentConfig] = Field(..., min_length=1)

    @field_validator("settings", mode="before")
    @classmethod
    def default_empty_settings(cls, v):
        # A "settings:" key with every entry commented out parses as None
        return {} if v is None else v

    @model_validator(mode="after")
    def validate_unique_names(self) -> "PipelineConfig":
        seen = set()
        for agent in self.agents:
            if agent.name in seen:
                raise ValueError(f"Duplicate agent name: {agent.name}")
            seen.add(agent.name)
        return self

    @property
    def agent_names(self) -> List[str]:
        return [agent.name for agent in self.agents]
