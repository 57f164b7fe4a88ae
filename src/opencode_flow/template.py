"""Prompt templating with {{variable}} placeholders.

Placeholders are double-braced ASCII identifiers. Known variables are
replaced; unknown ones stay in the text exactly as written and are
reported back so the caller can warn about them. Substitution never
fails.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List


TEMPLATE_VAR_PATTERN = re.compile(r"\{\{([A-Za-z0-9_]+)\}\}")


@dataclass(frozen=True)
class TemplateVariables:
    """Values available to agent prompts.

    Attributes:
        story_id: Story ID passed on the command line.
        branch: Branch created for this run.
        worktree_path: Absolute path to the story's worktree.
        agent_name: Name of the agent being executed.
    """

    story_id: str
    branch: str
    worktree_path: str
    agent_name: str

    def as_mapping(self) -> Dict[str, str]:
        """Placeholder names as they are written in prompt files."""
        return {
            "storyId": self.story_id,
            "branch": self.branch,
            "worktreePath": self.worktree_path,
            "agentName": self.agent_name,
        }


@dataclass(frozen=True)
class SubstitutionResult:
    """Outcome of a substitution.

    Attributes:
        result: The text with known placeholders replaced.
        missing_variables: Unknown placeholder names, each once, in the
            order they first appear.
    """

    result: str
    missing_variables: List[str] = field(default_factory=list)


def substitute_variables(
    template: str, variables: TemplateVariables
) -> SubstitutionResult:
    """Replace {{name}} placeholders in a template.

    Args:
        template: Text containing {{name}} placeholders.
        variables: Values for the known placeholders.

    Returns:
        SubstitutionResult with the rendered text and missing names.

    Example:
        >>> variables = TemplateVariables(
        ...     story_id="DEV-18",
        ...     branch="flow/DEV-18",
        ...     worktree_path="/repo/DEV-18",
        ...     agent_name="build",
        ... )
        >>> substitute_variables("Implementing {{storyId}}", variables).result
        'Implementing DEV-18'
    """
    values = variables.as_mapping()
    missing: List[str] = []

    def replace(match: "re.Match[str]") -> str:
        name = match.group(1)
        if name in values:
            return values[name]
        if name not in missing:
            missing.append(name)
        return match.group(0)

    rendered = TEMPLATE_VAR_PATTERN.sub(replace, template)
    return SubstitutionResult(result=rendered, missing_variables=missing)
