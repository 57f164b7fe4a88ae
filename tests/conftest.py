"""Pytest configuration and shared fixtures."""

import shutil
import subprocess
from pathlib import Path

import pytest

GIT_AVAILABLE = shutil.which("git") is not None


PIPELINE_YAML = """\
settings:
  defaultModel: anthropic/claude-sonnet
agents:
  - name: build
    promptPath: agents/build.md
  - name: test
    promptPath: agents/test.md
    model: openai/gpt-4o
    agent: tester
"""


def git(*args: str, cwd: Path) -> str:
    """Run git synchronously for test setup."""
    completed = subprocess.run(
        ["git", "-c", "user.email=ocf@example.com", "-c", "user.name=ocf", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
        text=True,
    )
    return completed.stdout.strip()


@pytest.fixture
def config_dir(tmp_path):
    """A .opencode-flow directory with a two-agent pipeline."""
    directory = tmp_path / ".opencode-flow"
    (directory / "agents").mkdir(parents=True)
    (directory / "agents" / "build.md").write_text(
        "Build {{storyId}} on {{branch}} in {{worktreePath}} as {{agentName}}"
    )
    (directory / "agents" / "test.md").write_text("Test {{storyId}}")
    (directory / "pipeline.yaml").write_text(PIPELINE_YAML)
    return directory


@pytest.fixture
def git_repo(tmp_path):
    """A non-bare git repository with one commit."""
    if not GIT_AVAILABLE:
        pytest.skip("git is not installed")

    repo = tmp_path / "repo"
    repo.mkdir()
    git("init", cwd=repo)
    git("commit", "--allow-empty", "-m", "initial", cwd=repo)
    return repo.resolve()


@pytest.fixture
def run_git():
    """Synchronous git runner for test setup and assertions."""
    return git
