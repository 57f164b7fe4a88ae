"""Unit tests for the ocf command line."""

import asyncio
import logging
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
import structlog
from typer.testing import CliRunner

from opencode_flow import __version__
from opencode_flow.cli.app import app
from opencode_flow.executor import PipelineResult, ResultStatus
from opencode_flow.orchestrator import RunSummary
from opencode_flow.state import JsonStateRepository, RunStatus, StateError, create_run_state
from opencode_flow.workspace import WorktreeError


@pytest.fixture
def cli():
    return CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("OCF_LOG_LEVEL", "OCF_LOG_FORMAT", "OCF_AGENT_TIMEOUT_SECONDS"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


def _save_run(config_dir: Path, story_id: str, status: RunStatus = RunStatus.COMPLETED):
    state = create_run_state(story_id, f"flow/{story_id}", f"/repo/{story_id}")
    state = state.model_copy(update={"status": status})
    asyncio.run(JsonStateRepository(config_dir).save(state))


class TestGlobalOptions:
    def test_version(self, cli):
        result = cli.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_invalid_settings_exit_one(self, cli, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("OCF_LOG_LEVEL", "chatty")

        result = cli.invoke(app, ["status"])

        assert result.exit_code == 1


class TestInit:
    def test_creates_configuration(self, cli, git_repo, monkeypatch):
        monkeypatch.chdir(git_repo)

        result = cli.invoke(app, ["init"])

        assert result.exit_code == 0, result.output
        config_dir = git_repo / ".opencode-flow"
        for name in ("pipeline.yaml", "agents/build.md", "agents/test.md", "agents/review.md"):
            assert (config_dir / name).is_file()
        assert "runs/" in (config_dir / ".gitignore").read_text()
        assert "opencode-flow initialized!" in result.output

    def test_refuses_when_already_initialized(self, cli, git_repo, monkeypatch):
        (git_repo / ".opencode-flow").mkdir()
        monkeypatch.chdir(git_repo)

        result = cli.invoke(app, ["init"])

        assert result.exit_code == 1
        assert not (git_repo / ".opencode-flow" / "pipeline.yaml").exists()

    def test_refuses_outside_git_root(self, cli, git_repo, monkeypatch):
        nested = git_repo / "src"
        nested.mkdir()
        monkeypatch.chdir(nested)

        result = cli.invoke(app, ["init"])

        assert result.exit_code == 1
        assert not (nested / ".opencode-flow").exists()

    def test_refuses_outside_repository(self, cli, tmp_path, monkeypatch):
        with patch(
            "opencode_flow.cli.app.get_git_root",
            new=AsyncMock(side_effect=WorktreeError("no repo")),
        ):
            monkeypatch.chdir(tmp_path)
            result = cli.invoke(app, ["init"])

        assert result.exit_code == 1


class TestStatus:
    def test_no_config_directory(self, cli, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        result = cli.invoke(app, ["status"])

        assert result.exit_code == 1

    def test_no_runs(self, cli, config_dir, monkeypatch):
        monkeypatch.chdir(config_dir.parent)

        result = cli.invoke(app, ["status"])

        assert result.exit_code == 0
        assert "No pipeline runs found." in result.output

    def test_lists_runs(self, cli, config_dir, monkeypatch):
        _save_run(config_dir, "DEV-1")
        _save_run(config_dir, "DEV-2", RunStatus.FAILED)
        monkeypatch.chdir(config_dir.parent)

        result = cli.invoke(app, ["status"])

        assert result.exit_code == 0
        assert "DEV-1" in result.output
        assert "DEV-2" in result.output
        assert "failed" in result.output
        assert "2 pipeline runs found" in result.output


class TestRun:
    def test_blank_story_id_rejected(self, cli, config_dir, monkeypatch):
        monkeypatch.chdir(config_dir.parent)

        result = cli.invoke(app, ["run", "  "])

        assert result.exit_code == 1

    def test_requires_story_id(self, cli):
        result = cli.invoke(app, ["run"])

        assert result.exit_code != 0

    def test_invalid_config_exit_one(self, cli, config_dir, monkeypatch):
        (config_dir / "pipeline.yaml").write_text("agents: []\n")
        monkeypatch.chdir(config_dir.parent)

        result = cli.invoke(app, ["run", "DEV-1"])

        assert result.exit_code == 1

    @pytest.mark.parametrize(
        "status,expected_exit",
        [
            (ResultStatus.COMPLETED, 0),
            (ResultStatus.FAILED, 1),
            (ResultStatus.SKIPPED, 1),
        ],
    )
    def test_exit_code_follows_summary(self, cli, config_dir, monkeypatch, status, expected_exit):
        monkeypatch.chdir(config_dir.parent)
        summary = RunSummary([PipelineResult(story_id="DEV-1", status=status)])

        with patch(
            "opencode_flow.cli.app.get_git_root",
            new=AsyncMock(return_value=config_dir.parent),
        ), patch(
            "opencode_flow.cli.app.is_bare_repo", new=AsyncMock(return_value=True)
        ), patch(
            "opencode_flow.cli.app.PipelineOrchestrator.run_all",
            new=AsyncMock(return_value=summary),
        ) as run_all:
            result = cli.invoke(app, ["run", "DEV-1"])

        assert result.exit_code == expected_exit
        run_all.assert_awaited_once_with(["DEV-1"])
        assert "Summary" in result.output

    def test_warns_for_non_bare_repository(self, cli, config_dir, monkeypatch):
        monkeypatch.chdir(config_dir.parent)
        summary = RunSummary([PipelineResult(story_id="DEV-1", status=ResultStatus.COMPLETED)])

        with patch(
            "opencode_flow.cli.app.get_git_root",
            new=AsyncMock(return_value=config_dir.parent),
        ), patch(
            "opencode_flow.cli.app.is_bare_repo", new=AsyncMock(return_value=False)
        ), patch(
            "opencode_flow.cli.app.PipelineOrchestrator.run_all",
            new=AsyncMock(return_value=summary),
        ):
            result = cli.invoke(app, ["run", "DEV-1"])

        assert "Not a bare repository" in result.output
        assert result.exit_code == 0

    def test_state_write_error_exits_one(self, cli, config_dir, monkeypatch):
        monkeypatch.chdir(config_dir.parent)

        with patch(
            "opencode_flow.cli.app.get_git_root",
            new=AsyncMock(return_value=config_dir.parent),
        ), patch(
            "opencode_flow.cli.app.is_bare_repo", new=AsyncMock(return_value=True)
        ), patch(
            "opencode_flow.cli.app.PipelineOrchestrator.run_all",
            new=AsyncMock(side_effect=StateError("Failed to save run state for DEV-1: disk full")),
        ):
            result = cli.invoke(app, ["run", "DEV-1"])

        assert result.exit_code == 1
        assert "Summary" not in result.output


class TestCleanup:
    def test_nothing_to_clean_up(self, cli, config_dir, tmp_path, monkeypatch):
        monkeypatch.chdir(config_dir.parent)

        with patch(
            "opencode_flow.cli.app.get_git_root",
            new=AsyncMock(return_value=tmp_path),
        ):
            result = cli.invoke(app, ["cleanup", "DEV-404"])

        assert result.exit_code == 1

    def test_deletes_state(self, cli, config_dir, tmp_path, monkeypatch):
        _save_run(config_dir, "DEV-1")
        monkeypatch.chdir(config_dir.parent)

        with patch(
            "opencode_flow.cli.app.get_git_root",
            new=AsyncMock(return_value=tmp_path),
        ):
            result = cli.invoke(app, ["cleanup", "DEV-1"])

        assert result.exit_code == 0, result.output
        assert not (config_dir / "runs" / "DEV-1.json").exists()
        assert "Cleanup complete for DEV-1" in result.output

    def test_keep_state(self, cli, config_dir, tmp_path, monkeypatch):
        _save_run(config_dir, "DEV-1")
        monkeypatch.chdir(config_dir.parent)

        with patch(
            "opencode_flow.cli.app.get_git_root",
            new=AsyncMock(return_value=tmp_path),
        ):
            result = cli.invoke(app, ["cleanup", "DEV-1", "--keep-state"])

        assert result.exit_code == 0
        assert (config_dir / "runs" / "DEV-1.json").exists()
        assert "--keep-state" in result.output
