"""Unit tests for CLI logging setup."""

import json
import logging

import pytest
import structlog

from opencode_flow.logging_config import configure_logging


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


def _emit(capsys, level: str, log_format: str) -> str:
    configure_logging(level, log_format)
    logging.getLogger("opencode_flow.test").warning(
        "Skipping story", extra={"story_id": "DEV-18"}
    )
    logging.getLogger("opencode_flow.test").debug("hidden")
    return capsys.readouterr().err


class TestConfigureLogging:
    def test_installs_single_root_handler(self):
        configure_logging("INFO")

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert root.level == logging.INFO

    def test_json_output_includes_extra_fields(self, capsys):
        err = _emit(capsys, "WARNING", "json")

        record = json.loads(err.strip().splitlines()[-1])
        assert record["event"] == "Skipping story"
        assert record["story_id"] == "DEV-18"
        assert record["level"] == "warning"
        assert record["logger"] == "opencode_flow.test"

    def test_console_output_respects_level(self, capsys):
        err = _emit(capsys, "WARNING", "console")

        assert "Skipping story" in err
        assert "story_id" in err
        assert "hidden" not in err

    def test_stdout_is_left_alone(self, capsys):
        configure_logging("DEBUG", "json")
        logging.getLogger("opencode_flow.test").info("to stderr")

        assert capsys.readouterr().out == ""
