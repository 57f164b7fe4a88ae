"""Command line interface for opencode-flow."""

from opencode_flow.cli.app import app, main

__all__ = ["app", "main"]
