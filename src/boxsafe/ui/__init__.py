"""User interface: the ``boxsafe`` command-line router."""

from boxsafe.ui.cli import CLIError, build_parser, run_cli

__all__ = ["CLIError", "build_parser", "run_cli"]
