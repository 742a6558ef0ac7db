"""Map the configured run command onto what actually executes the artifact."""

from __future__ import annotations

import sys
from pathlib import Path

import structlog

from boxsafe.constants import PLACEHOLDER_RUN_COMMAND
from boxsafe.domain.languages import canonical_language
from boxsafe.sandbox.executor import ArgvCommand, Command

_logger = structlog.get_logger(__name__)

_INTERPRETERS: dict[str, str] = {
    "js": "node",
    "ts": "tsx",
    "sh": "bash",
}


def derive_run_command(command: str, language: str, artifact_path: Path | str) -> Command:
    """Replace the ``echo OK`` placeholder with an interpreter call on the artifact.

    Any other configured command is returned unchanged.
    """
    if command.strip() != PLACEHOLDER_RUN_COMMAND:
        return command

    artifact = str(artifact_path)
    canonical = canonical_language(language)
    derived: Command
    if canonical == "py":
        derived = ArgvCommand(sys.executable, (artifact,))
    elif canonical in _INTERPRETERS:
        derived = ArgvCommand(_INTERPRETERS[canonical], (artifact,))
    else:
        derived = ArgvCommand(artifact)
    _logger.info("run_command_derived", language=canonical, command=derived.display())
    return derived


__all__ = ["derive_run_command"]
