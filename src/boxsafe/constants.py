"""Stable constants shared across boxsafe planes."""

from __future__ import annotations

from typing import Final

ENV_PREFIX: Final[str] = "BOXSAFE_"

# Runtime environment toggles read outside the config loader.
ENV_ALLOW_UNSAFE_SHELL: Final[str] = "BOXSAFE_ALLOW_UNSAFE_SHELL"
ENV_SUCCESS_CONTRACTS: Final[str] = "BOXSAFE_SUCCESS_CONTRACTS"
ENV_TRACE_RETAIN: Final[str] = "BOXSAFE_TRACE_RETAIN"
ENV_RUN_ID: Final[str] = "BOXSAFE_RUN_ID"

# Executor.
PLACEHOLDER_RUN_COMMAND: Final[str] = "echo OK"
BLOCKED_EXIT_CODE: Final[int] = 126
DEFAULT_COMMAND_TIMEOUT_SECONDS: Final[float] = 60.0
DEFAULT_KILL_GRACE_SECONDS: Final[float] = 5.0
LAST_COMMAND_LOG_NAME: Final[str] = "last_command.log"

# Navigator.
DEFAULT_MAX_FILE_SIZE: Final[int] = 10 * 1024 * 1024

# Scoring.
DEFAULT_SUCCESS_MARKER: Final[str] = "__RESULT__=SUCCESS"
DEFAULT_PASS_THRESHOLD: Final[float] = 70.0
DEFAULT_WARNING_PENALTY: Final[float] = 0.5
DEFAULT_PARTIAL_CREDIT_THRESHOLD: Final[float] = 0.5

# Loop and tracing.
DEFAULT_MAX_ITERATIONS: Final[int] = 10
INFINITE_LOOPS_SENTINEL: Final[str] = "infinity"
DEFAULT_TRACE_RETAIN: Final[int] = 20

# Tool-call fences.
TOOL_CALL_FENCE_LANGUAGE: Final[str] = "json-tool"

# Version control.
VERSION_NOTES_FILENAME: Final[str] = "BOXSAFE_VERSION_NOTES.md"
GIT_TOKEN_ENV_NAMES: Final[tuple[str, ...]] = ("PASSWORD_GIT", "GITHUB_TOKEN")

__all__ = [
    "BLOCKED_EXIT_CODE",
    "DEFAULT_COMMAND_TIMEOUT_SECONDS",
    "DEFAULT_KILL_GRACE_SECONDS",
    "DEFAULT_MAX_FILE_SIZE",
    "DEFAULT_MAX_ITERATIONS",
    "DEFAULT_PARTIAL_CREDIT_THRESHOLD",
    "DEFAULT_PASS_THRESHOLD",
    "DEFAULT_SUCCESS_MARKER",
    "DEFAULT_TRACE_RETAIN",
    "DEFAULT_WARNING_PENALTY",
    "ENV_ALLOW_UNSAFE_SHELL",
    "ENV_PREFIX",
    "ENV_RUN_ID",
    "ENV_SUCCESS_CONTRACTS",
    "ENV_TRACE_RETAIN",
    "GIT_TOKEN_ENV_NAMES",
    "INFINITE_LOOPS_SENTINEL",
    "LAST_COMMAND_LOG_NAME",
    "PLACEHOLDER_RUN_COMMAND",
    "TOOL_CALL_FENCE_LANGUAGE",
    "VERSION_NOTES_FILENAME",
]
