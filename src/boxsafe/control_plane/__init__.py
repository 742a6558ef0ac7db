"""Control plane: the iteration loop, retry feedback, run-command derivation and tasks."""

from boxsafe.control_plane.controller import (
    IterationController,
    IterationRecord,
    LoopOutcome,
    LoopResult,
    TaskRunSummary,
)
from boxsafe.control_plane.feedback import build_missing_code_prompt, build_retry_prompt
from boxsafe.control_plane.run_command import derive_run_command
from boxsafe.control_plane.tasks import TaskManager, TaskStateError, parse_todo

__all__ = [
    "IterationController",
    "IterationRecord",
    "LoopOutcome",
    "LoopResult",
    "TaskManager",
    "TaskRunSummary",
    "TaskStateError",
    "build_missing_code_prompt",
    "build_retry_prompt",
    "derive_run_command",
    "parse_todo",
]
