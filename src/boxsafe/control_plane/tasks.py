"""
boxsafe — task manager

File: src/boxsafe/control_plane/tasks.py

Purpose
- Split a todo file into numbered task files and track progress across runs.

Functional requirements
- Tasks are ``- item`` lines when the todo has any; otherwise blank-line separated
  paragraphs.
- Layout under the state dir: ``tasks/task_001.md``... plus ``state.json`` holding
  ``{"current": <index>, "done": [<bool>...]}``.
- Existing state is reused; unreadable state is rebuilt from the todo file.
- Concurrent runs against one state dir are unsupported.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Final

import structlog

from boxsafe.utils.fs import atomic_write

STATE_FILENAME: Final[str] = "state.json"
TASKS_DIRNAME: Final[str] = "tasks"
_TASK_FILE_RE: Final[re.Pattern[str]] = re.compile(r"^task_\d{3,}\.md$")
_PARAGRAPH_SPLIT_RE: Final[re.Pattern[str]] = re.compile(r"\n\s*\n")

_logger = structlog.get_logger(__name__)


class TaskStateError(ValueError):
    """Raised when ``state.json`` does not describe the task files next to it."""


def parse_todo(text: str) -> list[str]:
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    dash_items = [line[2:].strip() for line in lines if line.startswith("- ")]
    if dash_items:
        return [item for item in dash_items if item]
    normalized = text.replace("\r\n", "\n")
    return [chunk.strip() for chunk in _PARAGRAPH_SPLIT_RE.split(normalized) if chunk.strip()]


class TaskManager:
    def __init__(self, todo_path: Path | str, state_dir: Path | str) -> None:
        self.todo_path = Path(todo_path).resolve()
        self.state_dir = Path(state_dir).resolve()
        self.tasks_dir = self.state_dir / TASKS_DIRNAME
        self.state_path = self.state_dir / STATE_FILENAME
        self._tasks: list[str] = []
        self._current = 0
        self._done: list[bool] = []

    def init(self) -> None:
        self.tasks_dir.mkdir(parents=True, exist_ok=True)
        if self.state_path.exists():
            try:
                self._load_existing()
            except (OSError, ValueError) as exc:
                _logger.warning("task_state_rebuilt", path=str(self.state_path), error=str(exc))
                self._prepare_from_todo()
        else:
            self._prepare_from_todo()
        _logger.info("tasks_loaded", total=self.total, current=self._current)

    @property
    def total(self) -> int:
        return len(self._tasks)

    @property
    def current_index(self) -> int:
        return self._current

    @property
    def done(self) -> tuple[bool, ...]:
        return tuple(self._done)

    def current_task(self) -> str | None:
        if self._current >= len(self._tasks):
            return None
        return self._tasks[self._current]

    def mark_current_done(self) -> None:
        if self._current >= len(self._tasks):
            return
        self._done[self._current] = True
        index = self._current + 1
        while index < len(self._tasks) and self._done[index]:
            index += 1
        self._current = index
        self._save_state()

    def is_finished(self) -> bool:
        return self._current >= len(self._tasks)

    def _load_existing(self) -> None:
        payload = json.loads(self.state_path.read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise TaskStateError("state.json must contain an object")
        current = payload.get("current")
        done = payload.get("done")
        if isinstance(current, bool) or not isinstance(current, int) or current < 0:
            raise TaskStateError("state.current must be a non-negative integer")
        if not isinstance(done, list) or not all(isinstance(item, bool) for item in done):
            raise TaskStateError("state.done must be a list of booleans")

        files = sorted(
            item
            for item in self.tasks_dir.iterdir()
            if item.is_file() and _TASK_FILE_RE.match(item.name)
        )
        if len(files) != len(done):
            raise TaskStateError(
                f"state.done has {len(done)} entries but {len(files)} task files exist"
            )
        self._tasks = [item.read_text(encoding="utf-8") for item in files]
        self._done = list(done)
        self._current = min(current, len(self._tasks))

    def _prepare_from_todo(self) -> None:
        self._tasks = []
        self._done = []
        self._current = 0
        for stale in self.tasks_dir.glob("task_*.md"):
            stale.unlink()

        if self.todo_path.is_file():
            items = parse_todo(self.todo_path.read_text(encoding="utf-8"))
        else:
            _logger.info("todo_missing", path=str(self.todo_path))
            items = []

        for index, item in enumerate(items, start=1):
            atomic_write(self.tasks_dir / f"task_{index:03d}.md", item)
            self._tasks.append(item)
            self._done.append(False)
        self._save_state()

    def _save_state(self) -> None:
        state = {"current": self._current, "done": self._done}
        atomic_write(self.state_path, json.dumps(state, indent=2) + "\n", create_parents=True)


__all__ = ["TaskManager", "TaskStateError", "parse_todo"]
