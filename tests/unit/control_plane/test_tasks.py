"""Unit tests for todo parsing and persistent task progress."""

from __future__ import annotations

import json
from pathlib import Path

from boxsafe.control_plane.tasks import TaskManager, parse_todo


def _manager(tmp_path: Path, todo: str | None) -> TaskManager:
    todo_path = tmp_path / "TODO.md"
    if todo is not None:
        todo_path.write_text(todo, encoding="utf-8")
    manager = TaskManager(todo_path, tmp_path / "state")
    manager.init()
    return manager


def test_dash_items_win_over_paragraphs() -> None:
    text = "# Backlog\n\n- parse csv\n- \n- sum columns\nnot a task\n"

    assert parse_todo(text) == ["parse csv", "sum columns"]


def test_paragraphs_are_tasks_without_dash_items() -> None:
    text = "Write a parser\nfor csv.\r\n\r\n  \nPrint totals.\n"

    assert parse_todo(text) == ["Write a parser\nfor csv.", "Print totals."]


def test_init_writes_numbered_task_files_and_state(tmp_path: Path) -> None:
    manager = _manager(tmp_path, "- one\n- two\n- three\n")

    files = sorted(path.name for path in manager.tasks_dir.iterdir())
    assert files == ["task_001.md", "task_002.md", "task_003.md"]
    assert (manager.tasks_dir / "task_002.md").read_text(encoding="utf-8") == "two"
    assert json.loads(manager.state_path.read_text(encoding="utf-8")) == {
        "current": 0,
        "done": [False, False, False],
    }
    assert manager.current_task() == "one"


def test_progress_survives_a_new_manager(tmp_path: Path) -> None:
    manager = _manager(tmp_path, "- one\n- two\n")
    manager.mark_current_done()

    resumed = _manager(tmp_path, "- changed\n")

    assert resumed.current_index == 1
    assert resumed.current_task() == "two"
    assert resumed.done == (True, False)


def test_marking_every_task_finishes(tmp_path: Path) -> None:
    manager = _manager(tmp_path, "- one\n- two\n")

    manager.mark_current_done()
    manager.mark_current_done()
    manager.mark_current_done()

    assert manager.is_finished()
    assert manager.current_task() is None
    assert manager.done == (True, True)


def test_corrupt_state_is_rebuilt_from_todo(tmp_path: Path) -> None:
    manager = _manager(tmp_path, "- one\n- two\n")
    manager.state_path.write_text('{"current": 0, "done": [true]}', encoding="utf-8")

    rebuilt = _manager(tmp_path, "- alpha\n")

    assert rebuilt.total == 1
    assert rebuilt.current_task() == "alpha"
    assert sorted(path.name for path in rebuilt.tasks_dir.iterdir()) == ["task_001.md"]


def test_missing_todo_yields_no_tasks(tmp_path: Path) -> None:
    manager = _manager(tmp_path, None)

    assert manager.total == 0
    assert manager.is_finished()
