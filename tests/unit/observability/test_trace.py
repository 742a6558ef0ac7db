"""Unit tests for the per-run JSON-lines trace log."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

import pytest

from boxsafe.observability.trace import (
    TraceLogger,
    TraceSink,
    resolve_retention,
    resolve_run_id,
)


@dataclass(frozen=True)
class _Snapshot:
    name: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name}


def _lines(path: Path) -> list[dict[str, object]]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_emit_appends_one_object_per_event(tmp_path: Path) -> None:
    trace = TraceLogger(tmp_path, run_id="run-a", environ={})

    trace.emit("loop_start", {"budget": 3})
    trace.emit("score", {"ok": False, "snapshot": _Snapshot("s"), "tags": ("x",)}, iteration=2)
    trace.emit("loop_end")

    assert isinstance(trace, TraceSink)
    assert trace.path == tmp_path / "trace-run-a.jsonl"
    first, second, third = _lines(trace.path)
    assert first["event"] == "loop_start"
    assert first["run_id"] == "run-a"
    assert str(first["ts"]).endswith("Z")
    assert "iter" not in first
    assert second["iter"] == 2
    assert second["data"] == {"ok": False, "snapshot": {"name": "s"}, "tags": ["x"]}
    assert "data" not in third


def test_emit_redacts_and_truncates(tmp_path: Path) -> None:
    trace = TraceLogger(tmp_path, run_id="run-b", environ={})

    trace.emit("exec_end", {"stdout": "y" * 9000, "token": "abc", "stderr": "api_key=zzz"})

    (entry,) = _lines(trace.path)
    data = entry["data"]
    assert isinstance(data, dict)
    assert str(data["stdout"]).endswith("...[truncated]")
    assert len(str(data["stdout"])) == 8192 + len("...[truncated]")
    assert data["token"] == "***REDACTED***"
    assert data["stderr"] == "api_key=***REDACTED***"


def test_write_failures_are_swallowed(tmp_path: Path) -> None:
    trace = TraceLogger(tmp_path, run_id="run-c", environ={})
    trace.path.mkdir()

    trace.emit("loop_start")

    assert trace.path.is_dir()


def test_prune_keeps_newest_files_and_reserves_current_slot(tmp_path: Path) -> None:
    for index in range(5):
        stale = tmp_path / f"trace-old-{index}.jsonl"
        stale.write_text("{}\n", encoding="utf-8")
        os.utime(stale, (1_000 + index, 1_000 + index))
    (tmp_path / "unrelated.txt").write_text("keep", encoding="utf-8")

    TraceLogger(tmp_path, run_id="run-new", retain=3, environ={})

    remaining = sorted(path.name for path in tmp_path.iterdir())
    assert remaining == ["trace-old-3.jsonl", "trace-old-4.jsonl", "unrelated.txt"]


def test_run_id_precedence() -> None:
    assert resolve_run_id("explicit", {"BOXSAFE_RUN_ID": "env"}) == "explicit"
    assert resolve_run_id(None, {"BOXSAFE_RUN_ID": " from-env "}) == "from-env"
    assert resolve_run_id(None, {}).startswith("run-")
    with pytest.raises(ValueError):
        resolve_run_id("../escape", {})


def test_retention_environment_wins_when_valid() -> None:
    assert resolve_retention(5, {"BOXSAFE_TRACE_RETAIN": "2"}) == 2
    assert resolve_retention(5, {"BOXSAFE_TRACE_RETAIN": "zero"}) == 5
    assert resolve_retention(None, {"BOXSAFE_TRACE_RETAIN": "0"}) == 20
    with pytest.raises(ValueError):
        resolve_retention(0, {})
