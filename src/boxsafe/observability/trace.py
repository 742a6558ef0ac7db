"""
boxsafe — per-run trace log

File: src/boxsafe/observability/trace.py

Purpose
- Append one JSON object per loop/dispatch step to ``trace-<run_id>.jsonl``.

Functional requirements
- One append-only file per run id; a run is the only writer of its file.
- Constructing a logger prunes older trace files, keeping the newest ``retain`` by mtime.
- Trace write failures are logged and swallowed; tracing never changes loop behavior.
"""

from __future__ import annotations

import json
import math
import os
import threading
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final, Protocol, runtime_checkable

import structlog

from boxsafe.constants import DEFAULT_TRACE_RETAIN, ENV_RUN_ID, ENV_TRACE_RETAIN
from boxsafe.domain.ids import generate_run_id, validate_run_token
from boxsafe.observability.logging import redact_value
from boxsafe.utils.fs import newest_first

TRACE_FILE_PREFIX: Final[str] = "trace-"
TRACE_FILE_SUFFIX: Final[str] = ".jsonl"
_MAX_STRING_LENGTH: Final[int] = 8192

_logger = structlog.get_logger(__name__)


@runtime_checkable
class TraceSink(Protocol):
    """Receiver for structured step events."""

    def emit(
        self,
        event: str,
        data: Mapping[str, object] | None = None,
        *,
        iteration: int | None = None,
    ) -> None: ...


class TraceLogger:
    """JSON-lines trace writer bound to a single run id."""

    def __init__(
        self,
        log_dir: Path | str,
        *,
        run_id: str | None = None,
        retain: int | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        env = os.environ if environ is None else environ
        self._log_dir = Path(log_dir)
        self._run_id = resolve_run_id(run_id, env)
        self._retain = resolve_retention(retain, env)
        self._path = self._log_dir / f"{TRACE_FILE_PREFIX}{self._run_id}{TRACE_FILE_SUFFIX}"
        self._lock = threading.Lock()
        self._log_dir.mkdir(parents=True, exist_ok=True)
        self.prune()

    @property
    def run_id(self) -> str:
        return self._run_id

    @property
    def path(self) -> Path:
        return self._path

    def emit(
        self,
        event: str,
        data: Mapping[str, object] | None = None,
        *,
        iteration: int | None = None,
    ) -> None:
        entry: dict[str, Any] = {
            "ts": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "run_id": self._run_id,
            "event": event,
        }
        if iteration is not None:
            entry["iter"] = iteration
        if data:
            entry["data"] = redact_value(_as_json_value(data))

        line = json.dumps(entry, sort_keys=True, ensure_ascii=False, separators=(",", ":"))
        try:
            with self._lock, self._path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
        except OSError as exc:
            _logger.warning("trace_write_failed", path=str(self._path), error=str(exc))

    def prune(self) -> tuple[Path, ...]:
        """Delete trace files beyond the newest ``retain``; the current run's file is kept."""
        candidates = [
            item
            for item in self._log_dir.glob(f"{TRACE_FILE_PREFIX}*{TRACE_FILE_SUFFIX}")
            if item.is_file()
        ]
        ordered = newest_first(candidates)
        # The current run has not written yet, so reserve a slot for it.
        keep = max(self._retain - 1, 0)
        removed: list[Path] = []
        for stale in ordered[keep:]:
            if stale == self._path:
                continue
            try:
                stale.unlink()
            except OSError as exc:
                _logger.warning("trace_prune_failed", path=str(stale), error=str(exc))
                continue
            removed.append(stale)
        if removed:
            _logger.debug("trace_pruned", removed=len(removed), retain=self._retain)
        return tuple(removed)


def resolve_run_id(run_id: str | None, environ: Mapping[str, str]) -> str:
    if run_id is not None:
        return validate_run_token(run_id)
    from_env = environ.get(ENV_RUN_ID, "").strip()
    if from_env:
        return validate_run_token(from_env)
    return generate_run_id()


def resolve_retention(retain: int | None, environ: Mapping[str, str]) -> int:
    raw = environ.get(ENV_TRACE_RETAIN, "").strip()
    if raw:
        try:
            parsed = int(raw)
        except ValueError:
            parsed = 0
        if parsed >= 1:
            return parsed
        _logger.warning("trace_retain_env_ignored", value=raw)
    if retain is None:
        return DEFAULT_TRACE_RETAIN
    if retain < 1:
        raise ValueError("retain must be >= 1")
    return retain


def _as_json_value(value: object) -> Any:
    if value is None or isinstance(value, (bool, int)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, str):
        if len(value) > _MAX_STRING_LENGTH:
            return value[:_MAX_STRING_LENGTH] + "...[truncated]"
        return value
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_as_json_value(item) for item in value]
    if isinstance(value, Mapping):
        return {str(key): _as_json_value(item) for key, item in value.items()}
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return _as_json_value(to_dict())
    return str(value)


__all__ = [
    "TRACE_FILE_PREFIX",
    "TRACE_FILE_SUFFIX",
    "TraceLogger",
    "TraceSink",
    "resolve_retention",
    "resolve_run_id",
]
