"""
boxsafe — workspace-bounded filesystem navigator

File: src/boxsafe/sandbox/navigator.py

Purpose
- list/read/write/mkdir/delete/stat over a single workspace root, for tool calls issued
  by the model.

Functional requirements
- Every path goes through ``PathGuard``; nothing here resolves paths on its own.
- Each operation returns its own success dataclass or the shared ``OperationError``.
  No exception crosses the public methods.
- Reads are size-checked before the file is opened; content round-trips byte-exactly.

Non-functional requirements
- Methods are synchronous and self-contained; async callers use ``asyncio.to_thread``.
"""

from __future__ import annotations

import errno
import functools
import locale
import os
import shutil
import stat
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import Any, Literal, ParamSpec, TypeAlias, TypeVar

import structlog

from boxsafe.constants import DEFAULT_MAX_FILE_SIZE
from boxsafe.sandbox.path_guard import PathGuard, WorkspaceBoundaryError

_P = ParamSpec("_P")
_R = TypeVar("_R")

_logger = structlog.get_logger(__name__)


class NavigatorOperation(StrEnum):
    LIST = "list"
    READ = "read"
    WRITE = "write"
    MKDIR = "mkdir"
    DELETE = "delete"
    STAT = "stat"


class EntryKind(StrEnum):
    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True, slots=True)
class FileSystemEntry:
    """One listing row; optional fields are ``None`` when the entry could not be stat'ed."""

    path: str
    name: str
    kind: EntryKind
    size: int | None = None
    mtime: float | None = None
    readable: bool | None = None
    writable: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class DirectoryListing:
    path: str
    entries: tuple[FileSystemEntry, ...]
    ok: Literal[True] = field(default=True, init=False)

    @property
    def total(self) -> int:
        return len(self.entries)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": True,
            "path": self.path,
            "total": self.total,
            "entries": [entry.to_dict() for entry in self.entries],
        }


@dataclass(frozen=True, slots=True)
class FileReadResult:
    path: str
    content: str
    size: int
    encoding: str = "utf-8"
    ok: Literal[True] = field(default=True, init=False)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class FileWriteResult:
    path: str
    size: int
    created: bool
    ok: Literal[True] = field(default=True, init=False)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class DirectoryCreateResult:
    path: str
    created: bool
    ok: Literal[True] = field(default=True, init=False)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class DeleteResult:
    path: str
    kind: EntryKind
    deleted_at: str
    ok: Literal[True] = field(default=True, init=False)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class MetadataResult:
    path: str
    kind: EntryKind
    size: int | None
    mtime: float
    readable: bool
    writable: bool
    ok: Literal[True] = field(default=True, init=False)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class OperationError:
    """Uniform failure shape shared by every navigator operation."""

    operation: NavigatorOperation
    error: str
    ok: Literal[False] = field(default=False, init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"ok": False, "operation": self.operation.value, "error": self.error}


NavigatorResult: TypeAlias = (
    DirectoryListing
    | FileReadResult
    | FileWriteResult
    | DirectoryCreateResult
    | DeleteResult
    | MetadataResult
    | OperationError
)


class NavigatorFault(Exception):
    """Internal signal converted to ``OperationError`` at the public boundary."""


def _guarded(
    operation: NavigatorOperation,
) -> Callable[[Callable[_P, _R]], Callable[_P, _R | OperationError]]:
    def decorator(func: Callable[_P, _R]) -> Callable[_P, _R | OperationError]:
        @functools.wraps(func)
        def wrapper(*args: _P.args, **kwargs: _P.kwargs) -> _R | OperationError:
            try:
                return func(*args, **kwargs)
            except WorkspaceBoundaryError as exc:
                _logger.warning(
                    "navigator_boundary_rejected", operation=operation.value, path=exc.raw
                )
                return OperationError(operation=operation, error=str(exc))
            except NavigatorFault as exc:
                _logger.debug(
                    "navigator_operation_rejected", operation=operation.value, error=str(exc)
                )
                return OperationError(operation=operation, error=str(exc))
            except OSError as exc:
                message = _describe_os_error(exc)
                _logger.warning("navigator_os_error", operation=operation.value, error=message)
                return OperationError(operation=operation, error=message)
            except Exception as exc:  # noqa: BLE001 - public boundary never raises.
                _logger.exception("navigator_internal_error", operation=operation.value)
                return OperationError(operation=operation, error=f"internal error: {exc}")

        return wrapper

    return decorator


class Navigator:
    """Filesystem operations confined to one workspace."""

    def __init__(
        self,
        workspace: Path | str | PathGuard,
        *,
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
    ) -> None:
        if max_file_size <= 0:
            raise ValueError("max_file_size must be > 0")
        self._guard = workspace if isinstance(workspace, PathGuard) else PathGuard(workspace)
        self._max_file_size = max_file_size

    @property
    def workspace(self) -> Path:
        return self._guard.root

    @property
    def guard(self) -> PathGuard:
        return self._guard

    @property
    def max_file_size(self) -> int:
        return self._max_file_size

    @_guarded(NavigatorOperation.LIST)
    def list_directory(self, path: str = ".") -> DirectoryListing:
        target = self._guard.resolve(path)
        if not target.exists():
            raise NavigatorFault(f"path does not exist: {path}")
        if not target.is_dir():
            raise NavigatorFault(f"not a directory: {path}")

        entries: list[FileSystemEntry] = []
        with os.scandir(target) as iterator:
            for item in iterator:
                entries.append(self._entry_for(target, item))
        entries.sort(key=_listing_sort_key)
        return DirectoryListing(path=self._guard.relative(target), entries=tuple(entries))

    @_guarded(NavigatorOperation.READ)
    def read_file(self, path: str) -> FileReadResult:
        target = self._guard.resolve(path)
        if not target.exists():
            raise NavigatorFault(f"file does not exist: {path}")
        if target.is_dir():
            raise NavigatorFault(f"path is a directory: {path}")
        if not os.access(target, os.R_OK):
            raise NavigatorFault(f"permission denied: {path}")

        size = target.stat().st_size
        if size > self._max_file_size:
            raise NavigatorFault(
                f"file too large: {path} ({size} bytes > limit {self._max_file_size})"
            )

        raw = target.read_bytes()
        try:
            content = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise NavigatorFault(f"file is not valid UTF-8: {path}") from exc
        return FileReadResult(path=self._guard.relative(target), content=content, size=len(raw))

    @_guarded(NavigatorOperation.WRITE)
    def write_file(
        self,
        path: str,
        content: str,
        *,
        append: bool = False,
        create_dirs: bool = False,
    ) -> FileWriteResult:
        target = self._guard.resolve(path)
        created = not target.exists()

        if not created:
            if not target.is_file():
                raise NavigatorFault(f"not a regular file: {path}")
            if not os.access(target, os.W_OK):
                raise NavigatorFault(f"permission denied: {path}")
        else:
            if append:
                raise NavigatorFault(f"append requires an existing file: {path}")
            if not target.parent.exists():
                if not create_dirs:
                    raise NavigatorFault(f"parent directory does not exist: {path}")
                target.parent.mkdir(parents=True, exist_ok=True)
            elif not target.parent.is_dir():
                raise NavigatorFault(f"parent is not a directory: {path}")

        payload = content.encode("utf-8")
        with target.open("ab" if append else "wb") as handle:
            handle.write(payload)

        size = target.stat().st_size
        _logger.debug("navigator_file_written", path=str(target), size=size, created=created)
        return FileWriteResult(path=self._guard.relative(target), size=size, created=created)

    @_guarded(NavigatorOperation.MKDIR)
    def create_directory(self, path: str, *, recursive: bool = True) -> DirectoryCreateResult:
        target = self._guard.resolve(path)
        if target.exists():
            if target.is_dir():
                return DirectoryCreateResult(path=self._guard.relative(target), created=False)
            raise NavigatorFault(f"path exists and is not a directory: {path}")

        try:
            target.mkdir(parents=recursive, exist_ok=False)
        except FileNotFoundError as exc:
            raise NavigatorFault(f"parent directory does not exist: {path}") from exc
        except FileExistsError:
            # Lost a race with a concurrent creator.
            if target.is_dir():
                return DirectoryCreateResult(path=self._guard.relative(target), created=False)
            raise
        return DirectoryCreateResult(path=self._guard.relative(target), created=True)

    @_guarded(NavigatorOperation.DELETE)
    def delete(self, path: str, *, recursive: bool = False) -> DeleteResult:
        resolved = self._guard.resolve(path)
        link = self._symlink_target(path)

        if link is not None:
            relative = self._guard.relative(link)
            link.unlink()
            return DeleteResult(path=relative, kind=EntryKind.FILE, deleted_at=_utc_now())

        if resolved == self._guard.root:
            raise NavigatorFault("refusing to delete the workspace root")
        if not resolved.exists():
            raise NavigatorFault(f"path does not exist: {path}")

        relative = self._guard.relative(resolved)
        if resolved.is_dir():
            if recursive:
                shutil.rmtree(resolved)
            else:
                try:
                    resolved.rmdir()
                except OSError as exc:
                    if exc.errno in (errno.ENOTEMPTY, errno.EEXIST):
                        raise NavigatorFault(
                            f"directory not empty (use recursive delete): {path}"
                        ) from exc
                    raise
            kind = EntryKind.DIRECTORY
        else:
            resolved.unlink()
            kind = EntryKind.FILE

        _logger.info("navigator_path_deleted", path=relative, kind=kind.value, recursive=recursive)
        return DeleteResult(path=relative, kind=kind, deleted_at=_utc_now())

    @_guarded(NavigatorOperation.STAT)
    def get_metadata(self, path: str) -> MetadataResult:
        target = self._guard.resolve(path)
        if not target.exists():
            raise NavigatorFault(f"path does not exist: {path}")

        info = target.stat()
        is_dir = stat.S_ISDIR(info.st_mode)
        return MetadataResult(
            path=self._guard.relative(target),
            kind=EntryKind.DIRECTORY if is_dir else EntryKind.FILE,
            size=None if is_dir else info.st_size,
            mtime=info.st_mtime,
            readable=os.access(target, os.R_OK),
            writable=os.access(target, os.W_OK),
        )

    def _entry_for(self, directory: Path, item: os.DirEntry[str]) -> FileSystemEntry:
        relative = self._guard.relative(directory / item.name)
        try:
            is_dir = item.is_dir()
        except OSError:
            is_dir = False
        kind = EntryKind.DIRECTORY if is_dir else EntryKind.FILE

        try:
            info = item.stat()
        except OSError as exc:
            _logger.warning("navigator_entry_stat_failed", path=relative, error=str(exc))
            return FileSystemEntry(path=relative, name=item.name, kind=kind)

        return FileSystemEntry(
            path=relative,
            name=item.name,
            kind=kind,
            size=None if is_dir else info.st_size,
            mtime=info.st_mtime,
            readable=os.access(item.path, os.R_OK),
            writable=os.access(item.path, os.W_OK),
        )

    def _symlink_target(self, raw: str) -> Path | None:
        """Return the link itself when ``raw`` names a symlink, so delete never follows it."""
        candidate = Path(raw)
        if candidate.name in ("", ".", ".."):
            return None
        if not candidate.is_absolute():
            candidate = self._guard.root / candidate
        parent = self._guard.resolve(candidate.parent)
        lexical = parent / candidate.name
        if lexical.is_symlink():
            return lexical
        return None


def _listing_sort_key(entry: FileSystemEntry) -> tuple[int, str, str]:
    try:
        collated = locale.strxfrm(entry.name)
    except (ValueError, OSError):
        collated = entry.name.casefold()
    return (0 if entry.kind is EntryKind.DIRECTORY else 1, collated, entry.name)


def _describe_os_error(exc: OSError) -> str:
    reason = exc.strerror or exc.__class__.__name__
    if exc.filename:
        return f"{reason}: {exc.filename}"
    return reason


def _utc_now() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


__all__ = [
    "DeleteResult",
    "DirectoryCreateResult",
    "DirectoryListing",
    "EntryKind",
    "FileReadResult",
    "FileSystemEntry",
    "FileWriteResult",
    "MetadataResult",
    "Navigator",
    "NavigatorOperation",
    "NavigatorResult",
    "OperationError",
]
