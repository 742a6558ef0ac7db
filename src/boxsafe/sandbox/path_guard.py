"""Workspace containment check for every path a model-generated instruction names."""

from __future__ import annotations

import os
from pathlib import Path

from boxsafe.utils.fs import is_relative_to


class SandboxError(RuntimeError):
    """Base error for sandbox failures."""


class WorkspaceBoundaryError(SandboxError):
    """Raised when a path resolves outside the workspace root."""

    def __init__(self, raw: str, resolved: Path | None = None) -> None:
        self.raw = raw
        self.resolved = resolved
        super().__init__(f"outside workspace boundary: {raw}")


class PathGuard:
    """Resolve paths against a fixed workspace root.

    A path is accepted iff its canonical form (symlinks followed, ``..`` collapsed) is the
    root or a descendant of it. Violations raise instead of being clamped.
    """

    def __init__(self, workspace: Path | str) -> None:
        root = Path(workspace).expanduser().resolve(strict=True)
        if not root.is_dir():
            raise NotADirectoryError(f"{root!s} is not a directory")
        self._root = root

    @property
    def root(self) -> Path:
        return self._root

    def resolve(self, raw: str | os.PathLike[str]) -> Path:
        text = os.fspath(raw)
        if not isinstance(text, str) or not text.strip():
            raise WorkspaceBoundaryError(str(text))
        if "\x00" in text:
            raise WorkspaceBoundaryError(text.replace("\x00", "\\0"))

        candidate = Path(text)
        if not candidate.is_absolute():
            candidate = self._root / candidate
        try:
            resolved = candidate.resolve(strict=False)
        except (OSError, RuntimeError) as exc:
            raise WorkspaceBoundaryError(text) from exc

        if not is_relative_to(resolved, self._root):
            raise WorkspaceBoundaryError(text, resolved)
        return resolved

    def contains(self, raw: str | os.PathLike[str]) -> bool:
        try:
            self.resolve(raw)
        except WorkspaceBoundaryError:
            return False
        return True

    def relative(self, resolved: Path) -> str:
        """Workspace-relative POSIX form of an already resolved path (root is ``.``)."""
        relative = resolved.relative_to(self._root)
        text = relative.as_posix()
        return text or "."


__all__ = [
    "PathGuard",
    "SandboxError",
    "WorkspaceBoundaryError",
]
