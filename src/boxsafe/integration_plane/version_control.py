"""Git-backed version control: stage everything, commit, optionally write notes and push."""

from __future__ import annotations

import os
import re
import subprocess
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any, Final, TypeAlias
from urllib.parse import quote

import structlog

from boxsafe.constants import GIT_TOKEN_ENV_NAMES, VERSION_NOTES_FILENAME
from boxsafe.observability.logging import redact_text

DEFAULT_COMMIT_MESSAGE: Final[str] = "chore: automated changes by boxsafe agent"
NOTES_COMMIT_MESSAGE: Final[str] = "chore: add versioning notes by boxsafe agent"
_DEFAULT_IDENTITY_NAME: Final[str] = "boxsafe"
_DEFAULT_IDENTITY_EMAIL: Final[str] = "boxsafe@example.invalid"
_IDENTITY_EMAIL_ENV: Final[str] = "EMAIL_GIT"
_UPSTREAM_HINT_RE: Final[re.Pattern[str]] = re.compile(
    r"no upstream|set upstream|no tracking information|failed to push some refs"
)

_logger = structlog.get_logger(__name__)

CredentialLookup: TypeAlias = Callable[[], "str | None"]


class VersionControlError(RuntimeError):
    """Base error for version-control failures."""


class NotARepositoryError(VersionControlError):
    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"not a git repository: {path.as_posix()}")


class GitCommandError(VersionControlError):
    """Raised when a git subprocess command exits non-zero."""

    def __init__(
        self,
        *,
        command: Sequence[str],
        returncode: int,
        stdout: str,
        stderr: str,
    ) -> None:
        self.command = tuple(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        message = f"git command failed ({returncode}): {' '.join(command)}"
        if stderr.strip():
            message = f"{message}: {stderr.strip()}"
        super().__init__(redact_text(message))


class VersionControlReason(StrEnum):
    NO_CHANGES = "no-changes"
    NO_REMOTE = "no-remote"
    AUTH_NEEDED = "auth-needed"
    PUSH_FAILED = "push-failed"


@dataclass(frozen=True, slots=True)
class CommandResult:
    command: tuple[str, ...]
    cwd: str
    returncode: int
    stdout: str
    stderr: str


@dataclass(frozen=True, slots=True)
class VersionControlRequest:
    repo_path: Path
    commit_message: str = DEFAULT_COMMIT_MESSAGE
    auto_push: bool = False
    generate_notes: bool = False


@dataclass(frozen=True, slots=True)
class VersionControlResult:
    committed: bool
    pushed: bool = False
    reason: VersionControlReason | None = None
    note: str | None = None
    push_stderr: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"committed": self.committed, "pushed": self.pushed}
        if self.reason is not None:
            payload["reason"] = self.reason.value
        if self.note is not None:
            payload["note"] = self.note
        if self.push_stderr is not None:
            payload["push_stderr"] = self.push_stderr
        return payload


def environment_token_lookup(environ: Mapping[str, str] | None = None) -> CredentialLookup:
    """Credential lookup reading the first non-empty git token variable."""

    def lookup() -> str | None:
        env = os.environ if environ is None else environ
        for name in GIT_TOKEN_ENV_NAMES:
            value = env.get(name, "").strip()
            if value:
                return value
        return None

    return lookup


def inject_token(remote_url: str, token: str) -> str | None:
    if not remote_url.startswith("https://"):
        return None
    return f"https://{quote(token, safe='')}@{remote_url.removeprefix('https://')}"


class GitVersionControl:
    """Synchronous git client; callers on the event loop wrap it in ``asyncio.to_thread``."""

    def __init__(
        self,
        *,
        credential_lookup: CredentialLookup | None = None,
        env_overrides: Mapping[str, str] | None = None,
    ) -> None:
        self._credential_lookup = (
            credential_lookup if credential_lookup is not None else environment_token_lookup()
        )
        self._env_overrides = dict(env_overrides or {})

    def run_version_control(self, request: VersionControlRequest) -> VersionControlResult:
        repo = Path(request.repo_path).resolve()
        if not self._is_repository(repo):
            raise NotARepositoryError(repo)
        message = request.commit_message.strip() or DEFAULT_COMMIT_MESSAGE

        self._ensure_identity(repo)
        self._run_git(["add", "-A"], cwd=repo)
        if not self._run_git(["status", "--porcelain"], cwd=repo).stdout.strip():
            _logger.info("version_control_no_changes", repo=repo.as_posix())
            return VersionControlResult(committed=False, reason=VersionControlReason.NO_CHANGES)

        self._run_git(["commit", "--no-gpg-sign", "-m", message], cwd=repo)
        _logger.info("version_control_committed", repo=repo.as_posix())

        if request.generate_notes:
            self._write_notes(repo, message)

        if not request.auto_push:
            return VersionControlResult(committed=True)
        return self._push(repo)

    def _push(self, repo: Path) -> VersionControlResult:
        remote = self._run_git(["remote", "get-url", "origin"], cwd=repo, check=False)
        remote_url = remote.stdout.strip()
        if remote.returncode != 0 or not remote_url:
            return VersionControlResult(
                committed=True, pushed=False, reason=VersionControlReason.NO_REMOTE
            )

        first = self._run_git(["push", "origin", "HEAD"], cwd=repo, check=False)
        if first.returncode == 0:
            _logger.info("version_control_pushed", repo=repo.as_posix())
            return VersionControlResult(committed=True, pushed=True)

        branch = self._run_git(
            ["rev-parse", "--abbrev-ref", "HEAD"], cwd=repo, check=False
        ).stdout.strip()
        if branch and _UPSTREAM_HINT_RE.search(first.stderr.lower()):
            upstream = self._run_git(
                ["push", "--set-upstream", "origin", branch], cwd=repo, check=False
            )
            if upstream.returncode == 0:
                _logger.info("version_control_pushed", repo=repo.as_posix(), note="set-upstream")
                return VersionControlResult(committed=True, pushed=True, note="set-upstream")

        token = self._credential_lookup()
        if not token:
            _logger.warning("version_control_auth_needed", repo=repo.as_posix())
            return VersionControlResult(
                committed=True,
                pushed=False,
                reason=VersionControlReason.AUTH_NEEDED,
                push_stderr=redact_text(first.stderr.strip()),
            )

        injected = inject_token(remote_url, token)
        if injected is None:
            return VersionControlResult(
                committed=True,
                pushed=False,
                reason=VersionControlReason.PUSH_FAILED,
                push_stderr="remote-not-https",
            )
        target_branch = branch or "HEAD"
        with_token = self._run_git(
            ["push", injected, f"HEAD:refs/heads/{target_branch}"], cwd=repo, check=False
        )
        if with_token.returncode == 0:
            _logger.info("version_control_pushed", repo=repo.as_posix(), note="pushed-with-token")
            return VersionControlResult(committed=True, pushed=True, note="pushed-with-token")
        stderr = redact_text(with_token.stderr.replace(token, "***").strip())
        _logger.warning("version_control_push_failed", repo=repo.as_posix(), stderr=stderr)
        return VersionControlResult(
            committed=True,
            pushed=False,
            reason=VersionControlReason.PUSH_FAILED,
            push_stderr=stderr,
        )

    def _write_notes(self, repo: Path, message: str) -> None:
        summary = self._run_git(
            ["show", "--name-only", "--pretty=format:%B", "HEAD"], cwd=repo, check=False
        ).stdout.strip()
        notes_path = repo / VERSION_NOTES_FILENAME
        notes = (
            "# BOXSAFE Versioning Notes\n\n"
            f"Commit message:\n\n{message}\n\n"
            f"Summary:\n\n{summary}\n"
        )
        try:
            notes_path.write_text(notes, encoding="utf-8")
            self._run_git(["add", "--", VERSION_NOTES_FILENAME], cwd=repo)
            self._run_git(["commit", "--no-gpg-sign", "-m", NOTES_COMMIT_MESSAGE], cwd=repo)
        except (OSError, GitCommandError) as exc:
            # The main commit already landed; a notes failure leaves it in place.
            _logger.warning("version_control_notes_failed", repo=repo.as_posix(), error=str(exc))

    def _is_repository(self, repo: Path) -> bool:
        if not repo.is_dir():
            return False
        probe = self._run_git(["rev-parse", "--is-inside-work-tree"], cwd=repo, check=False)
        return probe.returncode == 0 and probe.stdout.strip() == "true"

    def _ensure_identity(self, repo: Path) -> None:
        if self._run_git(["config", "user.email"], cwd=repo, check=False).returncode != 0:
            email = os.environ.get(_IDENTITY_EMAIL_ENV, "").strip() or _DEFAULT_IDENTITY_EMAIL
            self._run_git(["config", "--local", "user.email", email], cwd=repo)
        if self._run_git(["config", "user.name"], cwd=repo, check=False).returncode != 0:
            self._run_git(["config", "--local", "user.name", _DEFAULT_IDENTITY_NAME], cwd=repo)

    def _run_git(
        self,
        args: Sequence[str],
        *,
        cwd: Path,
        check: bool = True,
    ) -> CommandResult:
        command = ("git", *args)
        env = os.environ.copy()
        env["GIT_TERMINAL_PROMPT"] = "0"
        env.update(self._env_overrides)

        try:
            completed = subprocess.run(
                command,
                cwd=cwd,
                env=env,
                text=True,
                capture_output=True,
                check=False,
            )
        except OSError as exc:
            raise VersionControlError(f"failed to run git: {exc}") from exc

        result = CommandResult(
            command=command,
            cwd=cwd.as_posix(),
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )
        if check and result.returncode != 0:
            raise GitCommandError(
                command=result.command,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result


__all__ = [
    "DEFAULT_COMMIT_MESSAGE",
    "CommandResult",
    "CredentialLookup",
    "GitCommandError",
    "GitVersionControl",
    "NotARepositoryError",
    "VersionControlError",
    "VersionControlReason",
    "VersionControlRequest",
    "VersionControlResult",
    "environment_token_lookup",
    "inject_token",
]
