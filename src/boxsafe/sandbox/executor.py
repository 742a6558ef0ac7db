"""
boxsafe — command executor

File: src/boxsafe/sandbox/executor.py

Purpose
- Run the artifact's command as a subprocess with a runtime ceiling and shell screening.

Functional requirements
- ``ArgvCommand`` runs without a shell. Plain strings run through the shell after
  ``ShellCommandPolicy`` approves them; a rejected string yields exit code 126 and
  nothing is spawned.
- The process races its deadline and the cancellation token in one ``asyncio.wait``;
  the first to finish decides the outcome. Termination is SIGTERM, then SIGKILL after a
  grace period. Output captured up to that point is kept.
- A spawn failure raises ``CommandSpawnError``; non-zero exits and timeouts are data.
- Every execution overwrites ``<log_dir>/last_command.log`` with a transcript.
"""

from __future__ import annotations

import asyncio
import os
import signal
import time
from collections.abc import Mapping
from contextlib import suppress
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Final, TypeAlias

import structlog

from boxsafe.constants import (
    BLOCKED_EXIT_CODE,
    DEFAULT_COMMAND_TIMEOUT_SECONDS,
    DEFAULT_KILL_GRACE_SECONDS,
    LAST_COMMAND_LOG_NAME,
)
from boxsafe.sandbox.command_policy import ShellCommandPolicy
from boxsafe.sandbox.path_guard import SandboxError
from boxsafe.utils.concurrency import CancellationToken
from boxsafe.utils.fs import atomic_write

_READ_CHUNK_SIZE: Final[int] = 65536
_POSIX: Final[bool] = os.name == "posix"

_logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ArgvCommand:
    """A program plus its arguments, executed without a shell."""

    program: str
    args: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.program.strip():
            raise ValueError("program must not be empty")

    def display(self) -> str:
        return " ".join((self.program, *self.args))


Command: TypeAlias = str | ArgvCommand


@dataclass(frozen=True, slots=True)
class ExecResult:
    """Normalized outcome of one command execution."""

    exit_code: int
    stdout: str
    stderr: str
    timed_out: bool = False
    signal: str | None = None
    blocked: bool = False
    duration_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return not self.timed_out and self.exit_code == 0

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


class CommandSpawnError(SandboxError):
    """The process could not be started at all (missing executable, bad cwd...)."""

    def __init__(self, command: str, cause: OSError) -> None:
        self.command = command
        self.cause = cause
        reason = cause.strerror or str(cause)
        super().__init__(f"failed to spawn command {command!r}: {reason}")


class CommandExecutor:
    """Spawn commands inside the workspace and collect fully buffered output."""

    def __init__(
        self,
        *,
        cwd: Path | str,
        log_dir: Path | str | None = None,
        policy: ShellCommandPolicy | None = None,
        default_timeout_seconds: float = DEFAULT_COMMAND_TIMEOUT_SECONDS,
        kill_grace_seconds: float = DEFAULT_KILL_GRACE_SECONDS,
        env_overrides: Mapping[str, str] | None = None,
        inherit_host_env: bool = True,
    ) -> None:
        root = Path(cwd).resolve(strict=True)
        if not root.is_dir():
            raise NotADirectoryError(f"{root!s} is not a directory")
        if default_timeout_seconds <= 0:
            raise ValueError("default_timeout_seconds must be > 0")
        if kill_grace_seconds < 0:
            raise ValueError("kill_grace_seconds must be >= 0")

        self._cwd = root
        self._log_dir = Path(log_dir) if log_dir is not None else None
        self._policy = policy if policy is not None else ShellCommandPolicy.from_environment()
        self._default_timeout_seconds = float(default_timeout_seconds)
        self._kill_grace_seconds = float(kill_grace_seconds)
        self._env_overrides = dict(env_overrides or {})
        self._inherit_host_env = inherit_host_env

    @property
    def transcript_path(self) -> Path | None:
        if self._log_dir is None:
            return None
        return self._log_dir / LAST_COMMAND_LOG_NAME

    async def execute(
        self,
        command: Command,
        *,
        timeout_seconds: float | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> ExecResult:
        effective_timeout = (
            self._default_timeout_seconds if timeout_seconds is None else float(timeout_seconds)
        )
        if effective_timeout <= 0:
            raise ValueError("timeout_seconds must be > 0")
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        display = command if isinstance(command, str) else command.display()

        if isinstance(command, str):
            decision = self._policy.evaluate(command)
            if not decision.allowed:
                _logger.warning("command_blocked", command=command, reason=decision.reason)
                blocked = ExecResult(
                    exit_code=BLOCKED_EXIT_CODE,
                    stdout="",
                    stderr=f"Blocked potentially unsafe shell command: {command}",
                    blocked=True,
                )
                self._write_transcript(display, blocked)
                return blocked

        started = time.perf_counter()
        process = await self._spawn(command, display)
        _logger.debug("command_started", command=display, pid=process.pid)

        stdout_chunks: list[bytes] = []
        stderr_chunks: list[bytes] = []
        completion = asyncio.create_task(self._drain(process, stdout_chunks, stderr_chunks))
        waiters: set[asyncio.Task[None]] = {completion}
        cancel_wait: asyncio.Task[None] | None = None
        if cancel_token is not None:
            cancel_wait = asyncio.create_task(cancel_token.wait())
            waiters.add(cancel_wait)

        timed_out = False
        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=effective_timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if completion not in done:
                if cancel_wait is not None and cancel_wait in done:
                    _logger.info("command_cancelled", command=display, pid=process.pid)
                    await self._terminate(process, completion)
                    raise asyncio.CancelledError("operation cancelled")
                timed_out = True
                _logger.warning(
                    "command_timed_out",
                    command=display,
                    timeout_seconds=effective_timeout,
                    pid=process.pid,
                )
                await self._terminate(process, completion)
            else:
                completion.result()
        except asyncio.CancelledError:
            await self._terminate(process, completion)
            raise
        finally:
            if cancel_wait is not None:
                cancel_wait.cancel()
                with suppress(asyncio.CancelledError):
                    await cancel_wait

        returncode = process.returncode
        exit_code, signal_name = _normalize_returncode(returncode)
        result = ExecResult(
            exit_code=exit_code,
            stdout=b"".join(stdout_chunks).decode("utf-8", errors="replace"),
            stderr=b"".join(stderr_chunks).decode("utf-8", errors="replace"),
            timed_out=timed_out,
            signal=signal_name,
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        _logger.info(
            "command_finished",
            command=display,
            exit_code=result.exit_code,
            signal=result.signal,
            timed_out=result.timed_out,
            duration_ms=round(result.duration_ms, 3),
        )
        self._write_transcript(display, result)
        return result

    async def _spawn(self, command: Command, display: str) -> asyncio.subprocess.Process:
        env = self._build_environment()
        try:
            if isinstance(command, str):
                return await asyncio.create_subprocess_shell(
                    command,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    cwd=self._cwd,
                    env=env,
                    start_new_session=_POSIX,
                )
            return await asyncio.create_subprocess_exec(
                command.program,
                *command.args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self._cwd,
                env=env,
                start_new_session=_POSIX,
            )
        except OSError as exc:
            _logger.error("command_spawn_failed", command=display, error=str(exc))
            raise CommandSpawnError(display, exc) from exc

    async def _drain(
        self,
        process: asyncio.subprocess.Process,
        stdout_chunks: list[bytes],
        stderr_chunks: list[bytes],
    ) -> None:
        async def _read(stream: asyncio.StreamReader | None, sink: list[bytes]) -> None:
            if stream is None:
                return
            while True:
                chunk = await stream.read(_READ_CHUNK_SIZE)
                if not chunk:
                    break
                sink.append(chunk)

        await asyncio.gather(
            _read(process.stdout, stdout_chunks),
            _read(process.stderr, stderr_chunks),
        )
        await process.wait()

    async def _terminate(
        self,
        process: asyncio.subprocess.Process,
        completion: asyncio.Task[None],
    ) -> None:
        """SIGTERM, wait out the grace period, then SIGKILL; always reap the child."""
        if process.returncode is None:
            _send_signal(process, signal.SIGTERM)
            try:
                await asyncio.wait_for(asyncio.shield(process.wait()), self._kill_grace_seconds)
            except TimeoutError:
                _logger.warning("command_kill_escalated", pid=process.pid)
                _send_signal(process, signal.SIGKILL if _POSIX else signal.SIGTERM)
                with suppress(ProcessLookupError):
                    await process.wait()

        # Pipes normally close with the process; an orphaned grandchild may hold them open.
        try:
            await asyncio.wait_for(asyncio.shield(completion), self._kill_grace_seconds or 0.1)
        except TimeoutError:
            completion.cancel()
            with suppress(asyncio.CancelledError):
                await completion

    def _build_environment(self) -> dict[str, str]:
        if self._inherit_host_env:
            merged = dict(os.environ)
        else:
            merged = {}
            host_path = os.environ.get("PATH")
            if host_path:
                merged["PATH"] = host_path
        merged.update(self._env_overrides)
        return merged

    def _write_transcript(self, display: str, result: ExecResult) -> None:
        target = self.transcript_path
        if target is None:
            return
        lines = [
            f"command={display}",
            f"exitCode={result.exit_code}",
            f"signal={result.signal or ''}",
            f"timedOut={str(result.timed_out).lower()}",
            f"blocked={str(result.blocked).lower()}",
            "stdout:",
            result.stdout,
            "stderr:",
            result.stderr,
        ]
        try:
            atomic_write(target, "\n".join(lines) + "\n", create_parents=True)
        except OSError as exc:
            _logger.warning("command_transcript_write_failed", path=str(target), error=str(exc))


def _send_signal(process: asyncio.subprocess.Process, sig: signal.Signals) -> None:
    with suppress(ProcessLookupError):
        if _POSIX:
            try:
                os.killpg(process.pid, sig)
                return
            except (ProcessLookupError, PermissionError):
                pass
        process.send_signal(sig)


def _normalize_returncode(returncode: int | None) -> tuple[int, str | None]:
    if returncode is None:
        return (128 + int(signal.SIGKILL if _POSIX else signal.SIGTERM), None)
    if returncode < 0:
        signum = -returncode
        try:
            name: str | None = signal.Signals(signum).name
        except ValueError:
            name = str(signum)
        return (128 + signum, name)
    return (returncode, None)


__all__ = [
    "ArgvCommand",
    "Command",
    "CommandExecutor",
    "CommandSpawnError",
    "ExecResult",
]
