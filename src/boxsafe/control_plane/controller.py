"""
boxsafe — iteration controller

File: src/boxsafe/control_plane/controller.py

Purpose
- Drive the generate -> execute -> validate -> iterate cycle for one objective, and for
  each pending task of a ``TaskManager``.

Functional requirements
- One iteration: cancellation check, generation, optional markdown persistence, code
  extraction, atomic artifact write, execution, scoring, tool-call dispatch.
- Missing code consumes the iteration; the next prompt carries the guidance text and the
  response's tool calls are still dispatched.
- A failed verdict feeds a corrective prompt into the next generation; the loop stops on
  success or when the iteration budget (``None`` = unbounded) runs out.
- ``ProviderError`` and ``CommandSpawnError`` end the run as ``aborted``; cancellation
  through the token ends it as ``cancelled``.
- Version control runs before the loop and after a successful run when enabled.

Non-functional requirements
- The workspace root is fixed for the controller's lifetime.
- Only the iteration count and the last verdict survive an iteration; records are logged
  and traced, then dropped.
"""

from __future__ import annotations

import asyncio
import os
import stat
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any, Final

import structlog

from boxsafe.config.settings import BoxSafeSettings, VersionControlSettings
from boxsafe.constants import PLACEHOLDER_RUN_COMMAND
from boxsafe.control_plane.feedback import build_missing_code_prompt, build_retry_prompt
from boxsafe.control_plane.run_command import derive_run_command
from boxsafe.control_plane.tasks import TaskManager
from boxsafe.domain.languages import artifact_extension
from boxsafe.integration_plane.version_control import (
    DEFAULT_COMMIT_MESSAGE,
    GitCommandError,
    GitVersionControl,
    VersionControlError,
    VersionControlRequest,
)
from boxsafe.observability.logging import run_context
from boxsafe.observability.trace import TraceLogger, TraceSink
from boxsafe.sandbox.command_policy import ShellCommandPolicy
from boxsafe.sandbox.executor import ArgvCommand, CommandExecutor, CommandSpawnError, ExecResult
from boxsafe.sandbox.navigator import Navigator
from boxsafe.sandbox.path_guard import PathGuard
from boxsafe.synthesis_plane.code_extraction import code_not_found_prompt, extract_code
from boxsafe.synthesis_plane.dispatch import (
    DispatchContext,
    ToolDispatcher,
    ToolOutcome,
    VersionControlRunner,
)
from boxsafe.synthesis_plane.providers import ModelProvider, ProviderError, create_provider
from boxsafe.synthesis_plane.tool_calls import ToolCall, ToolCallParseError, parse_tool_calls
from boxsafe.utils.concurrency import CancellationToken, await_unless_cancelled
from boxsafe.utils.fs import atomic_write
from boxsafe.utils.retry import RetryPolicy, SleepFn, run_with_retries
from boxsafe.verification_plane.policy import resolve_scoring_policy
from boxsafe.verification_plane.scorer import OutcomeScorer, ScoreVerdict

CODE_NOT_FOUND_REASON: Final[str] = "code not found in model response"
BEFORE_RUN_COMMIT_MESSAGE: Final[str] = "chore: snapshot before boxsafe run"

_logger = structlog.get_logger(__name__)


class LoopOutcome(StrEnum):
    SUCCESS = "success"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"
    ABORTED = "aborted"


@dataclass(frozen=True, slots=True)
class IterationRecord:
    """Everything one iteration produced; traced and logged, never retained."""

    iteration: int
    prompt: str
    artifact_path: Path | None
    exec_result: ExecResult | None = None
    verdict: ScoreVerdict | None = None
    failure_reason: str | None = None
    tool_outcomes: tuple[ToolOutcome, ...] = ()
    tool_errors: tuple[ToolCallParseError, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.verdict is not None and self.verdict.ok

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "iteration": self.iteration,
            "prompt_length": len(self.prompt),
            "artifact_path": str(self.artifact_path) if self.artifact_path else None,
            "tool_outcomes": [outcome.to_dict() for outcome in self.tool_outcomes],
            "tool_errors": [error.error for error in self.tool_errors],
        }
        if self.exec_result is not None:
            payload["exec_result"] = self.exec_result.to_dict()
        if self.verdict is not None:
            payload["verdict"] = self.verdict.to_dict()
        if self.failure_reason is not None:
            payload["failure_reason"] = self.failure_reason
        return payload


@dataclass(frozen=True, slots=True)
class LoopResult:
    outcome: LoopOutcome
    iterations: int
    verdict: ScoreVerdict | None = None
    artifact_path: Path | None = None
    error: str | None = None
    cause: BaseException | None = field(default=None, repr=False, compare=False)

    @property
    def succeeded(self) -> bool:
        return self.outcome is LoopOutcome.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "iterations": self.iterations,
            "verdict": self.verdict.to_dict() if self.verdict is not None else None,
            "artifact_path": str(self.artifact_path) if self.artifact_path else None,
            "error": self.error,
        }


@dataclass(frozen=True, slots=True)
class TaskRunSummary:
    results: tuple[LoopResult, ...] = field(default_factory=tuple)
    completed: int = 0
    remaining: int = 0

    @property
    def finished(self) -> bool:
        return self.remaining == 0


class IterationController:
    """Controller coordinating generate -> execute -> score -> dispatch -> retry."""

    def __init__(
        self,
        *,
        workspace: Path | str,
        provider: ModelProvider,
        executor: CommandExecutor,
        dispatcher: ToolDispatcher,
        scorer: OutcomeScorer | None = None,
        language: str = "py",
        artifact_path: Path | str | None = None,
        run_command: str = PLACEHOLDER_RUN_COMMAND,
        max_iterations: int | None = 10,
        command_timeout_seconds: float | None = None,
        generated_markdown_path: Path | str | None = None,
        version_control: VersionControlRunner | None = None,
        version_control_settings: VersionControlSettings | None = None,
        trace: TraceSink | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        if max_iterations is not None and max_iterations < 1:
            raise ValueError("max_iterations must be >= 1 or None")
        self._guard = PathGuard(workspace)
        self._provider = provider
        self._executor = executor
        self._dispatcher = dispatcher
        self._scorer = scorer if scorer is not None else OutcomeScorer()
        self._language = language
        self._artifact_path = self._guard.resolve(
            artifact_path if artifact_path is not None else f"out.{artifact_extension(language)}"
        )
        self._run_command = run_command
        self._max_iterations = max_iterations
        self._command_timeout_seconds = command_timeout_seconds
        self._generated_markdown_path = (
            Path(generated_markdown_path) if generated_markdown_path is not None else None
        )
        self._version_control = version_control
        self._vc_settings = (
            version_control_settings
            if version_control_settings is not None
            else VersionControlSettings()
        )
        self._trace = trace
        self._retry_policy = retry_policy if retry_policy is not None else RetryPolicy()
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: BoxSafeSettings,
        *,
        provider: ModelProvider | None = None,
        trace: TraceSink | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> IterationController:
        """Wire the default collaborators for ``settings``."""
        env = os.environ if environ is None else environ
        workspace = settings.workspace
        navigator = (
            Navigator(workspace, max_file_size=settings.max_file_size)
            if settings.navigator_enabled
            else None
        )
        version_control = GitVersionControl() if settings.version_control.authorized else None
        if trace is None:
            trace = TraceLogger(settings.log_dir, retain=settings.trace_retain, environ=env)
        executor = CommandExecutor(
            cwd=workspace,
            log_dir=settings.log_dir,
            policy=ShellCommandPolicy.from_environment(
                configured_allow_unsafe=settings.allow_unsafe_shell, environ=env
            ),
            default_timeout_seconds=settings.command_timeout_seconds,
            kill_grace_seconds=settings.kill_grace_seconds,
        )
        dispatcher = ToolDispatcher(
            workspace=navigator.guard if navigator is not None else workspace,
            navigator=navigator,
            version_control=version_control,
            version_control_settings=settings.version_control,
            trace=trace,
        )
        return cls(
            workspace=workspace,
            provider=(
                provider
                if provider is not None
                else create_provider(settings.model, language=settings.language, environ=env)
            ),
            executor=executor,
            dispatcher=dispatcher,
            scorer=OutcomeScorer(resolve_scoring_policy(settings.scoring, environ=env)),
            language=settings.language,
            artifact_path=settings.artifact_path,
            run_command=settings.run_command,
            max_iterations=settings.max_iterations,
            command_timeout_seconds=settings.command_timeout_seconds,
            generated_markdown_path=settings.generated_markdown_path,
            version_control=version_control,
            version_control_settings=settings.version_control,
            trace=trace,
        )

    @property
    def workspace(self) -> Path:
        return self._guard.root

    @property
    def artifact_path(self) -> Path:
        return self._artifact_path

    @property
    def max_iterations(self) -> int | None:
        return self._max_iterations

    async def run(
        self,
        prompt: str,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> LoopResult:
        if not prompt.strip():
            raise ValueError("prompt cannot be empty")

        budget = "infinity" if self._max_iterations is None else self._max_iterations
        _logger.info("loop_started", budget=budget, language=self._language)
        self._emit("loop_start", {"budget": budget, "language": self._language})

        iterations = 0
        verdict: ScoreVerdict | None = None
        next_prompt = prompt
        try:
            if self._vc_settings.before:
                await self._commit_workspace(BEFORE_RUN_COMMIT_MESSAGE, phase="before")

            while self._max_iterations is None or iterations < self._max_iterations:
                iterations += 1
                with run_context(iteration=iterations):
                    record = await self._run_iteration(
                        iterations, next_prompt, cancel_token=cancel_token
                    )
                self._emit("iteration_end", record.to_dict(), iteration=iterations)
                if record.verdict is not None:
                    verdict = record.verdict
                if record.succeeded:
                    if self._vc_settings.after:
                        await self._commit_workspace(DEFAULT_COMMIT_MESSAGE, phase="after")
                    return self._finish(LoopOutcome.SUCCESS, iterations, verdict)
                next_prompt = self._next_prompt(prompt, record)
        except asyncio.CancelledError:
            if cancel_token is None or not cancel_token.is_cancelled:
                raise
            return self._finish(
                LoopOutcome.CANCELLED, iterations, verdict, error="operation cancelled"
            )
        except (ProviderError, CommandSpawnError) as exc:
            return self._finish(
                LoopOutcome.ABORTED, iterations, verdict, error=str(exc), cause=exc
            )

        return self._finish(LoopOutcome.EXHAUSTED, iterations, verdict)

    async def run_tasks(
        self,
        task_manager: TaskManager,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> TaskRunSummary:
        """Run each pending task as its own loop; stop at the first one that does not succeed."""
        results: list[LoopResult] = []
        completed = 0
        while not task_manager.is_finished():
            task = task_manager.current_task()
            if task is None:
                break
            index = task_manager.current_index
            _logger.info("task_started", task=index + 1, total=task_manager.total)
            self._emit("task_start", {"task": index + 1, "total": task_manager.total})
            with run_context(task=index + 1):
                result = await self.run(task, cancel_token=cancel_token)
            results.append(result)
            self._emit("task_end", {"task": index + 1, **result.to_dict()})
            if not result.succeeded:
                _logger.warning("task_stopped", task=index + 1, outcome=result.outcome.value)
                break
            task_manager.mark_current_done()
            completed += 1

        remaining = sum(1 for done in task_manager.done if not done)
        return TaskRunSummary(results=tuple(results), completed=completed, remaining=remaining)

    async def _run_iteration(
        self,
        iteration: int,
        prompt: str,
        *,
        cancel_token: CancellationToken | None,
    ) -> IterationRecord:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        self._emit("generate_start", {"prompt_length": len(prompt)}, iteration=iteration)
        markdown = await await_unless_cancelled(self._provider.generate(prompt), cancel_token)
        self._emit("generate_end", {"response_length": len(markdown)}, iteration=iteration)
        if self._generated_markdown_path is not None:
            atomic_write(self._generated_markdown_path, markdown, create_parents=True)

        extraction = extract_code(markdown, self._language)
        parsed = parse_tool_calls(markdown)
        for error in parsed.errors:
            _logger.warning("tool_call_rejected", error=error.error)

        if not extraction.found or extraction.code is None:
            _logger.warning("code_not_found", language=self._language)
            outcomes = await self._dispatch_tools(parsed.calls, iteration)
            return IterationRecord(
                iteration=iteration,
                prompt=prompt,
                artifact_path=None,
                failure_reason=CODE_NOT_FOUND_REASON,
                tool_outcomes=outcomes,
                tool_errors=parsed.errors,
            )

        atomic_write(self._artifact_path, extraction.code, create_parents=True)
        command = derive_run_command(self._run_command, self._language, self._artifact_path)
        if isinstance(command, ArgvCommand) and command.program == str(self._artifact_path):
            _make_executable(self._artifact_path)

        self._emit("exec_start", {"command": _display(command)}, iteration=iteration)
        result = await self._executor.execute(
            command,
            timeout_seconds=self._command_timeout_seconds,
            cancel_token=cancel_token,
        )
        self._emit("exec_end", result.to_dict(), iteration=iteration)

        verdict = self._scorer.score(result, self._artifact_path, cancel_token=cancel_token)
        self._emit("score", verdict.to_dict(), iteration=iteration)
        _logger.info(
            "iteration_scored",
            ok=verdict.ok,
            score=verdict.score,
            layer=verdict.layer.value if verdict.layer is not None else None,
        )

        outcomes = await self._dispatch_tools(parsed.calls, iteration)
        return IterationRecord(
            iteration=iteration,
            prompt=prompt,
            artifact_path=self._artifact_path,
            exec_result=result,
            verdict=verdict,
            failure_reason=None if verdict.ok else verdict.reason,
            tool_outcomes=outcomes,
            tool_errors=parsed.errors,
        )

    async def _dispatch_tools(
        self, calls: Sequence[ToolCall], iteration: int
    ) -> tuple[ToolOutcome, ...]:
        if not calls:
            return ()
        return await self._dispatcher.dispatch(calls, context=DispatchContext(iteration=iteration))

    def _next_prompt(self, objective: str, record: IterationRecord) -> str:
        if record.verdict is None or record.exec_result is None:
            return build_missing_code_prompt(objective, code_not_found_prompt(self._language))
        return build_retry_prompt(
            objective,
            record.verdict,
            record.exec_result,
            iteration=record.iteration,
            contracts=self._scorer.policy.contracts,
            tool_errors=record.tool_errors,
        )

    async def _commit_workspace(self, message: str, *, phase: str) -> None:
        if self._version_control is None:
            _logger.warning("version_control_unavailable", phase=phase)
            return
        runner = self._version_control
        request = VersionControlRequest(
            repo_path=self._guard.root,
            commit_message=message,
            auto_push=self._vc_settings.auto_push,
            generate_notes=self._vc_settings.generate_notes,
        )
        try:
            result = await run_with_retries(
                lambda: asyncio.to_thread(runner.run_version_control, request),
                policy=self._retry_policy,
                retryable=lambda exc: isinstance(exc, GitCommandError),
                sleep=self._sleep,
                operation_name=f"version_control_{phase}",
            )
        except VersionControlError as exc:
            _logger.error("version_control_failed", phase=phase, error=str(exc))
            self._emit("version_control", {"phase": phase, "error": str(exc)})
            return
        _logger.info("version_control_completed", phase=phase, **result.to_dict())
        self._emit("version_control", {"phase": phase, **result.to_dict()})

    def _finish(
        self,
        outcome: LoopOutcome,
        iterations: int,
        verdict: ScoreVerdict | None,
        *,
        error: str | None = None,
        cause: BaseException | None = None,
    ) -> LoopResult:
        result = LoopResult(
            outcome=outcome,
            iterations=iterations,
            verdict=verdict,
            artifact_path=self._artifact_path if iterations else None,
            error=error,
            cause=cause,
        )
        log = _logger.info if outcome is LoopOutcome.SUCCESS else _logger.warning
        log("loop_finished", outcome=outcome.value, iterations=iterations, error=error)
        self._emit("loop_end", result.to_dict())
        return result

    def _emit(
        self,
        event: str,
        data: Mapping[str, Any],
        *,
        iteration: int | None = None,
    ) -> None:
        if self._trace is not None:
            self._trace.emit(event, data, iteration=iteration)


def _make_executable(path: Path) -> None:
    mode = path.stat().st_mode
    path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def _display(command: str | ArgvCommand) -> str:
    return command if isinstance(command, str) else command.display()


__all__ = [
    "BEFORE_RUN_COMMIT_MESSAGE",
    "CODE_NOT_FOUND_REASON",
    "IterationController",
    "IterationRecord",
    "LoopOutcome",
    "LoopResult",
    "TaskRunSummary",
]
