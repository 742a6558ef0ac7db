"""
boxsafe — tool-call dispatcher

File: src/boxsafe/synthesis_plane/dispatch.py

Purpose
- Execute parsed tool calls against the Navigator and the version-control collaborator.

Functional requirements
- ``navigate`` calls map one-to-one onto Navigator methods; without a navigator they are
  skipped with a logged reason.
- ``versionControl`` calls run only when version control is enabled before or after the
  run; otherwise they are skipped, never executed. They go through ``run_with_retries``.
- Every step may emit a trace event; dispatch behaves identically without a sink.
- One failing call never prevents the remaining calls from running.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any, Final, Protocol

import structlog

from boxsafe.config.settings import VersionControlSettings
from boxsafe.integration_plane.version_control import (
    DEFAULT_COMMIT_MESSAGE,
    GitCommandError,
    VersionControlError,
    VersionControlRequest,
    VersionControlResult,
)
from boxsafe.observability.trace import TraceSink
from boxsafe.sandbox.navigator import (
    Navigator,
    NavigatorOperation,
    NavigatorResult,
    OperationError,
)
from boxsafe.sandbox.path_guard import PathGuard, SandboxError
from boxsafe.synthesis_plane.tool_calls import (
    NavigateToolCall,
    ToolCall,
    ToolName,
    VersionControlToolCall,
)
from boxsafe.utils.retry import RetryPolicy, SleepFn, run_with_retries

_TRACE_CONTENT_LIMIT: Final[int] = 512

_logger = structlog.get_logger(__name__)


class VersionControlRunner(Protocol):
    def run_version_control(self, request: VersionControlRequest) -> VersionControlResult: ...


class ToolOutcomeStatus(StrEnum):
    EXECUTED = "executed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class ToolOutcome:
    tool: ToolName
    status: ToolOutcomeStatus
    operation: str | None = None
    result: Mapping[str, Any] | None = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is ToolOutcomeStatus.EXECUTED

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"tool": self.tool.value, "status": self.status.value}
        if self.operation is not None:
            payload["operation"] = self.operation
        if self.result is not None:
            payload["result"] = dict(self.result)
        if self.reason is not None:
            payload["reason"] = self.reason
        return payload


@dataclass(frozen=True, slots=True)
class DispatchContext:
    iteration: int | None = None


class ToolDispatcher:
    def __init__(
        self,
        *,
        workspace: Path | str | PathGuard,
        navigator: Navigator | None = None,
        version_control: VersionControlRunner | None = None,
        version_control_settings: VersionControlSettings | None = None,
        trace: TraceSink | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        if isinstance(workspace, PathGuard):
            self._guard = workspace
        elif navigator is not None:
            self._guard = navigator.guard
        else:
            self._guard = PathGuard(workspace)
        self._navigator = navigator
        self._version_control = version_control
        self._vc_settings = (
            version_control_settings
            if version_control_settings is not None
            else VersionControlSettings()
        )
        self._trace = trace
        self._retry_policy = retry_policy if retry_policy is not None else RetryPolicy()
        self._sleep = sleep

    async def dispatch(
        self,
        calls: Sequence[ToolCall],
        *,
        context: DispatchContext | None = None,
    ) -> tuple[ToolOutcome, ...]:
        ctx = context if context is not None else DispatchContext()
        outcomes: list[ToolOutcome] = []
        for index, call in enumerate(calls):
            self._emit(
                "tool_call_start",
                {"index": index, **call.to_dict()},
                ctx,
                truncate_content=True,
            )
            if isinstance(call, NavigateToolCall):
                outcome = await self._dispatch_navigate(call)
            else:
                outcome = await self._dispatch_version_control(call)
            self._emit("tool_call_end", {"index": index, **_trace_summary(outcome)}, ctx)
            outcomes.append(outcome)
        return tuple(outcomes)

    async def _dispatch_navigate(self, call: NavigateToolCall) -> ToolOutcome:
        if self._navigator is None:
            _logger.warning("tool_call_skipped", tool=call.tool.value, reason="navigator disabled")
            return ToolOutcome(
                tool=call.tool,
                status=ToolOutcomeStatus.SKIPPED,
                operation=call.op.value,
                reason="navigator disabled",
            )

        result = await asyncio.to_thread(self._invoke_navigator, self._navigator, call)
        if isinstance(result, OperationError):
            _logger.info(
                "tool_call_failed",
                tool=call.tool.value,
                operation=call.op.value,
                error=result.error,
            )
            return ToolOutcome(
                tool=call.tool,
                status=ToolOutcomeStatus.FAILED,
                operation=call.op.value,
                result=result.to_dict(),
                reason=result.error,
            )
        _logger.info("tool_call_executed", tool=call.tool.value, operation=call.op.value)
        return ToolOutcome(
            tool=call.tool,
            status=ToolOutcomeStatus.EXECUTED,
            operation=call.op.value,
            result=result.to_dict(),
        )

    @staticmethod
    def _invoke_navigator(navigator: Navigator, call: NavigateToolCall) -> NavigatorResult:
        op = call.op
        path = call.path or "."
        if op is NavigatorOperation.LIST:
            return navigator.list_directory(path)
        if op is NavigatorOperation.READ:
            return navigator.read_file(path)
        if op is NavigatorOperation.WRITE:
            options = call.write_options
            return navigator.write_file(
                path,
                call.content if call.content is not None else "",
                append=bool(options and options.append),
                create_dirs=bool(options and options.create_dirs),
            )
        if op is NavigatorOperation.MKDIR:
            recursive = call.mkdir_options.recursive if call.mkdir_options else None
            return navigator.create_directory(
                path, recursive=True if recursive is None else recursive
            )
        if op is NavigatorOperation.DELETE:
            recursive = call.delete_options.recursive if call.delete_options else None
            return navigator.delete(path, recursive=bool(recursive))
        return navigator.get_metadata(path)

    async def _dispatch_version_control(self, call: VersionControlToolCall) -> ToolOutcome:
        if not self._vc_settings.authorized:
            _logger.warning(
                "tool_call_skipped", tool=call.tool.value, reason="version control not authorized"
            )
            return ToolOutcome(
                tool=call.tool,
                status=ToolOutcomeStatus.SKIPPED,
                reason="version control not authorized",
            )
        if self._version_control is None:
            _logger.warning(
                "tool_call_skipped", tool=call.tool.value, reason="version control unavailable"
            )
            return ToolOutcome(
                tool=call.tool,
                status=ToolOutcomeStatus.SKIPPED,
                reason="version control unavailable",
            )

        try:
            request = self._build_request(call.params)
        except (SandboxError, ValueError, OSError) as exc:
            _logger.warning("tool_call_rejected", tool=call.tool.value, error=str(exc))
            return ToolOutcome(tool=call.tool, status=ToolOutcomeStatus.FAILED, reason=str(exc))

        runner = self._version_control
        try:
            result = await run_with_retries(
                lambda: asyncio.to_thread(runner.run_version_control, request),
                policy=self._retry_policy,
                retryable=lambda exc: isinstance(exc, GitCommandError),
                sleep=self._sleep,
                operation_name="version_control",
            )
        except VersionControlError as exc:
            _logger.error("tool_call_failed", tool=call.tool.value, error=str(exc))
            return ToolOutcome(tool=call.tool, status=ToolOutcomeStatus.FAILED, reason=str(exc))

        _logger.info("tool_call_executed", tool=call.tool.value, **result.to_dict())
        return ToolOutcome(
            tool=call.tool,
            status=ToolOutcomeStatus.EXECUTED,
            result=result.to_dict(),
        )

    def _build_request(self, params: Mapping[str, Any]) -> VersionControlRequest:
        raw_repo = params.get("repoPath")
        if raw_repo is not None and not isinstance(raw_repo, str):
            raise ValueError("versionControl.repoPath must be a string")
        repo_path = self._guard.resolve(raw_repo) if raw_repo else self._guard.root

        message = params.get("commitMessage")
        auto_push = params.get("autoPush")
        generate_notes = params.get("generateNotes")
        return VersionControlRequest(
            repo_path=repo_path,
            commit_message=message if isinstance(message, str) else DEFAULT_COMMIT_MESSAGE,
            auto_push=auto_push if isinstance(auto_push, bool) else self._vc_settings.auto_push,
            generate_notes=(
                generate_notes
                if isinstance(generate_notes, bool)
                else self._vc_settings.generate_notes
            ),
        )

    def _emit(
        self,
        event: str,
        data: Mapping[str, Any],
        context: DispatchContext,
        *,
        truncate_content: bool = False,
    ) -> None:
        if self._trace is None:
            return
        payload = dict(data)
        if truncate_content:
            params = payload.get("params")
            if isinstance(params, Mapping) and isinstance(params.get("content"), str):
                content = params["content"]
                payload["params"] = {**params, "content": content[:_TRACE_CONTENT_LIMIT]}
        self._trace.emit(event, payload, iteration=context.iteration)


def _trace_summary(outcome: ToolOutcome) -> dict[str, Any]:
    summary: dict[str, Any] = {"tool": outcome.tool.value, "status": outcome.status.value}
    if outcome.operation is not None:
        summary["operation"] = outcome.operation
    if outcome.reason is not None:
        summary["reason"] = outcome.reason
    if outcome.result is not None:
        summary["result"] = {
            key: value for key, value in outcome.result.items() if key not in {"content", "entries"}
        }
    return summary


__all__ = [
    "DispatchContext",
    "ToolDispatcher",
    "ToolOutcome",
    "ToolOutcomeStatus",
    "VersionControlRunner",
]
