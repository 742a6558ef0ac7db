"""
boxsafe — unit tests for the tool-call dispatcher

File: tests/unit/synthesis_plane/test_dispatch.py

Purpose
- Validate that parsed tool calls reach the Navigator and the version-control runner.

What this test file should cover
- Navigate calls executed through the Navigator; skipped without one.
- versionControl gating on settings and runner availability.
- Request defaults, retries on git failures, workspace boundary on repoPath.
- Trace events and content truncation; failures never stop later calls.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

from boxsafe.config.settings import VersionControlSettings
from boxsafe.integration_plane.version_control import (
    GitCommandError,
    VersionControlRequest,
    VersionControlResult,
)
from boxsafe.sandbox.navigator import Navigator, NavigatorOperation
from boxsafe.synthesis_plane.dispatch import (
    DispatchContext,
    ToolDispatcher,
    ToolOutcomeStatus,
)
from boxsafe.synthesis_plane.tool_calls import (
    NavigateToolCall,
    VersionControlToolCall,
    WriteOptions,
)
from boxsafe.utils.retry import RetryPolicy

_AUTHORIZED = VersionControlSettings(after=True, auto_push=True)


class _RecordingRunner:
    def __init__(self, failures: int = 0) -> None:
        self.requests: list[VersionControlRequest] = []
        self._failures = failures

    def run_version_control(self, request: VersionControlRequest) -> VersionControlResult:
        self.requests.append(request)
        if self._failures:
            self._failures -= 1
            raise GitCommandError(
                command=("git", "commit"), returncode=1, stdout="", stderr="index.lock exists"
            )
        return VersionControlResult(committed=True)


class _RecordingTrace:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any], int | None]] = []

    def emit(
        self,
        event: str,
        data: Mapping[str, object] | None = None,
        *,
        iteration: int | None = None,
    ) -> None:
        self.events.append((event, dict(data or {}), iteration))


async def _no_sleep(_: float) -> None:
    return None


def _vc_call(**params: Any) -> VersionControlToolCall:
    return VersionControlToolCall(params=MappingProxyType(params))


async def test_navigate_calls_run_through_the_navigator(tmp_path: Path) -> None:
    dispatcher = ToolDispatcher(workspace=tmp_path, navigator=Navigator(tmp_path))
    calls = [
        NavigateToolCall(
            op=NavigatorOperation.WRITE,
            path="pkg/data.txt",
            content="payload",
            write_options=WriteOptions(create_dirs=True),
        ),
        NavigateToolCall(op=NavigatorOperation.READ, path="pkg/data.txt"),
    ]

    write, read = await dispatcher.dispatch(calls)

    assert write.ok and read.ok
    assert write.operation == "write"
    assert (tmp_path / "pkg" / "data.txt").read_text(encoding="utf-8") == "payload"
    assert read.result is not None
    assert read.result["content"] == "payload"


async def test_navigate_without_navigator_is_skipped(tmp_path: Path) -> None:
    dispatcher = ToolDispatcher(workspace=tmp_path)

    (outcome,) = await dispatcher.dispatch([NavigateToolCall(op=NavigatorOperation.LIST)])

    assert outcome.status is ToolOutcomeStatus.SKIPPED
    assert outcome.reason == "navigator disabled"


async def test_version_control_is_skipped_unless_authorized(tmp_path: Path) -> None:
    runner = _RecordingRunner()
    dispatcher = ToolDispatcher(workspace=tmp_path, version_control=runner)

    (outcome,) = await dispatcher.dispatch([_vc_call(commitMessage="feat: x")])

    assert outcome.status is ToolOutcomeStatus.SKIPPED
    assert outcome.reason == "version control not authorized"
    assert runner.requests == []


async def test_authorized_version_control_without_runner_is_skipped(tmp_path: Path) -> None:
    dispatcher = ToolDispatcher(workspace=tmp_path, version_control_settings=_AUTHORIZED)

    (outcome,) = await dispatcher.dispatch([_vc_call()])

    assert outcome.status is ToolOutcomeStatus.SKIPPED
    assert outcome.reason == "version control unavailable"


async def test_version_control_request_takes_defaults_from_settings(tmp_path: Path) -> None:
    runner = _RecordingRunner()
    dispatcher = ToolDispatcher(
        workspace=tmp_path, version_control=runner, version_control_settings=_AUTHORIZED
    )

    (outcome,) = await dispatcher.dispatch(
        [_vc_call(commitMessage="feat: add parser", generateNotes=True)]
    )

    assert outcome.ok
    assert outcome.result == {"committed": True, "pushed": False}
    (request,) = runner.requests
    assert request.repo_path == tmp_path.resolve()
    assert request.commit_message == "feat: add parser"
    assert request.auto_push is True
    assert request.generate_notes is True


async def test_git_failures_are_retried(tmp_path: Path) -> None:
    runner = _RecordingRunner(failures=2)
    dispatcher = ToolDispatcher(
        workspace=tmp_path,
        version_control=runner,
        version_control_settings=_AUTHORIZED,
        retry_policy=RetryPolicy(max_attempts=3, initial_delay_seconds=0.0),
        sleep=_no_sleep,
    )

    (outcome,) = await dispatcher.dispatch([_vc_call()])

    assert outcome.ok
    assert len(runner.requests) == 3


async def test_exhausted_git_retries_fail_the_call(tmp_path: Path) -> None:
    runner = _RecordingRunner(failures=5)
    dispatcher = ToolDispatcher(
        workspace=tmp_path,
        version_control=runner,
        version_control_settings=_AUTHORIZED,
        retry_policy=RetryPolicy(max_attempts=2, initial_delay_seconds=0.0),
        sleep=_no_sleep,
    )

    (outcome,) = await dispatcher.dispatch([_vc_call()])

    assert outcome.status is ToolOutcomeStatus.FAILED
    assert outcome.reason is not None and "index.lock exists" in outcome.reason
    assert len(runner.requests) == 2


async def test_repo_path_outside_workspace_fails_without_running(tmp_path: Path) -> None:
    workspace = tmp_path / "ws"
    workspace.mkdir()
    runner = _RecordingRunner()
    dispatcher = ToolDispatcher(
        workspace=workspace, version_control=runner, version_control_settings=_AUTHORIZED
    )

    (outcome,) = await dispatcher.dispatch([_vc_call(repoPath="../elsewhere")])

    assert outcome.status is ToolOutcomeStatus.FAILED
    assert runner.requests == []


async def test_tilde_repo_path_is_joined_to_the_workspace(tmp_path: Path) -> None:
    runner = _RecordingRunner()
    dispatcher = ToolDispatcher(
        workspace=tmp_path,
        navigator=Navigator(tmp_path),
        version_control=runner,
        version_control_settings=_AUTHORIZED,
    )

    vc_outcome, mkdir_outcome = await dispatcher.dispatch(
        [
            _vc_call(repoPath="~nosuchuser_zz"),
            NavigateToolCall(op=NavigatorOperation.MKDIR, path="after"),
        ]
    )

    assert vc_outcome.status is ToolOutcomeStatus.EXECUTED
    assert [request.repo_path for request in runner.requests] == [
        tmp_path.resolve() / "~nosuchuser_zz"
    ]
    assert mkdir_outcome.status is ToolOutcomeStatus.EXECUTED
    assert (tmp_path / "after").is_dir()


async def test_failed_call_does_not_stop_later_calls(tmp_path: Path) -> None:
    dispatcher = ToolDispatcher(workspace=tmp_path, navigator=Navigator(tmp_path))

    outcomes = await dispatcher.dispatch(
        [
            NavigateToolCall(op=NavigatorOperation.READ, path="missing.txt"),
            NavigateToolCall(op=NavigatorOperation.MKDIR, path="out"),
        ]
    )

    assert [outcome.status for outcome in outcomes] == [
        ToolOutcomeStatus.FAILED,
        ToolOutcomeStatus.EXECUTED,
    ]
    assert (tmp_path / "out").is_dir()


async def test_trace_events_truncate_content_and_omit_bodies(tmp_path: Path) -> None:
    trace = _RecordingTrace()
    dispatcher = ToolDispatcher(workspace=tmp_path, navigator=Navigator(tmp_path), trace=trace)
    content = "x" * 2000

    await dispatcher.dispatch(
        [
            NavigateToolCall(op=NavigatorOperation.WRITE, path="big.txt", content=content),
            NavigateToolCall(op=NavigatorOperation.READ, path="big.txt"),
        ],
        context=DispatchContext(iteration=4),
    )

    names = [event for event, _, _ in trace.events]
    assert names == ["tool_call_start", "tool_call_end", "tool_call_start", "tool_call_end"]
    assert {iteration for _, _, iteration in trace.events} == {4}
    start = trace.events[0][1]
    assert len(start["params"]["content"]) == 512
    read_end = trace.events[3][1]
    assert read_end["status"] == "executed"
    assert "content" not in read_end["result"]
    assert (tmp_path / "big.txt").stat().st_size == 2000
