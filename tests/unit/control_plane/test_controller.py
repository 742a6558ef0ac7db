"""
boxsafe — unit tests for the iteration controller

File: tests/unit/control_plane/test_controller.py

Purpose
- Validate the generate -> execute -> score -> dispatch -> retry cycle end to end against
  scripted providers and real interpreter runs.

What this test file should cover
- Success, budget exhaustion, unbounded budgets, missing-code iterations.
- Provider failures abort; cancellation before and during generation.
- Tool calls dispatched alongside code; trace event order; markdown persistence.
- Version control before/after the loop, including non-fatal failures.
- Task runs stop at the first unsuccessful task.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import pytest

from boxsafe.config.settings import VersionControlSettings
from boxsafe.control_plane.controller import (
    BEFORE_RUN_COMMIT_MESSAGE,
    CODE_NOT_FOUND_REASON,
    IterationController,
    LoopOutcome,
)
from boxsafe.control_plane.tasks import TaskManager
from boxsafe.integration_plane.version_control import (
    DEFAULT_COMMIT_MESSAGE,
    VersionControlError,
    VersionControlRequest,
    VersionControlResult,
)
from boxsafe.sandbox.executor import (
    ArgvCommand,
    Command,
    CommandExecutor,
    CommandSpawnError,
    ExecResult,
)
from boxsafe.sandbox.navigator import Navigator
from boxsafe.synthesis_plane.dispatch import ToolDispatcher
from boxsafe.synthesis_plane.providers import ProviderAuthenticationError, ScriptedProvider
from boxsafe.utils.concurrency import CancellationToken

SUCCESS_CODE = "```python\nprint('__RESULT__=SUCCESS')\n```"
FAILING_CODE = "```python\nimport sys\nsys.exit(1)\n```"


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

    def names(self) -> list[str]:
        return [event for event, _, _ in self.events]


class _RecordingRunner:
    def __init__(self, *, fail: bool = False) -> None:
        self.messages: list[str] = []
        self._fail = fail

    def run_version_control(self, request: VersionControlRequest) -> VersionControlResult:
        self.messages.append(request.commit_message)
        if self._fail:
            raise VersionControlError("repository is locked")
        return VersionControlResult(committed=True)


class _FailingProvider:
    provider_name = "openai"

    async def generate(self, prompt: str) -> str:
        raise ProviderAuthenticationError("missing key", provider="openai", http_status=401)


class _HangingProvider:
    provider_name = "hang"

    async def generate(self, prompt: str) -> str:
        await asyncio.Event().wait()
        return ""


def _controller(tmp_path: Path, provider: Any, **kwargs: Any) -> IterationController:
    workspace = tmp_path / "ws"
    workspace.mkdir(exist_ok=True)
    executor = CommandExecutor(
        cwd=workspace, log_dir=tmp_path / "logs", default_timeout_seconds=30.0
    )
    dispatcher = ToolDispatcher(workspace=workspace, navigator=Navigator(workspace))
    kwargs.setdefault("max_iterations", 3)
    return IterationController(
        workspace=workspace,
        provider=provider,
        executor=executor,
        dispatcher=dispatcher,
        language="py",
        **kwargs,
    )


async def test_first_successful_iteration_ends_the_loop(tmp_path: Path) -> None:
    provider = ScriptedProvider([SUCCESS_CODE])
    controller = _controller(tmp_path, provider)

    result = await controller.run("Print the success marker.")

    assert result.outcome is LoopOutcome.SUCCESS
    assert result.iterations == 1
    assert result.verdict is not None and result.verdict.score == 100
    assert result.artifact_path == controller.workspace / "out.py"
    assert controller.artifact_path.read_text(encoding="utf-8") == "print('__RESULT__=SUCCESS')"
    assert provider.prompts == ("Print the success marker.",)


async def test_budget_exhaustion_feeds_failures_back(tmp_path: Path) -> None:
    provider = ScriptedProvider([FAILING_CODE])
    controller = _controller(tmp_path, provider, max_iterations=2)

    result = await controller.run("Exit cleanly.")

    assert result.outcome is LoopOutcome.EXHAUSTED
    assert result.iterations == 2
    assert result.verdict is not None and result.verdict.ok is False
    retry_prompt = provider.prompts[1]
    assert retry_prompt.startswith("Exit cleanly.")
    assert "PREVIOUS ATTEMPT 1 FAILED (layer: exit-code" in retry_prompt
    assert "Exit code: 1" in retry_prompt


async def test_unbounded_budget_runs_until_success(tmp_path: Path) -> None:
    provider = ScriptedProvider([FAILING_CODE, FAILING_CODE, FAILING_CODE, SUCCESS_CODE])
    controller = _controller(tmp_path, provider, max_iterations=None)

    result = await controller.run("Eventually succeed.")

    assert result.outcome is LoopOutcome.SUCCESS
    assert result.iterations == 4


async def test_missing_code_consumes_an_iteration_and_sends_guidance(tmp_path: Path) -> None:
    trace = _RecordingTrace()
    provider = ScriptedProvider(["I would write some code here.", SUCCESS_CODE])
    controller = _controller(tmp_path, provider, trace=trace)

    result = await controller.run("Do it.")

    assert result.outcome is LoopOutcome.SUCCESS
    assert result.iterations == 2
    assert "ERROR: py code was not found in the response." in provider.prompts[1]
    first_end = next(data for event, data, _ in trace.events if event == "iteration_end")
    assert first_end["failure_reason"] == CODE_NOT_FOUND_REASON
    assert "exec_result" not in first_end


async def test_provider_error_aborts_the_run(tmp_path: Path) -> None:
    controller = _controller(tmp_path, _FailingProvider())

    result = await controller.run("Anything.")

    assert result.outcome is LoopOutcome.ABORTED
    assert result.iterations == 1
    assert isinstance(result.cause, ProviderAuthenticationError)
    assert result.error is not None and "code=auth" in result.error
    assert not controller.artifact_path.exists()


async def test_pre_cancelled_token_stops_before_generation(tmp_path: Path) -> None:
    provider = ScriptedProvider([SUCCESS_CODE])
    controller = _controller(tmp_path, provider)
    token = CancellationToken()
    token.cancel()

    result = await controller.run("Anything.", cancel_token=token)

    assert result.outcome is LoopOutcome.CANCELLED
    assert result.error == "operation cancelled"
    assert provider.calls == 0


async def test_cancellation_interrupts_a_pending_generation(tmp_path: Path) -> None:
    controller = _controller(tmp_path, _HangingProvider())
    token = CancellationToken()
    asyncio.get_running_loop().call_later(0.05, token.cancel)

    result = await asyncio.wait_for(controller.run("Anything.", cancel_token=token), timeout=5)

    assert result.outcome is LoopOutcome.CANCELLED
    assert result.iterations == 1


async def test_tool_calls_run_alongside_code(tmp_path: Path) -> None:
    response = (
        SUCCESS_CODE
        + '\n```json-tool\n{"tool": "navigate", "params": {"op": "write", "path": "notes/plan.md",'
        + ' "content": "step 1", "writeOptions": {"createDirs": true}}}\n```\n'
    )
    controller = _controller(tmp_path, ScriptedProvider([response]))

    result = await controller.run("Write code and notes.")

    assert result.succeeded
    notes = controller.workspace / "notes" / "plan.md"
    assert notes.read_text(encoding="utf-8") == "step 1"


async def test_trace_records_each_step_in_order(tmp_path: Path) -> None:
    trace = _RecordingTrace()
    controller = _controller(tmp_path, ScriptedProvider([SUCCESS_CODE]), trace=trace)

    await controller.run("Trace me.")

    assert trace.names() == [
        "loop_start",
        "generate_start",
        "generate_end",
        "exec_start",
        "exec_end",
        "score",
        "iteration_end",
        "loop_end",
    ]
    assert trace.events[-1][1]["outcome"] == "success"
    assert {iteration for event, _, iteration in trace.events if event == "score"} == {1}


async def test_generated_markdown_is_persisted(tmp_path: Path) -> None:
    markdown_path = tmp_path / "memo" / "codelog.md"
    controller = _controller(
        tmp_path, ScriptedProvider([SUCCESS_CODE]), generated_markdown_path=markdown_path
    )

    await controller.run("Persist.")

    assert markdown_path.read_text(encoding="utf-8") == SUCCESS_CODE


async def test_version_control_runs_before_and_after_a_successful_run(tmp_path: Path) -> None:
    runner = _RecordingRunner()
    controller = _controller(
        tmp_path,
        ScriptedProvider([SUCCESS_CODE]),
        version_control=runner,
        version_control_settings=VersionControlSettings(before=True, after=True),
    )

    result = await controller.run("Commit around me.")

    assert result.succeeded
    assert runner.messages == [BEFORE_RUN_COMMIT_MESSAGE, DEFAULT_COMMIT_MESSAGE]


async def test_no_after_commit_when_the_run_fails(tmp_path: Path) -> None:
    runner = _RecordingRunner()
    controller = _controller(
        tmp_path,
        ScriptedProvider([FAILING_CODE]),
        max_iterations=1,
        version_control=runner,
        version_control_settings=VersionControlSettings(after=True),
    )

    result = await controller.run("Fail.")

    assert result.outcome is LoopOutcome.EXHAUSTED
    assert runner.messages == []


async def test_version_control_failures_do_not_fail_the_run(tmp_path: Path) -> None:
    runner = _RecordingRunner(fail=True)
    controller = _controller(
        tmp_path,
        ScriptedProvider([SUCCESS_CODE]),
        version_control=runner,
        version_control_settings=VersionControlSettings(before=True, after=True),
    )

    result = await controller.run("Still succeed.")

    assert result.succeeded
    assert len(runner.messages) == 2


async def test_run_tasks_completes_every_task(tmp_path: Path) -> None:
    todo = tmp_path / "TODO.md"
    todo.write_text("- first task\n- second task\n", encoding="utf-8")
    manager = TaskManager(todo, tmp_path / "state")
    manager.init()
    provider = ScriptedProvider([SUCCESS_CODE])
    controller = _controller(tmp_path, provider)

    summary = await controller.run_tasks(manager)

    assert summary.finished
    assert summary.completed == 2
    assert provider.prompts == ("first task", "second task")
    assert manager.done == (True, True)


async def test_run_tasks_stops_at_first_failed_task(tmp_path: Path) -> None:
    todo = tmp_path / "TODO.md"
    todo.write_text("- easy\n- impossible\n- never reached\n", encoding="utf-8")
    manager = TaskManager(todo, tmp_path / "state")
    manager.init()
    provider = ScriptedProvider(
        lambda prompt, index: SUCCESS_CODE if prompt == "easy" else FAILING_CODE
    )
    controller = _controller(tmp_path, provider, max_iterations=1)

    summary = await controller.run_tasks(manager)

    assert summary.completed == 1
    assert summary.remaining == 2
    assert not summary.finished
    assert [result.outcome for result in summary.results] == [
        LoopOutcome.SUCCESS,
        LoopOutcome.EXHAUSTED,
    ]
    assert manager.current_task() == "impossible"


class _MissingInterpreterExecutor(CommandExecutor):
    """Runs every command through an interpreter that does not exist."""

    async def execute(self, command: Command, **kwargs: Any) -> ExecResult:
        return await super().execute(
            ArgvCommand("/nonexistent/boxsafe-interpreter", ("out.py",)), **kwargs
        )


async def test_spawn_failure_aborts_the_run(tmp_path: Path) -> None:
    workspace = tmp_path / "ws"
    workspace.mkdir()
    provider = ScriptedProvider([SUCCESS_CODE])
    controller = IterationController(
        workspace=workspace,
        provider=provider,
        executor=_MissingInterpreterExecutor(cwd=workspace, log_dir=tmp_path / "logs"),
        dispatcher=ToolDispatcher(workspace=workspace),
        language="py",
        max_iterations=3,
    )

    result = await controller.run("Run me.")

    assert result.outcome is LoopOutcome.ABORTED
    assert result.iterations == 1
    assert isinstance(result.cause, CommandSpawnError)
    assert result.error is not None and "boxsafe-interpreter" in result.error
    assert provider.calls == 1


async def test_empty_prompt_is_rejected(tmp_path: Path) -> None:
    controller = _controller(tmp_path, ScriptedProvider([SUCCESS_CODE]))

    with pytest.raises(ValueError):
        await controller.run("   ")


def test_iteration_budget_must_be_positive(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        _controller(tmp_path, ScriptedProvider([SUCCESS_CODE]), max_iterations=0)
