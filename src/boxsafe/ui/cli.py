"""Command-line interface router for boxsafe."""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from collections.abc import Mapping, Sequence
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from boxsafe.config import (
    BoxSafeSettings,
    ConfigLoadError,
    ConfigValidationError,
    load_config,
    redact_config,
)
from boxsafe.control_plane import IterationController, LoopResult, TaskManager, TaskRunSummary
from boxsafe.domain.ids import generate_run_id
from boxsafe.observability import LoggingConfig, TraceLogger, run_context, setup_logging
from boxsafe.sandbox import SandboxError
from boxsafe.synthesis_plane.providers import ProviderError
from boxsafe.utils.concurrency import CancellationToken


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="boxsafe",
        description=(
            "boxsafe — generate, execute, validate and iterate on model-written code.\n\n"
            "Common workflows:\n"
            '  boxsafe run "print the first 10 primes"   Run one objective\n'
            "  boxsafe run --prompt-file task.md         Read the objective from a file\n"
            "  boxsafe run --tasks                       Work through the todo file\n"
            "  boxsafe config                            Show the effective config\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to boxsafe TOML config (default: ./boxsafe.toml if present).",
    )
    common.add_argument("--json", action="store_true", help="Emit deterministic JSON output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # run -----------------------------------------------------------------
    run_parser = subparsers.add_parser(
        "run",
        parents=[common],
        help="Run the iteration loop",
        description=(
            "Run the generate/execute/validate loop until success or the loop budget is spent.\n\n"
            "Exit codes: 0 success, 1 loop did not succeed, 2 config error,\n"
            "3 provider error, 4 internal error."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    run_parser.add_argument("prompt", nargs="?", default=None, help="Objective for the model")
    run_parser.add_argument(
        "--prompt-file", default=None, help="Read the objective from this file instead"
    )
    run_parser.add_argument(
        "--tasks",
        action="store_true",
        default=False,
        help="Run every pending task from [project].todo, one loop per task",
    )
    run_parser.add_argument("--workspace", default=None, help="Override [project].workspace")
    run_parser.add_argument("--language", default=None, help="Override [language].tag")
    run_parser.add_argument(
        "--loops", default=None, help='Override [limits].loops (integer or "infinity")'
    )
    run_parser.add_argument(
        "--provider", default=None, help="Override [model].provider (mock | openai)"
    )
    run_parser.set_defaults(handler=_cmd_run)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Show the effective (redacted) config",
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_run(args: argparse.Namespace) -> int:
    overrides: dict[str, object] = {
        "project.workspace": _optional_str(args.workspace),
        "language.tag": _optional_str(args.language),
        "limits.loops": _loops_override(args.loops),
        "model.provider": _optional_str(args.provider),
    }
    settings = _load_settings(args, overrides)

    prompt: str | None = None
    if not args.tasks:
        prompt = _resolve_prompt(args)
    elif settings.todo_path is None:
        raise CLIError("--tasks requires [project].todo to be set", exit_code=2)

    run_id = generate_run_id()
    logging_handle = setup_logging(
        LoggingConfig(
            run_id=run_id,
            base_log_dir=settings.log_dir,
            level=settings.log_level,
            log_to_stdout=settings.log_to_stdout,
        )
    )
    try:
        trace = TraceLogger(settings.log_dir, run_id=run_id, retain=settings.trace_retain)
        try:
            controller = IterationController.from_settings(settings, trace=trace)
        except ProviderError as exc:
            raise CLIError(str(exc), exit_code=3) from exc
        except SandboxError as exc:
            raise CLIError(str(exc), exit_code=2) from exc

        with run_context(run_id=run_id):
            if prompt is not None:
                result = asyncio.run(_run_with_signals(controller, prompt))
                return _report_loop(args, run_id, result, trace.path)
            return _run_tasks(args, run_id, controller, settings, trace.path)
    finally:
        logging_handle.shutdown()


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_config_or_fail(args, {})
    redacted = redact_config(config)
    if args.json:
        _emit_json({"command": "config", "config": redacted})
        return 0
    print(json.dumps(redacted, indent=2, sort_keys=True, ensure_ascii=False))
    return 0


# ---------------------------------------------------------------------------
# Run helpers
# ---------------------------------------------------------------------------


async def _run_with_signals(controller: IterationController, prompt: str) -> LoopResult:
    token = CancellationToken()
    _install_cancel_handlers(token)
    return await controller.run(prompt, cancel_token=token)


def _run_tasks(
    args: argparse.Namespace,
    run_id: str,
    controller: IterationController,
    settings: BoxSafeSettings,
    trace_path: Path,
) -> int:
    assert settings.todo_path is not None
    manager = TaskManager(settings.todo_path, settings.tasks_state_dir)
    manager.init()

    async def _drive() -> TaskRunSummary:
        token = CancellationToken()
        _install_cancel_handlers(token)
        return await controller.run_tasks(manager, cancel_token=token)

    summary = asyncio.run(_drive())
    last = summary.results[-1] if summary.results else None
    payload: dict[str, object] = {
        "command": "run",
        "run_id": run_id,
        "mode": "tasks",
        "total": manager.total,
        "completed": summary.completed,
        "remaining": summary.remaining,
        "results": [result.to_dict() for result in summary.results],
        "trace": str(trace_path),
    }
    if args.json:
        _emit_json(payload)
    else:
        print(f"Run ID:    {run_id}")
        print(f"Tasks:     {summary.completed} completed, {summary.remaining} remaining")
        if last is not None:
            print(f"Last loop: {last.outcome.value} after {last.iterations} iteration(s)")
        print(f"Trace:     {trace_path}")
    if summary.finished:
        return 0
    return _exit_code_for(last) if last is not None else 1


def _report_loop(args: argparse.Namespace, run_id: str, result: LoopResult, trace: Path) -> int:
    if args.json:
        _emit_json({"command": "run", "run_id": run_id, "trace": str(trace), **result.to_dict()})
    else:
        print(f"Run ID:     {run_id}")
        print(f"Outcome:    {result.outcome.value}")
        print(f"Iterations: {result.iterations}")
        if result.verdict is not None:
            print(f"Score:      {result.verdict.score:g}")
            if not result.verdict.ok and result.verdict.reason:
                print(f"Reason:     {result.verdict.reason}")
        if result.artifact_path is not None:
            print(f"Artifact:   {result.artifact_path}")
        if result.error:
            print(f"Error:      {result.error}")
        print(f"Trace:      {trace}")
    return _exit_code_for(result)


def _exit_code_for(result: LoopResult) -> int:
    if result.succeeded:
        return 0
    if isinstance(result.cause, ProviderError):
        return 3
    return 1


def _install_cancel_handlers(token: CancellationToken) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # add_signal_handler is unavailable on Windows event loops.
        with suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, token.cancel)


# ---------------------------------------------------------------------------
# Helpers: config, prompts
# ---------------------------------------------------------------------------


def _load_config_or_fail(
    args: argparse.Namespace, overrides: Mapping[str, object]
) -> dict[str, Any]:
    try:
        return load_config(_optional_str(args.config_path), cli_overrides=overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _load_settings(args: argparse.Namespace, overrides: Mapping[str, object]) -> BoxSafeSettings:
    config = _load_config_or_fail(args, overrides)
    try:
        settings = BoxSafeSettings.from_config(config)
    except ConfigValidationError as exc:
        raise CLIError(str(exc), exit_code=2) from exc
    if not settings.workspace.is_dir():
        raise CLIError(f"workspace is not a directory: {settings.workspace}", exit_code=2)
    return settings


def _resolve_prompt(args: argparse.Namespace) -> str:
    prompt_file = _optional_str(args.prompt_file)
    inline = _optional_str(args.prompt)
    if prompt_file is not None and inline is not None:
        raise CLIError("pass either a prompt or --prompt-file, not both", exit_code=2)
    if prompt_file is not None:
        path = Path(prompt_file).expanduser()
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise CLIError(f"unable to read prompt file {path}: {exc}", exit_code=2) from exc
    elif inline is not None:
        text = inline
    else:
        raise CLIError("a prompt is required (positional, --prompt-file or --tasks)", exit_code=2)
    if not text.strip():
        raise CLIError("prompt cannot be empty", exit_code=2)
    return text


def _loops_override(raw: object) -> object:
    text = _optional_str(raw)
    if text is None:
        return None
    if text.isdigit():
        return int(text)
    return text


def _optional_str(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


__all__ = ["CLIError", "build_parser", "run_cli"]
