"""
boxsafe — CLI smoke contracts

File: tests/integration/test_cli_smoke.py

Purpose
- Drive `boxsafe run` and `boxsafe config` in-process against temporary workspaces.
- Verify exit codes, JSON payloads, and workspace side effects for the mock provider.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
import structlog

from boxsafe.main import cli_entrypoint
from boxsafe.ui.cli import run_cli


@pytest.fixture(autouse=True)
def _reset_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("BOXSAFE_RUN_ID", raising=False)
    monkeypatch.delenv("BOXSAFE_TRACE_RETAIN", raising=False)
    structlog.reset_defaults()


def _write_config(tmp_path: Path, extra: str = "") -> Path:
    (tmp_path / "ws").mkdir(exist_ok=True)
    config_path = tmp_path / "boxsafe.toml"
    config_path.write_text(
        "\n".join(
            [
                "[project]",
                'workspace = "ws"',
                "",
                "[observability]",
                "log_to_stdout = false",
                "",
                "[language]",
                'tag = "py"',
                "",
                "[model]",
                'provider = "mock"',
                extra,
            ]
        ),
        encoding="utf-8",
    )
    return config_path


def _last_json(output: str) -> dict[str, Any]:
    lines = [line for line in output.splitlines() if line.strip()]
    payload = json.loads(lines[-1])
    assert isinstance(payload, dict)
    return payload


def test_run_with_mock_provider_succeeds(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    config_path = _write_config(tmp_path)

    exit_code = run_cli(["run", "print the marker", "--config", str(config_path), "--json"])

    assert exit_code == 0
    payload = _last_json(capsys.readouterr().out)
    assert payload["command"] == "run"
    assert payload["outcome"] == "success"
    assert payload["iterations"] == 1
    assert payload["run_id"].startswith("run-")
    assert Path(payload["trace"]).is_file()
    assert (tmp_path / "ws" / "out.py").is_file()
    assert (tmp_path / "ws" / "memo" / "generated" / "codelog.md").is_file()


def test_run_human_output_names_outcome(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    config_path = _write_config(tmp_path)

    exit_code = run_cli(["run", "print the marker", "--config", str(config_path)])

    assert exit_code == 0
    out = capsys.readouterr().out
    assert "Outcome:    success" in out
    assert "Iterations: 1" in out


def test_config_command_emits_redacted_json(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    config_path = _write_config(tmp_path)

    exit_code = run_cli(["config", "--config", str(config_path), "--json"])

    assert exit_code == 0
    payload = _last_json(capsys.readouterr().out)
    assert payload["command"] == "config"
    assert payload["config"]["language"]["tag"] == "py"
    assert payload["config"]["model"]["provider"] == "mock"


def test_missing_config_file_is_a_config_error(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code = run_cli(["run", "x", "--config", str(tmp_path / "absent.toml")])

    assert exit_code == 2
    assert "config file not found" in capsys.readouterr().err


def test_missing_prompt_is_a_usage_error(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    config_path = _write_config(tmp_path)

    exit_code = run_cli(["run", "--config", str(config_path)])

    assert exit_code == 2
    assert "a prompt is required" in capsys.readouterr().err


def test_workspace_must_be_a_directory(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    config_path = _write_config(tmp_path)
    (tmp_path / "file-ws").write_text("not a dir", encoding="utf-8")

    exit_code = run_cli(
        ["run", "x", "--config", str(config_path), "--workspace", str(tmp_path / "file-ws")]
    )

    assert exit_code == 2
    assert "workspace is not a directory" in capsys.readouterr().err


def test_artifact_outside_workspace_is_a_config_error(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    config_path = _write_config(tmp_path, '\n[paths]\nartifact_output = "../escaped.py"\n')

    exit_code = run_cli(["run", "x", "--config", str(config_path)])

    assert exit_code == 2
    assert "outside workspace boundary" in capsys.readouterr().err
    assert not (tmp_path / "escaped.py").exists()


def test_failing_run_command_exhausts_the_budget(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    config_path = _write_config(tmp_path, '\n[commands]\nrun = "false"\n')

    exit_code = run_cli(
        ["run", "x", "--config", str(config_path), "--loops", "1", "--json"]
    )

    assert exit_code == 1
    payload = _last_json(capsys.readouterr().out)
    assert payload["outcome"] == "exhausted"
    assert payload["verdict"]["ok"] is False


def test_openai_without_api_key_is_a_provider_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.delenv("BOXSAFE_SMOKE_MISSING_KEY", raising=False)
    config_path = _write_config(tmp_path)
    config_path.write_text(
        config_path.read_text(encoding="utf-8").replace(
            'provider = "mock"',
            'provider = "openai"\napi_key_env = "BOXSAFE_SMOKE_MISSING_KEY"',
        ),
        encoding="utf-8",
    )

    exit_code = run_cli(["run", "x", "--config", str(config_path), "--json"])

    assert exit_code == 3
    payload = _last_json(capsys.readouterr().out)
    assert payload["outcome"] == "aborted"
    assert "BOXSAFE_SMOKE_MISSING_KEY" in payload["error"]


def test_entrypoint_normalizes_argparse_failures(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli_entrypoint(["run", "--no-such-flag"]) == 2
    assert "unrecognized arguments" in capsys.readouterr().err


def test_tasks_mode_runs_every_pending_task(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    (tmp_path / "TODO.md").write_text("- first\n- second\n", encoding="utf-8")
    config_path = _write_config(tmp_path)
    config_path.write_text(
        config_path.read_text(encoding="utf-8").replace(
            'workspace = "ws"', 'workspace = "ws"\ntodo = "TODO.md"'
        ),
        encoding="utf-8",
    )

    exit_code = run_cli(["run", "--tasks", "--config", str(config_path), "--json"])

    assert exit_code == 0
    payload = _last_json(capsys.readouterr().out)
    assert payload["mode"] == "tasks"
    assert payload["total"] == 2
    assert payload["completed"] == 2
    assert payload["remaining"] == 0
