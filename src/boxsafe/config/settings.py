"""Typed, immutable view over a validated config mapping."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from boxsafe.config.schema import assert_valid_config, parse_loop_limit
from boxsafe.domain.languages import artifact_extension, canonical_language


@dataclass(frozen=True, slots=True)
class VersionControlSettings:
    before: bool = False
    after: bool = False
    auto_push: bool = False
    generate_notes: bool = False

    @property
    def authorized(self) -> bool:
        """Version control is usable only when enabled before or after a run."""
        return self.before or self.after


@dataclass(frozen=True, slots=True)
class ModelSettings:
    provider: str = "mock"
    name: str = "gpt-4.1-mini"
    api_key_env: str = "OPENAI_API_KEY"


@dataclass(frozen=True, slots=True)
class BoxSafeSettings:
    """Resolved runtime settings.

    ``[paths]`` entries are anchored at the workspace; ``project.workspace`` itself is
    anchored at the config file directory by the loader.
    """

    workspace: Path
    language: str
    artifact_path: Path
    run_command: str
    command_timeout_seconds: float
    kill_grace_seconds: float
    allow_unsafe_shell: bool
    max_iterations: int | None
    generated_markdown_path: Path | None
    log_dir: Path
    tasks_state_dir: Path
    todo_path: Path | None
    navigator_enabled: bool
    max_file_size: int
    version_control: VersionControlSettings
    model: ModelSettings
    scoring: Mapping[str, Any]
    log_level: str
    log_to_stdout: bool
    trace_retain: int

    @classmethod
    def from_config(cls, config: Mapping[str, object]) -> BoxSafeSettings:
        validated = assert_valid_config(config)
        project = validated["project"]
        paths = validated["paths"]
        commands = validated["commands"]
        observability = validated["observability"]
        navigator = validated["navigator"]
        model = validated["model"]

        workspace = Path(project["workspace"]).expanduser().resolve()
        language = canonical_language(validated["language"]["tag"])

        artifact_raw = paths["artifact_output"] or f"out.{artifact_extension(language)}"
        generated_raw = paths["generated_markdown"]
        todo_raw = project["todo"]

        return cls(
            workspace=workspace,
            language=language,
            artifact_path=_anchor(artifact_raw, workspace),
            run_command=commands["run"],
            command_timeout_seconds=commands["timeout_seconds"],
            kill_grace_seconds=commands["kill_grace_seconds"],
            allow_unsafe_shell=commands["allow_unsafe_shell"],
            max_iterations=parse_loop_limit(validated["limits"]["loops"]),
            generated_markdown_path=_anchor(generated_raw, workspace) if generated_raw else None,
            log_dir=_anchor(paths["log_dir"], workspace),
            tasks_state_dir=_anchor(paths["tasks_state_dir"], workspace),
            todo_path=_anchor(todo_raw, workspace) if todo_raw else None,
            navigator_enabled=navigator["enabled"],
            max_file_size=navigator["max_file_size"],
            version_control=VersionControlSettings(**project["version_control"]),
            model=ModelSettings(**model),
            scoring=dict(validated["scoring"]),
            log_level=observability["log_level"],
            log_to_stdout=observability["log_to_stdout"],
            trace_retain=observability["trace_retain"],
        )


def _anchor(raw: str, base: Path) -> Path:
    candidate = Path(raw).expanduser()
    if not candidate.is_absolute():
        candidate = base / candidate
    return candidate.resolve()


__all__ = ["BoxSafeSettings", "ModelSettings", "VersionControlSettings"]
