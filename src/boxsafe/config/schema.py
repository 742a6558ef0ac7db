"""
boxsafe — configuration schema and validation.

File: src/boxsafe/config/schema.py

Purpose
- Define authoritative configuration defaults and strict validation rules.

What should be included in this file
- Validation rules for required fields, types, enums, and numeric constraints.
- Deterministic deep-merge helpers.
- Redaction rules for sensitive fields.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Accept ``limits.loops`` as a positive integer or the ``"infinity"`` sentinel.
- Reject embedded secrets; credentials are referenced through ``*_env`` keys.

Non-functional requirements
- Keep rules deterministic and easy to audit.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from boxsafe.constants import (
    DEFAULT_COMMAND_TIMEOUT_SECONDS,
    DEFAULT_KILL_GRACE_SECONDS,
    DEFAULT_MAX_FILE_SIZE,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_PARTIAL_CREDIT_THRESHOLD,
    DEFAULT_PASS_THRESHOLD,
    DEFAULT_SUCCESS_MARKER,
    DEFAULT_TRACE_RETAIN,
    DEFAULT_WARNING_PENALTY,
    INFINITE_LOOPS_SENTINEL,
    PLACEHOLDER_RUN_COMMAND,
)

PROVIDER_NAMES: Final[tuple[str, ...]] = ("mock", "openai")
LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")

_ENV_NAME_PATTERN = re.compile(r"^[A-Z_][A-Z0-9_]*$")
_LANGUAGE_TAG_PATTERN = re.compile(r"^[a-z0-9+#._-]+$")
_CAMEL_CASE_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")

_SENSITIVE_KEY_TOKENS: Final[frozenset[str]] = frozenset(
    {"secret", "token", "password", "passphrase", "credential", "credentials"}
)
_SENSITIVE_KEY_PHRASES: Final[tuple[str, ...]] = (
    "api_key",
    "apikey",
    "access_key",
    "private_key",
    "client_secret",
)

# Resolved relative to the config file directory by the loader.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("project", "workspace"),
    ("project", "todo"),
    ("scoring", "policy_file"),
)


class VersionControlConfig(TypedDict):
    before: bool
    after: bool
    auto_push: bool
    generate_notes: bool


class ProjectConfig(TypedDict):
    workspace: str
    todo: str
    version_control: VersionControlConfig


class ModelConfig(TypedDict):
    provider: Literal["mock", "openai"]
    name: str
    api_key_env: str


class LanguageConfig(TypedDict):
    tag: str


class LimitsConfig(TypedDict):
    loops: int | str


class CommandsConfig(TypedDict):
    run: str
    timeout_seconds: float
    kill_grace_seconds: float
    allow_unsafe_shell: bool


class PathsConfig(TypedDict):
    artifact_output: str
    generated_markdown: str
    log_dir: str
    tasks_state_dir: str


class NavigatorConfig(TypedDict):
    enabled: bool
    max_file_size: int


class ScoringConfig(TypedDict):
    pass_threshold: float
    warning_penalty: float
    partial_credit_threshold: float
    contracts: list[str]
    policy_file: str


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_to_stdout: bool
    trace_retain: int


class BoxSafeConfig(TypedDict):
    project: ProjectConfig
    model: ModelConfig
    language: LanguageConfig
    limits: LimitsConfig
    commands: CommandsConfig
    paths: PathsConfig
    navigator: NavigatorConfig
    scoring: ScoringConfig
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[BoxSafeConfig] = {
    "project": {
        "workspace": ".",
        "todo": "",
        "version_control": {
            "before": False,
            "after": False,
            "auto_push": False,
            "generate_notes": False,
        },
    },
    "model": {
        "provider": "mock",
        "name": "gpt-4.1-mini",
        "api_key_env": "OPENAI_API_KEY",
    },
    "language": {"tag": "py"},
    "limits": {"loops": DEFAULT_MAX_ITERATIONS},
    "commands": {
        "run": PLACEHOLDER_RUN_COMMAND,
        "timeout_seconds": DEFAULT_COMMAND_TIMEOUT_SECONDS,
        "kill_grace_seconds": DEFAULT_KILL_GRACE_SECONDS,
        "allow_unsafe_shell": False,
    },
    "paths": {
        "artifact_output": "",
        "generated_markdown": "memo/generated/codelog.md",
        "log_dir": "memo/state/logs",
        "tasks_state_dir": "memo/state/tasks",
    },
    "navigator": {
        "enabled": True,
        "max_file_size": DEFAULT_MAX_FILE_SIZE,
    },
    "scoring": {
        "pass_threshold": DEFAULT_PASS_THRESHOLD,
        "warning_penalty": DEFAULT_WARNING_PENALTY,
        "partial_credit_threshold": DEFAULT_PARTIAL_CREDIT_THRESHOLD,
        "contracts": [DEFAULT_SUCCESS_MARKER],
        "policy_file": "",
    },
    "observability": {
        "log_level": "INFO",
        "log_to_stdout": True,
        "trace_retain": DEFAULT_TRACE_RETAIN,
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> BoxSafeConfig:
    """Return a deep copy of deterministic built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``.

    Lists are replaced wholesale, never concatenated.
    """

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Validate config and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    normalized = _validate_root(root, issues)
    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def redact_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Return deterministic redacted representation for logs."""

    if not isinstance(config, Mapping):
        return {}
    redacted = _redact_value(config, parent_key=None)
    if isinstance(redacted, dict):
        return redacted
    return {}


def parse_loop_limit(value: int | str) -> int | None:
    """Map the validated ``limits.loops`` value to an iteration ceiling (``None`` = unbounded)."""

    if isinstance(value, str):
        return None
    return value


def _validate_root(payload: Mapping[str, object], issues: _IssueCollector) -> dict[str, Any]:
    sections = {
        "project": _validate_project,
        "model": _validate_model,
        "language": _validate_language,
        "limits": _validate_limits,
        "commands": _validate_commands,
        "paths": _validate_paths,
        "navigator": _validate_navigator,
        "scoring": _validate_scoring,
        "observability": _validate_observability,
    }
    _reject_unknown_keys(payload, set(sections), "", issues)
    _require_keys(payload, set(sections), "", issues)

    out: dict[str, Any] = {}
    for name in sorted(sections):
        if name not in payload:
            continue
        section = _as_object(payload[name], name, issues)
        if section is None:
            continue
        out[name] = sections[name](section, name, issues)
    return out


def _validate_project(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"workspace", "todo", "version_control"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "workspace" in payload:
        parsed_workspace = _as_path_text(payload["workspace"], _join(path, "workspace"), issues)
        if parsed_workspace is not None:
            out["workspace"] = parsed_workspace
    if "todo" in payload:
        parsed_todo = _as_optional_path_text(payload["todo"], _join(path, "todo"), issues)
        if parsed_todo is not None:
            out["todo"] = parsed_todo

    if "version_control" in payload:
        vc_path = _join(path, "version_control")
        section = _as_object(payload["version_control"], vc_path, issues)
        if section is not None:
            flags = {"before", "after", "auto_push", "generate_notes"}
            _reject_unknown_keys(section, flags, vc_path, issues)
            _require_keys(section, flags, vc_path, issues)
            vc_out: dict[str, bool] = {}
            for key in sorted(flags):
                if key in section:
                    parsed = _as_bool(section[key], _join(vc_path, key), issues)
                    if parsed is not None:
                        vc_out[key] = parsed
            out["version_control"] = vc_out
    return out


def _validate_model(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"provider", "name", "api_key_env"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "provider" in payload:
        parsed_provider = _as_enum(
            payload["provider"], _join(path, "provider"), issues, allowed_values=PROVIDER_NAMES
        )
        if parsed_provider is not None:
            out["provider"] = parsed_provider
    if "name" in payload:
        parsed_name = _as_str(payload["name"], _join(path, "name"), issues)
        if parsed_name is not None:
            out["name"] = parsed_name
    if "api_key_env" in payload:
        parsed_env = _as_env_name(payload["api_key_env"], _join(path, "api_key_env"), issues)
        if parsed_env is not None:
            out["api_key_env"] = parsed_env
    return out


def _validate_language(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"tag"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "tag" in payload:
        parsed = _as_str(payload["tag"], _join(path, "tag"), issues)
        if parsed is not None:
            lowered = parsed.lower()
            if _LANGUAGE_TAG_PATTERN.fullmatch(lowered) is None:
                issues.add(_join(path, "tag"), f"invalid language tag {parsed!r}")
            else:
                out["tag"] = lowered
    return out


def _validate_limits(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"loops"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "loops" in payload:
        raw = payload["loops"]
        loops_path = _join(path, "loops")
        if isinstance(raw, str):
            lowered = raw.strip().lower()
            if lowered == INFINITE_LOOPS_SENTINEL:
                out["loops"] = INFINITE_LOOPS_SENTINEL
            elif lowered.isdigit() and int(lowered) >= 1:
                out["loops"] = int(lowered)
            else:
                issues.add(
                    loops_path,
                    f"must be a positive integer or {INFINITE_LOOPS_SENTINEL!r} (got {raw!r})",
                )
        else:
            parsed = _as_int(raw, loops_path, issues, minimum=1)
            if parsed is not None:
                out["loops"] = parsed
    return out


def _validate_commands(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"run", "timeout_seconds", "kill_grace_seconds", "allow_unsafe_shell"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "run" in payload:
        parsed_run = _as_str(payload["run"], _join(path, "run"), issues)
        if parsed_run is not None:
            out["run"] = parsed_run
    for key in ("timeout_seconds", "kill_grace_seconds"):
        if key in payload:
            parsed_seconds = _as_float(payload[key], _join(path, key), issues, exclusive_min=0.0)
            if parsed_seconds is not None:
                out[key] = parsed_seconds
    if "allow_unsafe_shell" in payload:
        parsed_unsafe = _as_bool(
            payload["allow_unsafe_shell"], _join(path, "allow_unsafe_shell"), issues
        )
        if parsed_unsafe is not None:
            out["allow_unsafe_shell"] = parsed_unsafe
    return out


def _validate_paths(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    required = {"generated_markdown", "log_dir", "tasks_state_dir"}
    optional = {"artifact_output"}
    _reject_unknown_keys(payload, required | optional, path, issues)
    _require_keys(payload, required | optional, path, issues)

    out: dict[str, Any] = {}
    for key in sorted(required):
        if key in payload:
            parsed = _as_path_text(payload[key], _join(path, key), issues)
            if parsed is not None:
                out[key] = parsed
    for key in sorted(optional):
        if key in payload:
            parsed_optional = _as_optional_path_text(payload[key], _join(path, key), issues)
            if parsed_optional is not None:
                out[key] = parsed_optional
    return out


def _validate_navigator(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"enabled", "max_file_size"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "enabled" in payload:
        parsed_enabled = _as_bool(payload["enabled"], _join(path, "enabled"), issues)
        if parsed_enabled is not None:
            out["enabled"] = parsed_enabled
    if "max_file_size" in payload:
        parsed_size = _as_int(
            payload["max_file_size"], _join(path, "max_file_size"), issues, minimum=1
        )
        if parsed_size is not None:
            out["max_file_size"] = parsed_size
    return out


def _validate_scoring(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {
        "pass_threshold",
        "warning_penalty",
        "partial_credit_threshold",
        "contracts",
        "policy_file",
    }
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "pass_threshold" in payload:
        parsed_threshold = _as_float(
            payload["pass_threshold"],
            _join(path, "pass_threshold"),
            issues,
            minimum=0.0,
            maximum=100.0,
        )
        if parsed_threshold is not None:
            out["pass_threshold"] = parsed_threshold
    for key in ("warning_penalty", "partial_credit_threshold"):
        if key in payload:
            parsed_ratio = _as_float(
                payload[key], _join(path, key), issues, minimum=0.0, maximum=1.0
            )
            if parsed_ratio is not None:
                out[key] = parsed_ratio
    if "contracts" in payload:
        contracts_path = _join(path, "contracts")
        raw_contracts = payload["contracts"]
        if isinstance(raw_contracts, str) or not isinstance(raw_contracts, Sequence):
            issues.add(
                contracts_path,
                f"expected list of strings, got {type(raw_contracts).__name__}",
            )
        else:
            contracts: list[str] = []
            for index, item in enumerate(raw_contracts):
                parsed_marker = _as_str(item, f"{contracts_path}[{index}]", issues)
                if parsed_marker is not None:
                    contracts.append(parsed_marker)
            out["contracts"] = contracts
    if "policy_file" in payload:
        parsed_policy = _as_optional_path_text(
            payload["policy_file"], _join(path, "policy_file"), issues
        )
        if parsed_policy is not None:
            out["policy_file"] = parsed_policy
    return out


def _validate_observability(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"log_level", "log_to_stdout", "trace_retain"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "log_level" in payload:
        raw_level = payload["log_level"]
        normalized_level = raw_level.strip().upper() if isinstance(raw_level, str) else raw_level
        parsed_level = _as_enum(
            normalized_level, _join(path, "log_level"), issues, allowed_values=LOG_LEVELS
        )
        if parsed_level is not None:
            out["log_level"] = parsed_level
    if "log_to_stdout" in payload:
        parsed_stdout = _as_bool(payload["log_to_stdout"], _join(path, "log_to_stdout"), issues)
        if parsed_stdout is not None:
            out["log_to_stdout"] = parsed_stdout
    if "trace_retain" in payload:
        parsed_retain = _as_int(
            payload["trace_retain"], _join(path, "trace_retain"), issues, minimum=1
        )
        if parsed_retain is not None:
            out["trace_retain"] = parsed_retain
    return out


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_optional_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    if isinstance(value, str) and not value.strip():
        return ""
    return _as_path_text(value, path, issues)


def _as_env_name(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if not _ENV_NAME_PATTERN.fullmatch(parsed):
        issues.add(path, "must be an env var name (example: OPENAI_API_KEY)")
        return None
    return parsed


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_float(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: float | None = None,
    maximum: float | None = None,
    exclusive_min: float | None = None,
) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if minimum is not None and parsed < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    if maximum is not None and parsed > maximum:
        issues.add(path, f"must be <= {maximum}")
        return None
    if exclusive_min is not None and parsed <= exclusive_min:
        issues.add(path, f"must be > {exclusive_min}")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key in allowed:
            continue
        key_path = _join(path, key)
        if _looks_sensitive_key(key):
            issues.add(
                key_path,
                "embedded secret values are forbidden; use an *_env key with an env var name",
            )
        else:
            issues.add(key_path, "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _looks_sensitive_key(key: str) -> bool:
    normalized = _normalize_key(key)
    if normalized.endswith("_env"):
        return False
    if any(phrase in normalized for phrase in _SENSITIVE_KEY_PHRASES):
        return True
    tokens = tuple(token for token in normalized.split("_") if token)
    return any(token in _SENSITIVE_KEY_TOKENS for token in tokens)


def _normalize_key(key: str) -> str:
    with_boundaries = _CAMEL_CASE_BOUNDARY.sub(r"\1_\2", key.strip())
    return _NON_ALNUM.sub("_", with_boundaries.lower()).strip("_")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            if isinstance(existing, dict):
                _merge_into(existing, value)
            else:
                nested: dict[str, Any] = {}
                _merge_into(nested, value)
                target[key] = nested
        else:
            target[key] = _deep_copy_value(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key in sorted(value):
        out[key] = _deep_copy_value(value[key])
    return out


def _deep_copy_value(value: object) -> Any:
    if isinstance(value, Mapping):
        return {key: _deep_copy_value(item) for key, item in value.items() if isinstance(key, str)}
    if isinstance(value, list):
        return [_deep_copy_value(item) for item in value]
    if isinstance(value, tuple):
        return [_deep_copy_value(item) for item in value]
    return copy.deepcopy(value)


def _redact_value(value: object, parent_key: str | None) -> object:
    if isinstance(value, Mapping):
        out: dict[str, object] = {}
        for key in sorted(value):
            item = value[key]
            if _looks_sensitive_key(key):
                out[key] = "<redacted>"
            else:
                out[key] = _redact_value(item, key)
        return out
    if isinstance(value, (list, tuple)):
        return [_redact_value(item, parent_key) for item in value]
    return value


__all__ = [
    "DEFAULT_CONFIG",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "PROVIDER_NAMES",
    "BoxSafeConfig",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "parse_loop_limit",
    "redact_config",
    "validate_config",
]
