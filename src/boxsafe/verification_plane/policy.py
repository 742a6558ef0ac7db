"""
boxsafe — scoring policy

File: src/boxsafe/verification_plane/policy.py

Purpose
- Immutable weights, thresholds, stderr patterns and success contracts consumed by
  ``OutcomeScorer``.

Functional requirements
- Defaults mirror the ``[scoring]`` config section.
- A YAML policy file may override any field; ``BOXSAFE_SUCCESS_CONTRACTS`` overrides the
  contract list last.
- Invalid policies raise ``ScoringPolicyError`` with every problem listed.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Final

import structlog
import yaml

from boxsafe.constants import (
    DEFAULT_PARTIAL_CREDIT_THRESHOLD,
    DEFAULT_PASS_THRESHOLD,
    DEFAULT_SUCCESS_MARKER,
    DEFAULT_WARNING_PENALTY,
    ENV_SUCCESS_CONTRACTS,
)

_logger = structlog.get_logger(__name__)

DEFAULT_CRITICAL_STDERR_PATTERNS: Final[tuple[str, ...]] = (
    r"fatal error",
    r"segmentation fault",
    r"core dumped",
    r"unhandled exception",
    r"Traceback \(most recent call last\)",
)
DEFAULT_WARNING_STDERR_PATTERNS: Final[tuple[str, ...]] = (
    r"warning:",
    r"deprecated",
)

_POLICY_KEYS: Final[frozenset[str]] = frozenset(
    {
        "weights",
        "pass_threshold",
        "warning_penalty",
        "partial_credit_threshold",
        "contracts",
        "critical_stderr_patterns",
        "warning_stderr_patterns",
    }
)
_WEIGHT_KEYS: Final[tuple[str, ...]] = ("exit_code", "stderr", "output_contract", "artifact")


class ScoringPolicyError(ValueError):
    """Raised when a scoring policy is inconsistent or cannot be loaded."""


@dataclass(frozen=True, slots=True)
class CheckWeights:
    exit_code: float = 40.0
    stderr: float = 20.0
    output_contract: float = 30.0
    artifact: float = 10.0

    @property
    def total(self) -> float:
        return self.exit_code + self.stderr + self.output_contract + self.artifact

    def to_dict(self) -> dict[str, float]:
        return {key: float(getattr(self, key)) for key in _WEIGHT_KEYS}


@dataclass(frozen=True, slots=True)
class ScoringPolicy:
    """Read-only scoring constants; build once per run and share."""

    weights: CheckWeights = field(default_factory=CheckWeights)
    pass_threshold: float = DEFAULT_PASS_THRESHOLD
    warning_penalty: float = DEFAULT_WARNING_PENALTY
    partial_credit_threshold: float = DEFAULT_PARTIAL_CREDIT_THRESHOLD
    contracts: tuple[str, ...] = (DEFAULT_SUCCESS_MARKER,)
    critical_stderr_patterns: tuple[str, ...] = DEFAULT_CRITICAL_STDERR_PATTERNS
    warning_stderr_patterns: tuple[str, ...] = DEFAULT_WARNING_STDERR_PATTERNS

    def __post_init__(self) -> None:
        problems: list[str] = []
        for key in _WEIGHT_KEYS:
            if getattr(self.weights, key) < 0:
                problems.append(f"weights.{key} must be >= 0")
        if abs(self.weights.total - 100.0) > 1e-9:
            problems.append(f"weights must sum to 100 (got {self.weights.total:g})")
        if not 0.0 <= self.pass_threshold <= 100.0:
            problems.append("pass_threshold must be within [0, 100]")
        if not 0.0 <= self.warning_penalty <= 1.0:
            problems.append("warning_penalty must be within [0, 1]")
        if not 0.0 < self.partial_credit_threshold <= 1.0:
            problems.append("partial_credit_threshold must be within (0, 1]")
        for name in ("critical_stderr_patterns", "warning_stderr_patterns"):
            for pattern in getattr(self, name):
                try:
                    re.compile(pattern)
                except re.error as exc:
                    problems.append(f"{name}: invalid regex {pattern!r}: {exc}")
        for marker in self.contracts:
            if _is_regex_marker(marker):
                try:
                    re.compile(marker[1:-1])
                except re.error as exc:
                    problems.append(f"contracts: invalid regex {marker!r}: {exc}")
        if problems:
            raise ScoringPolicyError("; ".join(problems))

    @property
    def max_score(self) -> float:
        return self.weights.total

    @classmethod
    def from_mapping(
        cls,
        payload: Mapping[str, Any],
        *,
        base: ScoringPolicy | None = None,
        source: str = "scoring policy",
    ) -> ScoringPolicy:
        """Overlay recognised keys of ``payload`` on ``base`` (defaults when omitted)."""
        start = base if base is not None else cls()
        unknown = sorted(str(key) for key in payload if key not in _POLICY_KEYS)
        if unknown:
            raise ScoringPolicyError(f"{source}: unknown keys: {', '.join(unknown)}")

        changes: dict[str, Any] = {}
        if "weights" in payload:
            changes["weights"] = _coerce_weights(payload["weights"], start.weights, source)
        for key in ("pass_threshold", "warning_penalty", "partial_credit_threshold"):
            if key in payload:
                changes[key] = _coerce_number(payload[key], f"{source}: {key}")
        for key in ("contracts", "critical_stderr_patterns", "warning_stderr_patterns"):
            if key in payload:
                changes[key] = _coerce_strings(payload[key], f"{source}: {key}")
        return replace(start, **changes)

    def with_contracts(self, contracts: Sequence[str]) -> ScoringPolicy:
        return replace(self, contracts=tuple(contracts))

    def to_dict(self) -> dict[str, Any]:
        return {
            "weights": self.weights.to_dict(),
            "pass_threshold": self.pass_threshold,
            "warning_penalty": self.warning_penalty,
            "partial_credit_threshold": self.partial_credit_threshold,
            "contracts": list(self.contracts),
            "critical_stderr_patterns": list(self.critical_stderr_patterns),
            "warning_stderr_patterns": list(self.warning_stderr_patterns),
        }


def load_policy_file(path: Path | str) -> dict[str, Any]:
    policy_path = Path(path)
    try:
        with policy_path.open("r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle)
    except OSError as exc:
        raise ScoringPolicyError(
            f"failed to read scoring policy {policy_path.as_posix()}: {exc}"
        ) from exc
    except yaml.YAMLError as exc:
        raise ScoringPolicyError(f"invalid YAML in {policy_path.as_posix()}: {exc}") from exc

    if payload is None:
        return {}
    if not isinstance(payload, Mapping):
        raise ScoringPolicyError(f"{policy_path.as_posix()} must contain a mapping")
    scoring = payload.get("scoring", payload)
    if not isinstance(scoring, Mapping):
        raise ScoringPolicyError(f"{policy_path.as_posix()}: 'scoring' must be a mapping")
    return dict(scoring)


def parse_contract_list(raw: str) -> tuple[str, ...]:
    """Split a comma-separated marker list; blank entries are dropped."""
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def resolve_scoring_policy(
    scoring: Mapping[str, Any] | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> ScoringPolicy:
    """Build the effective policy from config values, the policy file and the environment."""
    section = dict(scoring or {})
    policy_file = str(section.pop("policy_file", "") or "")
    policy = ScoringPolicy.from_mapping(section, source="[scoring]")

    if policy_file:
        policy = ScoringPolicy.from_mapping(
            load_policy_file(policy_file), base=policy, source=policy_file
        )
        _logger.debug("scoring_policy_file_loaded", path=policy_file)

    env = os.environ if environ is None else environ
    raw_contracts = env.get(ENV_SUCCESS_CONTRACTS)
    if raw_contracts is not None and raw_contracts.strip():
        policy = policy.with_contracts(parse_contract_list(raw_contracts))
        _logger.debug("scoring_contracts_from_env", contracts=list(policy.contracts))
    return policy


def _is_regex_marker(marker: str) -> bool:
    return len(marker) >= 2 and marker.startswith("/") and marker.endswith("/")


def _coerce_weights(value: object, base: CheckWeights, source: str) -> CheckWeights:
    if not isinstance(value, Mapping):
        raise ScoringPolicyError(f"{source}: weights must be a mapping")
    unknown = sorted(str(key) for key in value if key not in _WEIGHT_KEYS)
    if unknown:
        raise ScoringPolicyError(f"{source}: unknown weights: {', '.join(unknown)}")
    changes = {
        str(key): _coerce_number(item, f"{source}: weights.{key}") for key, item in value.items()
    }
    return replace(base, **changes)


def _coerce_number(value: object, label: str) -> float:
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise ScoringPolicyError(f"{label} must be a number")
    return float(value)


def _coerce_strings(value: object, label: str) -> tuple[str, ...]:
    if isinstance(value, str) or not isinstance(value, Sequence):
        raise ScoringPolicyError(f"{label} must be a list of strings")
    items: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ScoringPolicyError(f"{label} must be a list of strings")
        items.append(item)
    return tuple(items)


__all__ = [
    "DEFAULT_CRITICAL_STDERR_PATTERNS",
    "DEFAULT_WARNING_STDERR_PATTERNS",
    "CheckWeights",
    "ScoringPolicy",
    "ScoringPolicyError",
    "load_policy_file",
    "parse_contract_list",
    "resolve_scoring_policy",
]
