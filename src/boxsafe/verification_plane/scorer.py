"""
boxsafe — outcome scorer

File: src/boxsafe/verification_plane/scorer.py

Purpose
- Turn one ``ExecResult`` (plus an optional artifact path) into a weighted verdict.

Functional requirements
- Four checks run in order: exit code, stderr, output contract, artifact.
- A critical failure stops evaluation; later checks are reported as skipped with no points.
- Non-critical failures cost points but evaluation continues.
- Verdict is success iff no critical failure occurred and the total reaches the policy's
  pass threshold.
- ``score`` rejects with ``asyncio.CancelledError`` when the token is already cancelled.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any, Final

import structlog

from boxsafe.sandbox.executor import ExecResult
from boxsafe.utils.concurrency import CancellationToken
from boxsafe.verification_plane.policy import ScoringPolicy

_DETAIL_LIMIT: Final[int] = 500

_logger = structlog.get_logger(__name__)


class CheckSeverity(StrEnum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ScoreLayer(StrEnum):
    EXIT_CODE = "exit-code"
    STDERR = "stderr"
    OUTPUT_CONTRACT = "output-contract"
    ARTIFACT = "artifact"
    THRESHOLD = "threshold"


@dataclass(frozen=True, slots=True)
class CheckResult:
    passed: bool
    points: float
    max_points: float
    severity: CheckSeverity
    message: str
    skipped: bool = False
    details: str | None = None

    @property
    def critical_failure(self) -> bool:
        return not self.passed and not self.skipped and self.severity is CheckSeverity.CRITICAL

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "passed": self.passed,
            "points": self.points,
            "max_points": self.max_points,
            "severity": self.severity.value,
            "message": self.message,
            "skipped": self.skipped,
        }
        if self.details is not None:
            payload["details"] = self.details
        return payload


@dataclass(frozen=True, slots=True)
class ScoreBreakdown:
    exit_code: CheckResult
    stderr: CheckResult
    output_contract: CheckResult
    artifact: CheckResult

    def items(self) -> tuple[tuple[ScoreLayer, CheckResult], ...]:
        return (
            (ScoreLayer.EXIT_CODE, self.exit_code),
            (ScoreLayer.STDERR, self.stderr),
            (ScoreLayer.OUTPUT_CONTRACT, self.output_contract),
            (ScoreLayer.ARTIFACT, self.artifact),
        )

    @property
    def total_score(self) -> float:
        return sum(check.points for _, check in self.items())

    @property
    def max_score(self) -> float:
        return sum(check.max_points for _, check in self.items())

    @property
    def critical_failed(self) -> bool:
        return any(check.critical_failure for _, check in self.items())

    def to_dict(self) -> dict[str, Any]:
        checks = {layer.value: check.to_dict() for layer, check in self.items()}
        return {
            "checks": checks,
            "total_score": self.total_score,
            "max_score": self.max_score,
        }


@dataclass(frozen=True, slots=True)
class ScoreVerdict:
    """Final decision; ``layer``/``reason`` name the first failing check when not ok."""

    ok: bool
    score: float
    breakdown: ScoreBreakdown
    layer: ScoreLayer | None = None
    reason: str | None = None
    details: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "score": self.score,
            "layer": self.layer.value if self.layer is not None else None,
            "reason": self.reason,
            "details": self.details,
            "breakdown": self.breakdown.to_dict(),
        }


class OutcomeScorer:
    """Waterfall scorer over a fixed ``ScoringPolicy``."""

    def __init__(self, policy: ScoringPolicy | None = None) -> None:
        self._policy = policy if policy is not None else ScoringPolicy()
        self._critical_patterns = tuple(
            re.compile(pattern, re.IGNORECASE) for pattern in self._policy.critical_stderr_patterns
        )
        self._warning_patterns = tuple(
            re.compile(pattern, re.IGNORECASE) for pattern in self._policy.warning_stderr_patterns
        )

    @property
    def policy(self) -> ScoringPolicy:
        return self._policy

    def score(
        self,
        result: ExecResult,
        artifact_path: Path | str | None = None,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> ScoreVerdict:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        weights = self._policy.weights
        artifact = Path(artifact_path) if artifact_path else None

        exit_check = self._check_exit_code(result)
        if exit_check.critical_failure:
            breakdown = ScoreBreakdown(
                exit_code=exit_check,
                stderr=_skipped(weights.stderr, CheckSeverity.HIGH, ScoreLayer.EXIT_CODE),
                output_contract=_skipped(
                    weights.output_contract, CheckSeverity.MEDIUM, ScoreLayer.EXIT_CODE
                ),
                artifact=_skipped(weights.artifact, CheckSeverity.LOW, ScoreLayer.EXIT_CODE),
            )
            return self._finish(breakdown)

        stderr_check = self._check_stderr(result)
        if stderr_check.critical_failure:
            breakdown = ScoreBreakdown(
                exit_code=exit_check,
                stderr=stderr_check,
                output_contract=_skipped(
                    weights.output_contract, CheckSeverity.MEDIUM, ScoreLayer.STDERR
                ),
                artifact=_skipped(weights.artifact, CheckSeverity.LOW, ScoreLayer.STDERR),
            )
            return self._finish(breakdown)

        artifact_text, artifact_error = _read_artifact(artifact)
        breakdown = ScoreBreakdown(
            exit_code=exit_check,
            stderr=stderr_check,
            output_contract=self._check_output_contract(result, artifact_text),
            artifact=self._check_artifact(artifact, artifact_text, artifact_error),
        )
        return self._finish(breakdown)

    def _check_exit_code(self, result: ExecResult) -> CheckResult:
        weight = self._policy.weights.exit_code
        if result.exit_code == 0 and not result.timed_out:
            return CheckResult(True, weight, weight, CheckSeverity.CRITICAL, "exit code 0")
        message = "Process exited with non-zero code"
        if result.timed_out:
            message = "Process timed out"
        elif result.blocked:
            message = "Command was blocked before execution"
        return CheckResult(
            False,
            0.0,
            weight,
            CheckSeverity.CRITICAL,
            message,
            details=f"exitCode={result.exit_code}",
        )

    def _check_stderr(self, result: ExecResult) -> CheckResult:
        weight = self._policy.weights.stderr
        stderr = result.stderr
        for pattern in self._critical_patterns:
            if pattern.search(stderr):
                return CheckResult(
                    False,
                    0.0,
                    weight,
                    CheckSeverity.CRITICAL,
                    "Critical error detected in stderr",
                    details=stderr[:_DETAIL_LIMIT],
                )
        warnings = [pattern.pattern for pattern in self._warning_patterns if pattern.search(stderr)]
        if warnings:
            points = weight * (1.0 - self._policy.warning_penalty)
            return CheckResult(
                True,
                points,
                weight,
                CheckSeverity.HIGH,
                f"warnings in stderr: {', '.join(warnings)}",
                details=stderr[:_DETAIL_LIMIT],
            )
        return CheckResult(True, weight, weight, CheckSeverity.HIGH, "stderr clean")

    def _check_output_contract(self, result: ExecResult, artifact_text: str | None) -> CheckResult:
        weight = self._policy.weights.output_contract
        contracts = self._policy.contracts
        if not contracts:
            return CheckResult(True, weight, weight, CheckSeverity.MEDIUM, "no contract required")
        if _stdout_reports_success(result.stdout):
            return CheckResult(
                True, weight, weight, CheckSeverity.MEDIUM, "stdout JSON reports success"
            )

        matched = [marker for marker in contracts if _marker_matches(marker, result.stdout)]
        source = "stdout"
        if not matched and artifact_text is not None:
            matched = [marker for marker in contracts if _marker_matches(marker, artifact_text)]
            source = "artifact"

        fraction = len(matched) / len(contracts)
        if matched and fraction >= self._policy.partial_credit_threshold:
            return CheckResult(
                True,
                weight * fraction,
                weight,
                CheckSeverity.MEDIUM,
                f"{len(matched)}/{len(contracts)} contract markers matched in {source}",
            )
        return CheckResult(
            False,
            0.0,
            weight,
            CheckSeverity.MEDIUM,
            "Success contract not found in stdout",
            details=result.stdout[:_DETAIL_LIMIT],
        )

    def _check_artifact(
        self,
        artifact: Path | None,
        artifact_text: str | None,
        artifact_error: str | None,
    ) -> CheckResult:
        weight = self._policy.weights.artifact
        if artifact is None:
            return CheckResult(True, weight, weight, CheckSeverity.LOW, "no artifact to validate")
        if artifact_error is not None:
            return CheckResult(
                False,
                0.0,
                weight,
                CheckSeverity.LOW,
                "Failed to read output artifact",
                details=artifact_error,
            )
        if not artifact_text or not artifact_text.strip():
            return CheckResult(False, 0.0, weight, CheckSeverity.LOW, "Output file is empty")
        return CheckResult(True, weight, weight, CheckSeverity.LOW, "artifact present")

    def _finish(self, breakdown: ScoreBreakdown) -> ScoreVerdict:
        total = breakdown.total_score
        threshold = self._policy.pass_threshold
        failed = [
            (layer, check)
            for layer, check in breakdown.items()
            if not check.passed and not check.skipped
        ]

        if not breakdown.critical_failed and total >= threshold:
            verdict = ScoreVerdict(ok=True, score=total, breakdown=breakdown)
        elif failed:
            layer, check = failed[0]
            verdict = ScoreVerdict(
                ok=False,
                score=total,
                breakdown=breakdown,
                layer=layer,
                reason=check.message,
                details=check.details,
            )
        else:
            verdict = ScoreVerdict(
                ok=False,
                score=total,
                breakdown=breakdown,
                layer=ScoreLayer.THRESHOLD,
                reason=f"score {total:g} below pass threshold {threshold:g}",
            )

        _logger.info(
            "outcome_scored",
            ok=verdict.ok,
            score=round(total, 3),
            layer=verdict.layer.value if verdict.layer is not None else None,
        )
        return verdict


def _skipped(weight: float, severity: CheckSeverity, after: ScoreLayer) -> CheckResult:
    return CheckResult(
        False,
        0.0,
        weight,
        severity,
        f"skipped after critical {after.value} failure",
        skipped=True,
    )


def _read_artifact(artifact: Path | None) -> tuple[str | None, str | None]:
    if artifact is None:
        return (None, None)
    try:
        return (artifact.read_text(encoding="utf-8", errors="replace"), None)
    except OSError as exc:
        return (None, exc.strerror or str(exc))


def _stdout_reports_success(stdout: str) -> bool:
    text = stdout.strip()
    if not text.startswith("{"):
        return False
    try:
        payload = json.loads(text)
    except ValueError:
        return False
    if not isinstance(payload, dict):
        return False
    return any(payload.get(key) == "success" for key in ("result", "status"))


def _marker_matches(marker: str, text: str) -> bool:
    if len(marker) >= 2 and marker.startswith("/") and marker.endswith("/"):
        return re.search(marker[1:-1], text) is not None
    return marker in text


__all__ = [
    "CheckResult",
    "CheckSeverity",
    "OutcomeScorer",
    "ScoreBreakdown",
    "ScoreLayer",
    "ScoreVerdict",
]
