"""Verification plane: weighted outcome scoring."""

from boxsafe.verification_plane.policy import (
    CheckWeights,
    ScoringPolicy,
    ScoringPolicyError,
    load_policy_file,
    resolve_scoring_policy,
)
from boxsafe.verification_plane.scorer import (
    CheckResult,
    CheckSeverity,
    OutcomeScorer,
    ScoreBreakdown,
    ScoreLayer,
    ScoreVerdict,
)

__all__ = [
    "CheckResult",
    "CheckSeverity",
    "CheckWeights",
    "OutcomeScorer",
    "ScoreBreakdown",
    "ScoreLayer",
    "ScoreVerdict",
    "ScoringPolicy",
    "ScoringPolicyError",
    "load_policy_file",
    "resolve_scoring_policy",
]
