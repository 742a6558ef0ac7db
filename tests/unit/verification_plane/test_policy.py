"""Unit tests for scoring policy construction and overrides."""

from __future__ import annotations

from pathlib import Path

import pytest

from boxsafe.verification_plane.policy import (
    CheckWeights,
    ScoringPolicy,
    ScoringPolicyError,
    load_policy_file,
    parse_contract_list,
    resolve_scoring_policy,
)


def test_default_policy_matches_documented_weights() -> None:
    policy = ScoringPolicy()

    assert policy.weights.to_dict() == {
        "exit_code": 40.0,
        "stderr": 20.0,
        "output_contract": 30.0,
        "artifact": 10.0,
    }
    assert policy.max_score == 100
    assert policy.pass_threshold == 70
    assert policy.contracts == ("__RESULT__=SUCCESS",)


def test_invalid_policy_lists_every_problem() -> None:
    with pytest.raises(ScoringPolicyError) as excinfo:
        ScoringPolicy(
            weights=CheckWeights(exit_code=50),
            pass_threshold=120,
            warning_penalty=2,
            critical_stderr_patterns=("(unclosed",),
        )

    message = str(excinfo.value)
    assert "weights must sum to 100" in message
    assert "pass_threshold" in message
    assert "warning_penalty" in message
    assert "invalid regex" in message


def test_from_mapping_rejects_unknown_keys() -> None:
    with pytest.raises(ScoringPolicyError, match="unknown keys: bonus"):
        ScoringPolicy.from_mapping({"bonus": 5})


def test_policy_file_overlays_config_values(tmp_path: Path) -> None:
    policy_file = tmp_path / "policy.yaml"
    policy_file.write_text(
        "scoring:\n"
        "  pass_threshold: 80\n"
        "  weights:\n"
        "    exit_code: 50\n"
        "    stderr: 10\n"
        "  contracts:\n"
        "    - DONE\n",
        encoding="utf-8",
    )

    policy = resolve_scoring_policy(
        {"pass_threshold": 60.0, "warning_penalty": 0.25, "policy_file": str(policy_file)},
        environ={},
    )

    assert policy.pass_threshold == 80
    assert policy.warning_penalty == 0.25
    assert policy.weights.exit_code == 50
    assert policy.weights.stderr == 10
    assert policy.weights.output_contract == 30
    assert policy.contracts == ("DONE",)


def test_environment_contracts_override_last() -> None:
    policy = resolve_scoring_policy(
        {"contracts": ["FROM_CONFIG"]},
        environ={"BOXSAFE_SUCCESS_CONTRACTS": "OK_1, /done=\\d+/ ,"},
    )

    assert policy.contracts == ("OK_1", "/done=\\d+/")


def test_blank_environment_contracts_are_ignored() -> None:
    policy = resolve_scoring_policy({}, environ={"BOXSAFE_SUCCESS_CONTRACTS": "  "})

    assert policy.contracts == ("__RESULT__=SUCCESS",)


def test_load_policy_file_reports_yaml_and_shape_errors(tmp_path: Path) -> None:
    broken = tmp_path / "broken.yaml"
    broken.write_text("scoring: [unclosed\n", encoding="utf-8")
    listing = tmp_path / "list.yaml"
    listing.write_text("- 1\n- 2\n", encoding="utf-8")

    with pytest.raises(ScoringPolicyError, match="invalid YAML"):
        load_policy_file(broken)
    with pytest.raises(ScoringPolicyError, match="must contain a mapping"):
        load_policy_file(listing)
    with pytest.raises(ScoringPolicyError, match="failed to read"):
        load_policy_file(tmp_path / "missing.yaml")
    assert load_policy_file(_empty(tmp_path)) == {}


def test_parse_contract_list_drops_blanks() -> None:
    assert parse_contract_list(" a ,, b ,") == ("a", "b")


def _empty(tmp_path: Path) -> Path:
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    return path
