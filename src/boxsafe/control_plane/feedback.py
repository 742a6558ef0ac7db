"""
Control-plane retry feedback.

Builds the corrective prompt for the next iteration from the objective and the failed
verdict. Output excerpts are trimmed and redacted before they reach the model.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Final

from boxsafe.observability.logging import redact_text
from boxsafe.sandbox.executor import ExecResult
from boxsafe.synthesis_plane.tool_calls import ToolCallParseError
from boxsafe.verification_plane.scorer import ScoreLayer, ScoreVerdict

_EXCERPT_LIMIT: Final[int] = 1500

_LAYER_HINTS: Final[dict[ScoreLayer, str]] = {
    ScoreLayer.EXIT_CODE: "The program must exit with status 0.",
    ScoreLayer.STDERR: "Remove the crash or uncaught error reported on stderr.",
    ScoreLayer.OUTPUT_CONTRACT: (
        "Print the required success marker to stdout when the task succeeds."
    ),
    ScoreLayer.ARTIFACT: "Make sure the generated file is written and non-empty.",
    ScoreLayer.THRESHOLD: "Address the failing checks listed below to raise the score.",
}


def build_retry_prompt(
    objective: str,
    verdict: ScoreVerdict,
    result: ExecResult,
    *,
    iteration: int,
    contracts: Sequence[str] = (),
    tool_errors: Sequence[ToolCallParseError] = (),
) -> str:
    layer = verdict.layer if verdict.layer is not None else ScoreLayer.THRESHOLD
    lines = [
        objective.rstrip(),
        "",
        f"PREVIOUS ATTEMPT {iteration} FAILED (layer: {layer.value}, score: {verdict.score:g}).",
        f"Reason: {verdict.reason or 'score below pass threshold'}",
        f"Hint: {_LAYER_HINTS[layer]}",
    ]
    if contracts and layer in {ScoreLayer.OUTPUT_CONTRACT, ScoreLayer.THRESHOLD}:
        lines.append("Required stdout markers: " + ", ".join(contracts))

    failing = [
        f"- {name.value}: {check.message}"
        for name, check in verdict.breakdown.items()
        if not check.passed and not check.skipped
    ]
    if failing:
        lines.extend(["", "Failing checks:", *failing])

    exit_line = f"Exit code: {result.exit_code}"
    if result.timed_out:
        exit_line += " (timed out)"
    lines.extend(["", exit_line])
    if result.stderr.strip():
        lines.extend(["stderr (tail):", _excerpt(result.stderr)])
    if result.stdout.strip():
        lines.extend(["stdout (tail):", _excerpt(result.stdout)])
    if tool_errors:
        lines.extend(["", "Rejected tool calls:", *(f"- {error.error}" for error in tool_errors)])

    lines.extend(["", "Return a corrected, complete program in a single code block."])
    return "\n".join(lines)


def build_missing_code_prompt(objective: str, guidance: str) -> str:
    return f"{objective.rstrip()}\n\n{guidance}"


def _excerpt(text: str) -> str:
    trimmed = text.strip()
    if len(trimmed) > _EXCERPT_LIMIT:
        trimmed = "..." + trimmed[-_EXCERPT_LIMIT:]
    return redact_text(trimmed)


__all__ = ["build_missing_code_prompt", "build_retry_prompt"]
