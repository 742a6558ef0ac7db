"""Unit tests for language tag aliases and artifact extensions."""

from __future__ import annotations

import pytest

from boxsafe.domain.languages import artifact_extension, canonical_language, language_aliases


@pytest.mark.parametrize(
    ("tag", "canonical"),
    [("Python", "py"), ("python3", "py"), (" bash ", "sh"), ("node", "js"), ("kotlin", "kotlin")],
)
def test_canonical_language(tag: str, canonical: str) -> None:
    assert canonical_language(tag) == canonical


def test_aliases_include_every_accepted_fence_tag() -> None:
    assert language_aliases("shell") == ("sh", "bash", "shell", "zsh")
    assert language_aliases("Elixir") == ("elixir",)


def test_artifact_extension_falls_back_to_the_tag() -> None:
    assert artifact_extension("typescript") == "ts"
    assert artifact_extension("kotlin") == "kotlin"
    assert artifact_extension("") == "txt"
