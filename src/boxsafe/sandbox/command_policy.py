"""
Pattern-based screening for shell command strings.

This is a heuristic against accidental damage from generated commands, not an isolation
boundary. Argv-form commands never pass through a shell and are not screened.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Final

from boxsafe.constants import ENV_ALLOW_UNSAFE_SHELL

_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "yes"})

SHELL_METACHARACTER_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"[;&|`\n\r]|\$\(|\$\{|>>?|<\(|<"
)

DESTRUCTIVE_PATTERNS: Final[tuple[tuple[str, re.Pattern[str]], ...]] = (
    (
        "recursive force delete",
        re.compile(
            r"\brm\s+(?:-[A-Za-z]*r[A-Za-z]*f[A-Za-z]*|-[A-Za-z]*f[A-Za-z]*r[A-Za-z]*"
            r"|(?:-[A-Za-z]+\s+)*--recursive\s+--force|(?:-[A-Za-z]+\s+)*--force\s+--recursive"
            r"|-r\s+-f|-f\s+-r)\b",
            re.IGNORECASE,
        ),
    ),
    ("filesystem format", re.compile(r"\bmkfs(?:\.\w+)?\b", re.IGNORECASE)),
    ("raw disk copy", re.compile(r"\bdd\s+.*\bif=", re.IGNORECASE)),
    ("block device write", re.compile(r"/dev/(?:sd[a-z]|nvme\d|hd[a-z]|disk\d|mmcblk\d)")),
    ("power control", re.compile(r"\b(?:shutdown|reboot|halt|poweroff)\b", re.IGNORECASE)),
    ("fork bomb", re.compile(r":\s*\(\s*\)\s*\{")),
)


@dataclass(frozen=True, slots=True)
class PolicyDecision:
    allowed: bool
    reason: str | None = None


class ShellCommandPolicy:
    """Decide whether a shell command string may run."""

    def __init__(self, *, allow_unsafe: bool = False) -> None:
        self._allow_unsafe = allow_unsafe

    @property
    def allow_unsafe(self) -> bool:
        return self._allow_unsafe

    @classmethod
    def from_environment(
        cls,
        *,
        configured_allow_unsafe: bool = False,
        environ: Mapping[str, str] | None = None,
    ) -> ShellCommandPolicy:
        env = os.environ if environ is None else environ
        toggle = env.get(ENV_ALLOW_UNSAFE_SHELL, "").strip().lower() in _TRUTHY
        return cls(allow_unsafe=configured_allow_unsafe or toggle)

    def evaluate(self, command: str) -> PolicyDecision:
        if self._allow_unsafe:
            return PolicyDecision(allowed=True)
        for label, pattern in DESTRUCTIVE_PATTERNS:
            if pattern.search(command):
                return PolicyDecision(allowed=False, reason=label)
        match = SHELL_METACHARACTER_PATTERN.search(command)
        if match is not None:
            return PolicyDecision(allowed=False, reason=f"shell metacharacter {match.group(0)!r}")
        return PolicyDecision(allowed=True)


__all__ = [
    "DESTRUCTIVE_PATTERNS",
    "SHELL_METACHARACTER_PATTERN",
    "PolicyDecision",
    "ShellCommandPolicy",
]
