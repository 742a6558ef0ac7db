"""Language tags: aliases used in fenced code blocks and artifact file extensions."""

from __future__ import annotations

from types import MappingProxyType
from typing import Final

# canonical tag -> every fence tag that should be accepted for it
LANGUAGE_ALIASES: Final = MappingProxyType(
    {
        "py": ("py", "python", "python3"),
        "js": ("js", "javascript", "node", "mjs"),
        "ts": ("ts", "typescript"),
        "sh": ("sh", "bash", "shell", "zsh"),
        "rs": ("rs", "rust"),
        "go": ("go", "golang"),
        "rb": ("rb", "ruby"),
    }
)

_EXTENSIONS: Final = MappingProxyType(
    {"py": "py", "js": "js", "ts": "ts", "sh": "sh", "rs": "rs", "go": "go", "rb": "rb"}
)

_ALIAS_LOOKUP: Final = MappingProxyType(
    {alias: canonical for canonical, aliases in LANGUAGE_ALIASES.items() for alias in aliases}
)


def canonical_language(tag: str) -> str:
    """Return the canonical tag for ``tag``; unknown tags are returned lower-cased."""
    normalized = tag.strip().lower()
    return _ALIAS_LOOKUP.get(normalized, normalized)


def language_aliases(tag: str) -> tuple[str, ...]:
    canonical = canonical_language(tag)
    return LANGUAGE_ALIASES.get(canonical, (canonical,))


def artifact_extension(tag: str) -> str:
    canonical = canonical_language(tag)
    return _EXTENSIONS.get(canonical, canonical or "txt")


__all__ = [
    "LANGUAGE_ALIASES",
    "artifact_extension",
    "canonical_language",
    "language_aliases",
]
