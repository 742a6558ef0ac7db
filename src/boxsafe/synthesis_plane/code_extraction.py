"""Pull target-language code out of a model response, or produce corrective guidance."""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from boxsafe.domain.languages import language_aliases
from boxsafe.synthesis_plane.markdown import iter_code_blocks

_logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class CodeExtraction:
    """Blocks found for ``language`` in document order; ``guidance`` is set when none were."""

    language: str
    blocks: tuple[str, ...]
    guidance: str | None = None

    @property
    def found(self) -> bool:
        return bool(self.blocks)

    @property
    def code(self) -> str | None:
        """The artifact source: the first matching block."""
        return self.blocks[0] if self.blocks else None


def code_not_found_prompt(language: str) -> str:
    return (
        f"ERROR: {language} code was not found in the response.\n"
        "\n"
        "MANDATORY INSTRUCTIONS:\n"
        f"1. Generate ONLY the requested {language} code\n"
        f"2. Use the correct code block format: ```{language}\n"
        "3. DO NOT include explanations, descriptions, or additional text\n"
        "4. DO NOT generate multiple code blocks\n"
        "5. The code will be executed directly - it will not be read by humans\n"
        "6. Do not use markdown for anything other than the code block\n"
        "7. Return ONLY a single functional code block\n"
        "\n"
        "Correct format example:\n"
        f"```{language}\n"
        "// your code here\n"
        "```\n"
        "\n"
        f"Generate the {language} code now following these instructions."
    )


def extract_code(markdown: str, language: str) -> CodeExtraction:
    if not language.strip():
        raise ValueError("language must be a non-empty tag")

    accepted = set(language_aliases(language))
    blocks = tuple(
        block.body.strip()
        for block in iter_code_blocks(markdown)
        if block.language in accepted and block.body.strip()
    )
    if not blocks:
        _logger.info("code_block_missing", language=language)
        return CodeExtraction(
            language=language,
            blocks=(),
            guidance=code_not_found_prompt(language),
        )
    if len(blocks) > 1:
        _logger.debug("code_blocks_extra_ignored", language=language, count=len(blocks))
    return CodeExtraction(language=language, blocks=blocks)


__all__ = [
    "CodeExtraction",
    "code_not_found_prompt",
    "extract_code",
]
