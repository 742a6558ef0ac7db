"""Unit tests for the markdown fence scanner and code extraction."""

from __future__ import annotations

import pytest

from boxsafe.synthesis_plane.code_extraction import code_not_found_prompt, extract_code
from boxsafe.synthesis_plane.markdown import (
    FencedCodeBlock,
    TextBlock,
    iter_code_blocks,
    parse_blocks,
)


def test_parse_blocks_separates_prose_and_fences() -> None:
    markdown = "Intro line\n\n```python main.py\nprint(1)\n```\nOutro\n"

    blocks = parse_blocks(markdown)

    assert isinstance(blocks[0], TextBlock)
    fence = blocks[1]
    assert isinstance(fence, FencedCodeBlock)
    assert fence.language == "python"
    assert fence.info == "python main.py"
    assert fence.body == "print(1)"
    assert (fence.start_line, fence.end_line) == (3, 5)
    assert isinstance(blocks[2], TextBlock)
    assert blocks[2].text.strip() == "Outro"


def test_closing_fence_must_match_character_and_length() -> None:
    markdown = "````md\n```py\ninner\n```\n````\n~~~sh\necho hi\n~~~\n"

    blocks = list(iter_code_blocks(markdown))

    assert [block.language for block in blocks] == ["md", "sh"]
    assert blocks[0].body == "```py\ninner\n```"
    assert blocks[1].body == "echo hi"


def test_unclosed_fence_runs_to_end_of_document() -> None:
    blocks = list(iter_code_blocks("```js\nconsole.log(1)\nmore"))

    assert len(blocks) == 1
    assert blocks[0].closed is False
    assert blocks[0].body == "console.log(1)\nmore"


def test_backtick_info_string_is_not_a_fence() -> None:
    blocks = list(iter_code_blocks("```not `a` fence\ntext\n"))

    assert blocks == []


def test_extract_code_accepts_language_aliases_and_takes_first_block() -> None:
    markdown = "```python3\nprint('a')\n```\n\n```py\nprint('b')\n```\n```js\nx()\n```\n"

    extraction = extract_code(markdown, "py")

    assert extraction.found is True
    assert extraction.blocks == ("print('a')", "print('b')")
    assert extraction.code == "print('a')"
    assert extraction.guidance is None


def test_extract_code_ignores_empty_blocks_and_returns_guidance() -> None:
    extraction = extract_code("```ts\n\n```\nno code here", "ts")

    assert extraction.found is False
    assert extraction.code is None
    assert extraction.guidance == code_not_found_prompt("ts")
    assert extraction.guidance.startswith("ERROR: ts code was not found in the response.")
    assert "```ts" in extraction.guidance


def test_extract_code_rejects_blank_language() -> None:
    with pytest.raises(ValueError):
        extract_code("```py\nx\n```", " ")
