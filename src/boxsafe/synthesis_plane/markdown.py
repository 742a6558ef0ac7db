"""Line scanner splitting model markdown into fenced code blocks and prose."""

from __future__ import annotations

import re
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import Final, TypeAlias

_FENCE_START_RE: Final[re.Pattern[str]] = re.compile(
    r"^(?P<indent>[ ]{0,3})(?P<marker>`{3,}|~{3,})(?P<info>.*)$"
)
_FENCE_CLOSE_RE: Final[re.Pattern[str]] = re.compile(r"^[ ]{0,3}(?P<marker>`{3,}|~{3,})\s*$")


@dataclass(frozen=True, slots=True)
class FencedCodeBlock:
    """One fenced block; ``language`` is the first info-string word, lower-cased."""

    language: str
    info: str
    body: str
    start_line: int
    end_line: int
    closed: bool = True


@dataclass(frozen=True, slots=True)
class TextBlock:
    text: str
    start_line: int
    end_line: int


MarkdownBlock: TypeAlias = FencedCodeBlock | TextBlock


@dataclass(frozen=True, slots=True)
class _FenceState:
    marker_char: str
    marker_length: int
    indent: int
    info: str
    start_line: int


def parse_blocks(markdown: str) -> tuple[MarkdownBlock, ...]:
    """Scan ``markdown`` in document order.

    Closing fences use the opener's character and are at least as long. An unclosed fence
    runs to the end of the document. Backtick fences may not carry backticks in their info
    string.
    """
    lines = markdown.splitlines()
    blocks: list[MarkdownBlock] = []
    prose: list[str] = []
    prose_start = 1
    fence: _FenceState | None = None
    body: list[str] = []

    def flush_prose(end_line: int) -> None:
        if prose and any(line.strip() for line in prose):
            blocks.append(TextBlock("\n".join(prose), prose_start, end_line))
        prose.clear()

    for number, line in enumerate(lines, start=1):
        if fence is not None:
            if _is_fence_close(line, fence):
                blocks.append(_make_block(fence, body, number, closed=True))
                fence = None
                body = []
                prose_start = number + 1
            else:
                body.append(_strip_indent(line, fence.indent))
            continue

        opened = _parse_fence_start(line, number)
        if opened is not None:
            flush_prose(number - 1)
            fence = opened
            continue
        if not prose:
            prose_start = number
        prose.append(line)

    if fence is not None:
        blocks.append(_make_block(fence, body, len(lines), closed=False))
    else:
        flush_prose(len(lines))
    return tuple(blocks)


def iter_code_blocks(
    blocks: Sequence[MarkdownBlock] | str,
) -> Iterator[FencedCodeBlock]:
    source = parse_blocks(blocks) if isinstance(blocks, str) else blocks
    for block in source:
        if isinstance(block, FencedCodeBlock):
            yield block


def _parse_fence_start(line: str, number: int) -> _FenceState | None:
    match = _FENCE_START_RE.match(line)
    if match is None:
        return None
    marker = match.group("marker")
    info = match.group("info").strip()
    if marker[0] == "`" and "`" in info:
        return None
    return _FenceState(
        marker_char=marker[0],
        marker_length=len(marker),
        indent=len(match.group("indent")),
        info=info,
        start_line=number,
    )


def _is_fence_close(line: str, state: _FenceState) -> bool:
    match = _FENCE_CLOSE_RE.match(line)
    if match is None:
        return False
    marker = match.group("marker")
    return marker[0] == state.marker_char and len(marker) >= state.marker_length


def _strip_indent(line: str, indent: int) -> str:
    removable = 0
    while removable < indent and removable < len(line) and line[removable] == " ":
        removable += 1
    return line[removable:]


def _make_block(
    state: _FenceState,
    body: list[str],
    end_line: int,
    *,
    closed: bool,
) -> FencedCodeBlock:
    words = state.info.split()
    language = words[0].lower() if words else ""
    return FencedCodeBlock(
        language=language,
        info=state.info,
        body="\n".join(body),
        start_line=state.start_line,
        end_line=end_line,
        closed=closed,
    )


__all__ = [
    "FencedCodeBlock",
    "MarkdownBlock",
    "TextBlock",
    "iter_code_blocks",
    "parse_blocks",
]
