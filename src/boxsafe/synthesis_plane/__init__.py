"""Synthesis plane: reading model output and acting on the tool calls it contains."""

from boxsafe.synthesis_plane.code_extraction import (
    CodeExtraction,
    code_not_found_prompt,
    extract_code,
)
from boxsafe.synthesis_plane.dispatch import (
    DispatchContext,
    ToolDispatcher,
    ToolOutcome,
    ToolOutcomeStatus,
)
from boxsafe.synthesis_plane.markdown import FencedCodeBlock, TextBlock, parse_blocks
from boxsafe.synthesis_plane.tool_calls import (
    NavigateToolCall,
    ToolCall,
    ToolCallParseError,
    ToolCallParseResult,
    ToolName,
    VersionControlToolCall,
    parse_tool_calls,
)

__all__ = [
    "CodeExtraction",
    "DispatchContext",
    "FencedCodeBlock",
    "NavigateToolCall",
    "TextBlock",
    "ToolCall",
    "ToolCallParseError",
    "ToolCallParseResult",
    "ToolDispatcher",
    "ToolName",
    "ToolOutcome",
    "ToolOutcomeStatus",
    "VersionControlToolCall",
    "code_not_found_prompt",
    "extract_code",
    "parse_blocks",
    "parse_tool_calls",
]
