"""
boxsafe — tool-call parser

File: src/boxsafe/synthesis_plane/tool_calls.py

Purpose
- Extract structured tool calls from fenced ``json-tool`` blocks in model markdown.

Functional requirements
- Only the ``json-tool`` fence language is considered; plain ``json`` fences are ignored.
- Validation is closed: ``navigate`` and ``versionControl`` are the only tools, and
  navigate ops are limited to ``NavigatorOperation``.
- Parsing never raises. Each malformed block becomes a ``ToolCallParseError`` carrying the
  raw fence text, next to the calls that did validate.
"""

from __future__ import annotations

import copy
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any, ClassVar, TypeAlias

import structlog

from boxsafe.constants import TOOL_CALL_FENCE_LANGUAGE
from boxsafe.sandbox.navigator import NavigatorOperation
from boxsafe.synthesis_plane.markdown import iter_code_blocks

_logger = structlog.get_logger(__name__)

_NAVIGATE_OPS_TEXT = "|".join(op.value for op in NavigatorOperation)


class ToolName(StrEnum):
    NAVIGATE = "navigate"
    VERSION_CONTROL = "versionControl"


@dataclass(frozen=True, slots=True)
class WriteOptions:
    append: bool | None = None
    create_dirs: bool | None = None


@dataclass(frozen=True, slots=True)
class RecursiveOptions:
    recursive: bool | None = None


@dataclass(frozen=True, slots=True)
class NavigateToolCall:
    tool: ClassVar[ToolName] = ToolName.NAVIGATE

    op: NavigatorOperation
    path: str | None = None
    content: str | None = None
    write_options: WriteOptions | None = None
    mkdir_options: RecursiveOptions | None = None
    delete_options: RecursiveOptions | None = None

    def to_dict(self) -> dict[str, Any]:
        params: dict[str, Any] = {"op": self.op.value}
        if self.path is not None:
            params["path"] = self.path
        if self.content is not None:
            params["content"] = self.content
        if self.write_options is not None:
            params["writeOptions"] = _drop_none(
                {
                    "append": self.write_options.append,
                    "createDirs": self.write_options.create_dirs,
                }
            )
        if self.mkdir_options is not None:
            params["mkdirOptions"] = _drop_none({"recursive": self.mkdir_options.recursive})
        if self.delete_options is not None:
            params["deleteOptions"] = _drop_none({"recursive": self.delete_options.recursive})
        return {"tool": self.tool.value, "params": params}


@dataclass(frozen=True, slots=True)
class VersionControlToolCall:
    tool: ClassVar[ToolName] = ToolName.VERSION_CONTROL

    params: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def to_dict(self) -> dict[str, Any]:
        return {"tool": self.tool.value, "params": dict(self.params)}


ToolCall: TypeAlias = NavigateToolCall | VersionControlToolCall


@dataclass(frozen=True, slots=True)
class ToolCallParseError:
    error: str
    fence: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"ok": False, "error": self.error, "fence": self.fence}


@dataclass(frozen=True, slots=True)
class ToolCallParseResult:
    calls: tuple[ToolCall, ...] = ()
    errors: tuple[ToolCallParseError, ...] = ()

    @property
    def empty(self) -> bool:
        return not self.calls and not self.errors


class _InvalidToolCall(ValueError):
    pass


def parse_tool_calls(markdown: str) -> ToolCallParseResult:
    calls: list[ToolCall] = []
    errors: list[ToolCallParseError] = []

    for block in iter_code_blocks(markdown):
        if block.language != TOOL_CALL_FENCE_LANGUAGE:
            continue
        fence = block.body.strip()
        try:
            payload = json.loads(fence)
        except ValueError as exc:
            _logger.warning("tool_call_invalid_json", line=block.start_line, error=str(exc))
            errors.append(ToolCallParseError(error=f"invalid JSON: {exc}", fence=fence))
            continue
        try:
            call = parse_tool_call(payload)
        except _InvalidToolCall as exc:
            _logger.warning("tool_call_invalid", line=block.start_line, error=str(exc))
            errors.append(ToolCallParseError(error=str(exc), fence=fence))
            continue
        _logger.debug("tool_call_parsed", tool=call.tool.value, line=block.start_line)
        calls.append(call)

    if calls or errors:
        _logger.info("tool_calls_parsed", calls=len(calls), errors=len(errors))
    return ToolCallParseResult(calls=tuple(calls), errors=tuple(errors))


def parse_tool_call(payload: object) -> ToolCall:
    """Validate one decoded JSON value; raises ``ValueError`` describing the first problem."""
    if not isinstance(payload, Mapping):
        raise _InvalidToolCall("tool call must be an object")

    tool = payload.get("tool")
    raw_params = payload.get("params")
    params: Mapping[str, Any] = raw_params if isinstance(raw_params, Mapping) else {}

    if tool == ToolName.NAVIGATE.value:
        return _parse_navigate(params)
    if tool == ToolName.VERSION_CONTROL.value:
        return VersionControlToolCall(params=MappingProxyType(copy.deepcopy(dict(params))))
    raise _InvalidToolCall(f"unknown tool: {_describe(tool)}")


def _parse_navigate(params: Mapping[str, Any]) -> NavigateToolCall:
    raw_op = params.get("op")
    try:
        op = NavigatorOperation(raw_op) if isinstance(raw_op, str) else None
    except ValueError:
        op = None
    if op is None:
        raise _InvalidToolCall(
            f"navigate.op must be one of {_NAVIGATE_OPS_TEXT} (got: {_describe(raw_op)})"
        )

    path = params.get("path")
    path = path if isinstance(path, str) and path else None
    content = params.get("content")
    content = content if isinstance(content, str) else None

    if op is not NavigatorOperation.LIST and path is None:
        raise _InvalidToolCall(f"navigate.op={op.value} requires params.path")
    if op is NavigatorOperation.WRITE and content is None:
        raise _InvalidToolCall("navigate.op=write requires params.content")

    write_raw = params.get("writeOptions")
    mkdir_raw = params.get("mkdirOptions")
    delete_raw = params.get("deleteOptions")
    return NavigateToolCall(
        op=op,
        path=path,
        content=content,
        write_options=(
            WriteOptions(
                append=_optional_bool(write_raw, "append"),
                create_dirs=_optional_bool(write_raw, "createDirs"),
            )
            if isinstance(write_raw, Mapping)
            else None
        ),
        mkdir_options=(
            RecursiveOptions(recursive=_optional_bool(mkdir_raw, "recursive"))
            if isinstance(mkdir_raw, Mapping)
            else None
        ),
        delete_options=(
            RecursiveOptions(recursive=_optional_bool(delete_raw, "recursive"))
            if isinstance(delete_raw, Mapping)
            else None
        ),
    )


def _optional_bool(options: Mapping[str, Any], key: str) -> bool | None:
    value = options.get(key)
    return value if isinstance(value, bool) else None


def _describe(value: object) -> str:
    if value is None:
        return "undefined"
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


def _drop_none(values: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


__all__ = [
    "NavigateToolCall",
    "RecursiveOptions",
    "ToolCall",
    "ToolCallParseError",
    "ToolCallParseResult",
    "ToolName",
    "VersionControlToolCall",
    "WriteOptions",
    "parse_tool_call",
    "parse_tool_calls",
]
