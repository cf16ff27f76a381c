"""Decoding of the agent's line-delimited stream-json protocol.

Every line the agent prints is one JSON object. Only a handful of shapes
matter for rendering; anything else (including half-written lines) decodes
to ``None`` and is dropped by the caller.
"""
import json
from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class ToolUseStart:
    name: str


@dataclass(frozen=True)
class TextStart:
    pass


@dataclass(frozen=True)
class InputJsonDelta:
    partial_json: str


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class BlockStop:
    pass


@dataclass(frozen=True)
class ToolResult:
    content: str


@dataclass(frozen=True)
class FinalResult:
    result: str
    is_error: bool = False


StreamEvent = Union[
    ToolUseStart, TextStart, InputJsonDelta, TextDelta, BlockStop, ToolResult, FinalResult
]


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def flatten_content(content: Any) -> str:
    """Tool result content is either a string or a list of ``{"text": ...}`` parts."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "\n".join(
            _as_text(part.get("text")) if isinstance(part, dict) else ""
            for part in content
        )
    return _as_text(content)


def _decode_stream_event(inner: Any) -> StreamEvent | None:
    if not isinstance(inner, dict):
        return None
    kind = inner.get("type")

    if kind == "content_block_start":
        block = inner.get("content_block")
        if not isinstance(block, dict):
            return None
        if block.get("type") == "tool_use":
            return ToolUseStart(name=_as_text(block.get("name")))
        if block.get("type") == "text":
            return TextStart()
        return None

    if kind == "content_block_delta":
        delta = inner.get("delta")
        if not isinstance(delta, dict):
            return None
        if delta.get("type") == "input_json_delta":
            return InputJsonDelta(partial_json=_as_text(delta.get("partial_json")))
        if delta.get("type") == "text_delta":
            return TextDelta(text=_as_text(delta.get("text")))
        return None

    if kind == "content_block_stop":
        return BlockStop()

    return None


def decode_line(line: str) -> StreamEvent | None:
    """Parse one protocol line. Returns None for anything not worth rendering."""
    try:
        raw = json.loads(line)
    except ValueError:
        return None
    if not isinstance(raw, dict):
        return None

    kind = raw.get("type")
    if kind == "stream_event":
        return _decode_stream_event(raw.get("event"))

    if kind == "tool_result" or raw.get("subtype") == "tool_result":
        content = raw.get("content")
        if content is None:
            content = raw.get("output", "")
        return ToolResult(content=flatten_content(content))

    if kind == "result":
        return FinalResult(result=_as_text(raw.get("result")), is_error=raw.get("is_error") is True)

    return None
