"""Reduce a decoded agent event stream into renderable log lines."""
import json
from dataclasses import dataclass
from enum import Enum

from .events import (
    BlockStop,
    FinalResult,
    InputJsonDelta,
    StreamEvent,
    TextDelta,
    TextStart,
    ToolResult,
    ToolUseStart,
    decode_line,
)

SHELL_TOOL = "Bash"
RESULT_MAX_LINES = 20


class LineKind(str, Enum):
    COMMAND = "cmd"
    TEXT = "txt"
    OK = "ok"
    ERROR = "err"
    OUTPUT = "out"


@dataclass(frozen=True)
class LogLine:
    kind: LineKind
    text: str


@dataclass
class ParseState:
    """Scratch space for the content block currently being streamed."""
    tool_name: str = ""
    tool_input: str = ""
    in_text: bool = False
    text_buf: str = ""
    had_text: bool = False


def describe_tool_call(name: str, raw_input: str) -> str:
    """Shell calls show the command itself; everything else just the tool name."""
    try:
        parsed = json.loads(raw_input)
    except ValueError:
        return name
    if name == SHELL_TOOL and isinstance(parsed, dict) and parsed.get("command"):
        return str(parsed["command"])
    return name


def truncate_output(text: str, max_lines: int = RESULT_MAX_LINES) -> str:
    lines = text.split("\n")
    if len(lines) <= max_lines:
        return text
    hidden = len(lines) - max_lines + 1
    return "\n".join(lines[: max_lines - 1] + [f"… {hidden} more lines"])


class StreamReducer:
    """Owns one run's ParseState and turns protocol lines into LogLines.

    ``verbose`` enables tool-result output, which only the single-run
    transcript shows.
    """

    def __init__(self, verbose: bool = False) -> None:
        self.verbose = verbose
        self.state = ParseState()

    def feed(self, line: str) -> list[LogLine]:
        event = decode_line(line)
        if event is None:
            return []
        return self.apply(event)

    def apply(self, event: StreamEvent) -> list[LogLine]:
        state = self.state

        if isinstance(event, ToolUseStart):
            state.tool_name = event.name
            state.tool_input = ""
            state.in_text = False
            state.text_buf = ""
            return []

        if isinstance(event, TextStart):
            state.tool_name = ""
            state.tool_input = ""
            state.in_text = True
            state.text_buf = ""
            return []

        if isinstance(event, InputJsonDelta):
            if state.tool_name:
                state.tool_input += event.partial_json
            return []

        if isinstance(event, TextDelta):
            if state.in_text:
                state.text_buf += event.text
            return []

        if isinstance(event, BlockStop):
            return self._close_block()

        if isinstance(event, ToolResult):
            if not self.verbose:
                return []
            text = event.content.strip()
            if not text:
                return []
            return [LogLine(LineKind.OUTPUT, truncate_output(text))]

        if isinstance(event, FinalResult):
            # narrative text already told the story
            if state.had_text or not event.result:
                return []
            kind = LineKind.ERROR if event.is_error else LineKind.OK
            return [LogLine(kind, event.result)]

        return []

    def _close_block(self) -> list[LogLine]:
        state = self.state
        out: list[LogLine] = []
        if state.tool_name:
            out.append(LogLine(LineKind.COMMAND, describe_tool_call(state.tool_name, state.tool_input)))
            state.tool_name = ""
            state.tool_input = ""
        if state.in_text:
            text = state.text_buf.strip()
            if text:
                out.append(LogLine(LineKind.TEXT, text))
                state.had_text = True
            state.in_text = False
            state.text_buf = ""
        return out
