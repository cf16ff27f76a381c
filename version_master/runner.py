"""One agent subprocess per repository, streamed into a TaskRun."""
import asyncio
import logging
import shlex
import subprocess
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from pathlib import Path

from .stream import LineKind, LogLine, StreamReducer
from .tasks import TaskDefinition

logger = logging.getLogger(__name__)

DEFAULT_AGENT = "claude"
MAX_VISIBLE_LINES = 25
MAX_RETAINED_LINES = 1000
# tool results can arrive as one very long JSON line
STREAM_LIMIT = 16 * 1024 * 1024


def agent_argv(command: str | list[str] | None) -> list[str]:
    if command is None:
        return [DEFAULT_AGENT]
    if isinstance(command, str):
        return shlex.split(command) or [DEFAULT_AGENT]
    return list(command) or [DEFAULT_AGENT]


def build_agent_args(task: TaskDefinition, agent: list[str]) -> list[str]:
    return [
        *agent,
        "-p", task.prompt,
        "--allowedTools", *task.allowed_tools,
        "--output-format", "stream-json",
        "--verbose",
        "--include-partial-messages",
    ]


def describe_exit(code: int | None) -> str:
    if code is None:
        return "Exit code unknown"
    if code < 0:
        return f"Exit code unknown (signal {-code})"
    return f"Exit code {code}"


@dataclass
class TaskRun:
    path: Path
    label: str = ""
    lines: list[LogLine] = field(default_factory=list)
    done: bool = False
    failed: bool = False
    exit_code: int | None = None

    def __post_init__(self) -> None:
        if not self.label:
            self.label = self.path.name or str(self.path)

    def append(self, line: LogLine) -> None:
        self.lines.append(line)
        overflow = len(self.lines) - MAX_RETAINED_LINES
        if overflow > 0:
            del self.lines[:overflow]

    def visible_lines(self, limit: int = MAX_VISIBLE_LINES) -> list[LogLine]:
        return self.lines[-limit:]


class TaskRunner:
    """Launches the agent in one repo and yields its log lines as they arrive.

    The subprocess lives exactly as long as the ``stream()`` generator: closing
    or cancelling the generator kills whatever is still running.
    """

    def __init__(
        self,
        path: Path,
        task: TaskDefinition,
        agent: str | list[str] | None = None,
        verbose: bool = False,
        stderr: int | None = subprocess.DEVNULL,
    ) -> None:
        self.task = task
        self.agent = agent_argv(agent)
        self.verbose = verbose
        self.stderr = stderr
        self.run = TaskRun(path=Path(path))

    def _fail(self, message: str) -> LogLine:
        line = LogLine(LineKind.ERROR, message)
        self.run.append(line)
        self.run.failed = True
        return line

    async def _spawn(self) -> asyncio.subprocess.Process:
        return await asyncio.create_subprocess_exec(
            *build_agent_args(self.task, self.agent),
            cwd=self.run.path,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=self.stderr,
            limit=STREAM_LIMIT,
        )

    async def stream(self) -> AsyncIterator[LogLine]:
        run = self.run
        try:
            if not run.path.is_dir():
                yield self._fail(f"Directory not found: {run.path}")
                return
            try:
                process = await self._spawn()
            except FileNotFoundError:
                logger.warning("%s: agent executable %r not found", run.label, self.agent[0])
                yield self._fail(f'"{self.agent[0]}" not found on PATH.')
                return
            except OSError as e:
                logger.warning("%s: could not start agent: %s", run.label, e)
                yield self._fail(f"Spawn error: {e}")
                return

            logger.info("%s: started %s (pid %s)", run.label, self.task.name, process.pid)
            reducer = StreamReducer(verbose=self.verbose)
            try:
                while True:
                    try:
                        raw = await process.stdout.readline()
                    except ValueError:
                        logger.warning("%s: dropped oversized output line", run.label)
                        continue
                    if not raw:
                        break
                    for line in reducer.feed(raw.decode("utf-8", errors="replace")):
                        run.append(line)
                        yield line
                code = await process.wait()
            finally:
                if process.returncode is None:
                    logger.info("%s: killing agent (pid %s)", run.label, process.pid)
                    try:
                        process.kill()
                    except ProcessLookupError:
                        pass
                    await process.wait()

            run.exit_code = code
            logger.info("%s: agent exited with %s", run.label, code)
            if code != 0:
                yield self._fail(describe_exit(code))
        except Exception as e:
            logger.exception("%s: agent stream failed", run.label)
            yield self._fail(f"Internal error: {e}")
        finally:
            run.done = True


async def run_task(
    path: Path,
    task: TaskDefinition,
    agent: str | list[str] | None = None,
    verbose: bool = False,
) -> TaskRun:
    """Run one delegation to completion and return its record."""
    runner = TaskRunner(path, task, agent=agent, verbose=verbose)
    async for _ in runner.stream():
        pass
    return runner.run
