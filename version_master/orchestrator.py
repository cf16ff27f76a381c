"""Fan out one TaskRunner per repository and track when they have all finished."""
import asyncio
import logging
from collections.abc import Callable, Sequence
from contextlib import aclosing
from pathlib import Path

from rich.console import Console
from rich.text import Text

from .render import render_line
from .runner import TaskRun, TaskRunner
from .stream import LineKind, LogLine
from .tasks import TaskDefinition

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[int, TaskRun], None]


class ParallelOrchestrator:
    """Runs N delegations concurrently on the current event loop.

    ``on_update(index, run)`` is called after every new line of a run and once
    more when that run completes. ``finished`` is set exactly once, when every
    run is done.
    """

    def __init__(
        self,
        paths: Sequence[Path],
        task: TaskDefinition,
        agent: str | list[str] | None = None,
        on_update: UpdateCallback | None = None,
        runner_factory: Callable[..., TaskRunner] = TaskRunner,
    ) -> None:
        self.task = task
        self.on_update = on_update
        self.runners = [runner_factory(Path(p), task, agent=agent) for p in paths]
        self.finished = asyncio.Event()

    @property
    def runs(self) -> list[TaskRun]:
        return [runner.run for runner in self.runners]

    @property
    def all_done(self) -> bool:
        return all(run.done for run in self.runs)

    def _notify(self, index: int, run: TaskRun) -> None:
        if self.on_update is not None:
            self.on_update(index, run)

    async def _drive(self, index: int, runner: TaskRunner) -> None:
        run = runner.run
        try:
            async with aclosing(runner.stream()) as lines:
                async for _line in lines:
                    self._notify(index, run)
        except Exception as e:
            logger.exception("%s: delegation crashed", run.label)
            # a completed run is never written to again
            if not run.done:
                run.append(LogLine(LineKind.ERROR, f"Internal error: {e}"))
                run.failed = True
        run.done = True
        self._notify(index, run)
        if self.all_done and not self.finished.is_set():
            logger.info("all %d %s runs complete", len(self.runners), self.task.name)
            self.finished.set()

    async def run_live(self) -> list[TaskRun]:
        """Drive every run concurrently, reporting progress through ``on_update``."""
        if not self.runners:
            self.finished.set()
            return []
        tasks = [asyncio.ensure_future(self._drive(i, r)) for i, r in enumerate(self.runners)]
        try:
            await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            # gather gives up on the first cancelled child; wait until every agent is reaped
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return self.runs

    async def run_buffered(self, console: Console) -> list[TaskRun]:
        """Run everything silently, then print each repo's output as one block."""
        on_update, self.on_update = self.on_update, None
        try:
            runs = await self.run_live()
        finally:
            self.on_update = on_update
        for run in runs:
            print_run_block(console, run)
        return runs


def print_run_block(console: Console, run: TaskRun) -> None:
    console.print()
    console.print(Text(f"  {run.label}", style="bold cyan"))
    for line in run.lines:
        console.print(render_line(line, indent="  "))
    console.print(Text("  Done.", style="green"))


async def run_transcript(
    path: Path,
    task: TaskDefinition,
    console: Console,
    agent: str | list[str] | None = None,
    stderr: int | None = None,
) -> TaskRun:
    """Single repo: print the agent's activity as a flat, verbose transcript."""
    runner = TaskRunner(path, task, agent=agent, verbose=True, stderr=stderr)
    console.print(Text(f"\n  {task.name}: {path}", style="dim"))
    async with aclosing(runner.stream()) as lines:
        async for line in lines:
            console.print()
            console.print(render_line(line, indent="  "))
    return runner.run


async def delegate(
    paths: Sequence[Path],
    task: TaskDefinition,
    console: Console,
    agent: str | list[str] | None = None,
) -> list[TaskRun]:
    """Non-interactive delegation: transcript for one repo, grouped blocks for several."""
    if len(paths) == 1:
        return [await run_transcript(paths[0], task, console, agent=agent)]
    orchestrator = ParallelOrchestrator(paths, task, agent=agent)
    return await orchestrator.run_buffered(console)
