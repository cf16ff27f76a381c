"""
Command-line entry point.

`vm` with no command opens the dashboard. `vm commit` and `vm tidy` hand the
given repos to the agent without the dashboard: a single repo prints a live
transcript, several repos run concurrently and print grouped output once all
of them have finished.
"""
import asyncio
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from .config import AppConfig
from .orchestrator import delegate
from .tasks import COMMIT_TASK, TIDY_TASK, TaskDefinition

app = typer.Typer(
    name="vm",
    help="version-master: keep a set of git repos in sync.",
    add_completion=False,
    rich_markup_mode="markdown",
)

console = Console()
err_console = Console(stderr=True)

RepoPaths = Annotated[
    list[Path],
    typer.Argument(exists=True, file_okay=False, dir_okay=True, resolve_path=True, help="Repos to delegate to the agent."),
]
AgentOption = Annotated[
    Optional[str],
    typer.Option("--agent", help="Agent executable (defaults to the configured one)."),
]


def setup_logging(verbose: bool, tui: bool) -> None:
    if tui:
        from textual.logging import TextualHandler
        handler: logging.Handler = TextualHandler()
    else:
        handler = RichHandler(console=err_console, show_path=False)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO if tui else logging.WARNING,
        format="%(name)s: %(message)s",
        handlers=[handler],
        force=True,
    )


@app.callback(invoke_without_command=True)
def dashboard(
    ctx: typer.Context,
    pick: Annotated[bool, typer.Option("--pick", help="Open the repo picker first.")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging.")] = False,
) -> None:
    """Open the interactive dashboard."""
    if ctx.invoked_subcommand is not None:
        setup_logging(verbose, tui=False)
        return
    setup_logging(verbose, tui=True)
    from .app import VersionMasterApp
    VersionMasterApp(force_picker=pick).run()


def _run_delegation(task: TaskDefinition, paths: list[Path], agent: str | None) -> None:
    agent = agent or AppConfig.load().agent_command
    runs = asyncio.run(delegate(paths, task, console, agent=agent))
    failed = [run.label for run in runs if run.failed]
    if failed:
        err_console.print(f"[red]Failed:[/red] {', '.join(failed)}")
        raise typer.Exit(code=1)


@app.command()
def commit(paths: RepoPaths, agent: AgentOption = None) -> None:
    """Stage, commit and push every change in each repo."""
    _run_delegation(COMMIT_TASK, paths, agent)


@app.command()
def tidy(paths: RepoPaths, agent: AgentOption = None) -> None:
    """Sort untracked files into .gitignore or a commit, then push."""
    _run_delegation(TIDY_TASK, paths, agent)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
