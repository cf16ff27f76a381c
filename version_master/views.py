"""Screens and modals pushed on top of the dashboard."""
import subprocess
from contextlib import aclosing
from pathlib import Path

from rich.text import Text
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal, Vertical
from textual.coordinate import Coordinate
from textual.screen import ModalScreen, Screen
from textual.widgets import DataTable, RichLog, Static

from .orchestrator import ParallelOrchestrator
from .render import render_line
from .runner import TaskRun, TaskRunner, describe_exit
from .tasks import TaskDefinition


class ConfirmModal(ModalScreen[bool]):
    BINDINGS = [
        Binding("y", "confirm", "Yes"),
        Binding("n", "cancel", "No"),
        Binding("escape", "cancel", "Cancel"),
    ]

    def __init__(self, title: str, message: str) -> None:
        super().__init__()
        self.title_text = title
        self.message = message

    def compose(self) -> ComposeResult:
        content = f"[bold]{self.title_text}[/]\n\n{self.message}\n\n"
        content += "[dim]Press 'y' to confirm, 'n' or Escape to cancel[/dim]"
        with Container(id="confirm-modal"):
            yield Static(content, id="confirm-content")

    def action_confirm(self) -> None:
        self.dismiss(True)

    def action_cancel(self) -> None:
        self.dismiss(False)


class HelpModal(ModalScreen):
    BINDINGS = [
        Binding("escape", "close", "Close"),
        Binding("question_mark", "close", "Close"),
    ]

    def compose(self) -> ComposeResult:
        help_text = """[bold cyan]═══ version-master ═══[/bold cyan]

[bold]Navigation[/bold]
  [yellow]j/k[/yellow]      Move cursor down/up
  [yellow]space[/yellow]    Mark repo (repos with changes only)
  [yellow]a[/yellow]        Mark/unmark all
  [yellow]p[/yellow]        Pick monitored repos

[bold]Views[/bold]
  [yellow]d[/yellow]        Detail pane for current repo
  [yellow]D[/yellow]        Deployment columns for all repos
  [yellow]s[/yellow]        Cycle sort (name / status / language)

[bold]Actions[/bold]
  [yellow]r[/yellow]        Refresh
  [yellow]c[/yellow]        [cyan]Commit + push[/cyan] via agent
  [yellow]enter[/yellow]    Same as c
  [yellow]t[/yellow]        [cyan]Tidy[/cyan] untracked files via agent

[bold]External[/bold]
  [yellow]o[/yellow]        Open production site
  [yellow]v[/yellow]        Open Vercel project

[bold]Other[/bold]
  [yellow]?[/yellow]        Show this help
  [yellow]q[/yellow]        Quit (press twice)

[dim]Press ? or Esc to close[/dim]"""

        with Container(id="help-modal"):
            yield Static(help_text, id="help-content")

    def action_close(self) -> None:
        self.dismiss()


class RepoPickerScreen(Screen[list[str] | None]):
    """Choose which of the scanned repos the dashboard monitors."""

    BINDINGS = [
        Binding("j,down", "cursor_down", "Down", show=False),
        Binding("k,up", "cursor_up", "Up", show=False),
        Binding("space", "toggle_select", "Toggle"),
        Binding("a", "select_all", "All"),
        Binding("enter", "confirm", "Confirm", priority=True),
        Binding("q,escape", "cancel", "Back"),
    ]

    def __init__(self, found: list[Path], pre_selected: list[str]) -> None:
        super().__init__()
        found_set = {str(p) for p in found}
        self.broken = {p for p in pre_selected if p not in found_set}
        self.repos = [str(p) for p in found] + [p for p in pre_selected if p in self.broken]
        self.selected: set[str] = set(pre_selected)

    def compose(self) -> ComposeResult:
        with Vertical(id="picker-container"):
            yield Static(self._title_text(), id="picker-title")
            if self.repos:
                yield DataTable(id="picker-table", cursor_type="row")
            else:
                yield Static("[yellow]No git repos found[/yellow]", id="picker-empty")

    def on_mount(self) -> None:
        # nested children are only guaranteed to be mounted after the first refresh
        self.call_after_refresh(self._fill_table)

    def _fill_table(self) -> None:
        table = self._table()
        if table is None:
            return
        table.add_columns("", "Repository", "")
        for repo in self.repos:
            mark = Text("◉", style="green") if repo in self.selected else Text("○", style="dim")
            broken = Text("not found", style="red") if repo in self.broken else Text("")
            name = Text(self._display_name(repo), style="dim" if repo in self.broken else "")
            table.add_row(mark, name, broken, key=repo)
        table.focus()

    def _table(self) -> DataTable | None:
        tables = self.query("#picker-table").results(DataTable)
        return next(iter(tables), None)

    def _display_name(self, repo: str) -> str:
        home = str(Path.home())
        return "~" + repo[len(home):] if repo.startswith(home + "/") else repo

    def _title_text(self) -> str:
        return (
            f"[bold cyan]Select repos to monitor[/bold cyan]  "
            f"[dim]({len(self.selected)}/{len(self.repos)} selected)[/dim]\n"
            "[dim]space: toggle | a: all | enter: confirm | q: back[/dim]"
        )

    def _refresh_marks(self) -> None:
        table = self._table()
        if table is not None and table.row_count == len(self.repos):
            for i, repo in enumerate(self.repos):
                mark = Text("◉", style="green") if repo in self.selected else Text("○", style="dim")
                table.update_cell_at(Coordinate(i, 0), mark)
        self.query_one("#picker-title", Static).update(self._title_text())

    def action_cursor_down(self) -> None:
        table = self._table()
        if table is not None:
            table.action_cursor_down()

    def action_cursor_up(self) -> None:
        table = self._table()
        if table is not None:
            table.action_cursor_up()

    def action_toggle_select(self) -> None:
        table = self._table()
        if table is None or not table.row_count:
            return
        row = table.cursor_row
        if row is None or row >= len(self.repos):
            return
        repo = self.repos[row]
        if repo in self.selected:
            self.selected.discard(repo)
        else:
            self.selected.add(repo)
        self._refresh_marks()
        # Auto-advance to next row
        if row < len(self.repos) - 1:
            table.move_cursor(row=row + 1)

    def action_select_all(self) -> None:
        if not self.repos:
            return
        if len(self.selected) == len(self.repos):
            self.selected.clear()
        else:
            self.selected = set(self.repos)
        self._refresh_marks()

    def action_confirm(self) -> None:
        self.dismiss([r for r in self.repos if r in self.selected])

    def action_cancel(self) -> None:
        self.dismiss(None)


class RunColumn(Vertical):
    """One repo's live output in the parallel view."""

    def __init__(self, label: str, **kwargs) -> None:
        super().__init__(classes="run-column", **kwargs)
        self.label = label

    def compose(self) -> ComposeResult:
        yield Static(Text(self.label, style="bold cyan"), classes="run-title")
        yield Static("", classes="run-body")

    def show(self, run: TaskRun) -> None:
        body = Text("\n").join(render_line(line) for line in run.visible_lines())
        body.no_wrap = True
        body.overflow = "ellipsis"
        if run.done:
            if run.lines:
                body.append("\n")
            body.append("✓ Done", style="bold green")
            self.add_class("done")
        self.query_one(".run-body", Static).update(body)


class ParallelRunScreen(Screen[list[TaskRun]]):
    """Side-by-side columns, one agent run per repo.

    Input is ignored until every run has finished; then any key returns.
    Leaving the screen cancels the worker, which kills any live agent.
    """

    def __init__(self, paths: list[Path], task: TaskDefinition, agent: str | list[str] | None = None) -> None:
        super().__init__()
        self.task_def = task
        self.orchestrator = ParallelOrchestrator(paths, task, agent=agent, on_update=self._on_run_update)
        self.all_done = False

    def compose(self) -> ComposeResult:
        with Vertical(id="run-container"):
            yield Static(
                f"[bold cyan]{self.task_def.name}[/bold cyan] [dim]in {len(self.orchestrator.runners)} repos[/dim]",
                id="run-header",
            )
            with Horizontal(id="run-columns"):
                for i, run in enumerate(self.orchestrator.runs):
                    yield RunColumn(run.label, id=f"run-col-{i}")
            yield Static("", id="run-hint")

    def on_mount(self) -> None:
        # columns must be mounted before the first update arrives
        self.call_after_refresh(self._start)

    def _start(self) -> None:
        self.run_worker(self._run_all(), exclusive=True, name="parallel-run")

    def on_unmount(self) -> None:
        self.workers.cancel_node(self)

    async def _run_all(self) -> None:
        await self.orchestrator.run_live()
        self.all_done = True
        failed = sum(1 for run in self.orchestrator.runs if run.failed)
        summary = f"[red]{failed} failed[/red] | " if failed else ""
        self.query_one("#run-hint", Static).update(f"{summary}[dim]Press any key to return…[/dim]")

    def _on_run_update(self, index: int, run: TaskRun) -> None:
        self.query_one(f"#run-col-{index}", RunColumn).show(run)

    def on_key(self, event) -> None:
        event.stop()
        if self.all_done:
            self.dismiss(self.orchestrator.runs)


class TranscriptScreen(Screen[list[TaskRun]]):
    """Single repo: a flat, verbose transcript of the agent's activity."""

    def __init__(self, path: Path, task: TaskDefinition, agent: str | list[str] | None = None) -> None:
        super().__init__()
        self.task_def = task
        self.runner = TaskRunner(path, task, agent=agent, verbose=True, stderr=subprocess.DEVNULL)
        self.all_done = False

    def compose(self) -> ComposeResult:
        with Vertical(id="run-container"):
            yield Static(
                f"[bold cyan]{self.task_def.name}[/bold cyan] [dim]{self.runner.run.path}[/dim]",
                id="run-header",
            )
            yield RichLog(id="transcript", wrap=True, markup=False)
            yield Static("", id="run-hint")

    def on_mount(self) -> None:
        self.call_after_refresh(self._start)

    def _start(self) -> None:
        self.run_worker(self._run(), exclusive=True, name="transcript-run")

    def on_unmount(self) -> None:
        self.workers.cancel_node(self)

    async def _run(self) -> None:
        log = self.query_one("#transcript", RichLog)
        async with aclosing(self.runner.stream()) as lines:
            async for line in lines:
                log.write(render_line(line))
        run = self.runner.run
        self.all_done = True
        if run.failed:
            status = f"[red]{describe_exit(run.exit_code) if run.exit_code is not None else 'Failed'}[/red] | "
        else:
            status = "[green]✓ Done[/green] | "
        self.query_one("#run-hint", Static).update(f"{status}[dim]Press any key to return…[/dim]")

    def on_key(self, event) -> None:
        event.stop()
        if self.all_done:
            self.dismiss([self.runner.run])
