import logging
import time
import webbrowser
from datetime import datetime
from pathlib import Path

from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal, Vertical
from textual.coordinate import Coordinate
from textual.screen import Screen
from textual.widgets import DataTable, Footer, Header, Label, Static
from textual.worker import Worker, WorkerState

from .config import SORT_MODES, AppConfig
from .git import RepoInfo, refresh_all
from .render import deploy_badge, health_badge, status_badge, time_ago
from .runner import TaskRun
from .scan import scan_for_repos
from .tasks import COMMIT_TASK, TIDY_TASK, TaskDefinition
from .usage import format_countdown, get_agent_usage
from .views import (
    ConfirmModal,
    HelpModal,
    ParallelRunScreen,
    RepoPickerScreen,
    TranscriptScreen,
)

logger = logging.getLogger(__name__)

SPINNER_FRAMES = "⣾⣽⣻⢿⡿⣟⣯⣷"


def open_in_browser(url: str) -> tuple[bool, str]:
    """Open URL in default browser."""
    try:
        webbrowser.open(url)
        return True, "Opened in browser"
    except webbrowser.Error as e:
        return False, str(e)


def sort_repos(repos: list[RepoInfo], mode: str) -> list[RepoInfo]:
    """Sort repos for display; 'status' puts the ones needing attention first."""
    if mode == "status":
        def status_key(r: RepoInfo) -> tuple:
            # 0=error, 1=behind, 2=ahead, 3=dirty only, 4=in sync
            if r.error:
                priority = 0
            elif r.behind > 0:
                priority = 1
            elif r.ahead > 0:
                priority = 2
            elif r.dirty > 0:
                priority = 3
            else:
                priority = 4
            return (priority, r.name.lower())
        return sorted(repos, key=status_key)
    if mode == "language":
        return sorted(repos, key=lambda r: ((r.tech_stack or ["~"])[0].lower(), r.name.lower()))
    return sorted(repos, key=lambda r: r.name.lower())


class VersionMasterApp(App):
    ENABLE_COMMAND_PALETTE = False

    CSS = """
    Screen {
        background: $surface;
    }

    #main-container {
        height: 100%;
    }

    #loading-container {
        width: 100%;
        height: 100%;
        align: center middle;
    }

    #loading-animation {
        width: auto;
        height: auto;
        color: $text;
    }

    #repo-table {
        height: 1fr;
    }

    DataTable > .datatable--cursor {
        background: $accent;
    }

    #detail-pane {
        height: auto;
        max-height: 12;
        border: round $primary;
        padding: 0 1;
        display: none;
    }

    #detail-pane.visible {
        display: block;
    }

    #status-bar {
        dock: bottom;
        height: 3;
        background: $primary-background;
        padding: 0 1;
    }

    #status-bar Label {
        width: 100%;
    }

    #confirm-modal {
        align: center middle;
        width: 80%;
        height: auto;
        max-height: 80%;
        background: $surface;
        border: tall $primary;
        padding: 1 2;
    }

    #confirm-content, #help-content {
        width: 100%;
        height: auto;
    }

    #help-modal {
        align: center middle;
        width: 55;
        height: auto;
        max-height: 90%;
        background: $surface;
        border: tall $primary;
        padding: 1 2;
    }

    #picker-container {
        padding: 1 2;
    }

    #picker-title {
        height: auto;
        border: round $primary;
        padding: 0 2;
        margin: 0 0 1 0;
    }

    #picker-table {
        height: 1fr;
    }

    #run-container {
        padding: 1;
    }

    #run-header, #run-hint {
        height: auto;
        padding: 0 1;
    }

    #run-columns {
        height: 1fr;
    }

    .run-column {
        width: 1fr;
        height: 100%;
        border: round $accent;
        padding: 0 1;
    }

    .run-column.done {
        border: round $success;
    }

    .run-title, .run-body {
        height: auto;
    }

    #transcript {
        height: 1fr;
        border: round $accent;
    }
    """

    BINDINGS = [
        Binding("q", "request_quit", "Quit"),
        Binding("question_mark", "show_help", "Help", key_display="?"),
        Binding("j", "nav_down", show=False),
        Binding("k", "nav_up", show=False),
        Binding("space", "toggle_mark", "Mark", show=False),
        Binding("a", "mark_all", "Mark All"),
        Binding("r", "refresh", "Refresh"),
        Binding("p", "pick", "Picker"),
        Binding("c", "commit", "Commit+Push"),
        Binding("t", "tidy", "Tidy"),
        Binding("s", "cycle_sort", "Sort"),
        Binding("d", "toggle_detail", "Detail"),
        Binding("D", "toggle_deploy_columns", "Deploys"),
        Binding("o", "open_site", "Open Site"),
        Binding("v", "open_vercel", "Vercel"),
    ]

    def __init__(self, force_picker: bool = False, config: AppConfig | None = None) -> None:
        super().__init__()
        self.config = config or AppConfig.load()
        self.force_picker = force_picker
        self.all_repos: list[RepoInfo] = []
        self.repos: list[RepoInfo] = []
        self.marked: set[str] = set()
        self.is_loading: bool = False
        self.show_deploy_columns: bool = False
        self.last_refresh: datetime | None = None
        self.animation_frame = 0
        self.animation_timer = None
        self.loading_message = "Fetching git status..."

    @property
    def dashboard(self) -> Screen:
        # the default screen; pickers and run screens are pushed on top of it
        return self.screen_stack[0]

    def compose(self) -> ComposeResult:
        yield Header()
        with Vertical(id="main-container"):
            with Container(id="loading-container"):
                yield Static("", id="loading-animation")
            yield DataTable(id="repo-table", cursor_type="row")
            yield Static("", id="detail-pane")
            with Horizontal(id="status-bar"):
                yield Label("", id="status-label")
        yield Footer()

    def on_mount(self) -> None:
        self.title = "version-master"
        self.dashboard.query_one("#loading-container", Container).display = False
        self.set_interval(60, self.update_status)
        if self.force_picker or not self.config.repos:
            self.open_picker()
        else:
            self.refresh_repos()

    # =========================================================================
    # Loading / refresh
    # =========================================================================

    def show_loading(self, show: bool, message: str = "Fetching git status...") -> None:
        self.is_loading = show
        self.loading_message = message
        self.dashboard.query_one("#loading-container", Container).display = show
        self.dashboard.query_one("#repo-table", DataTable).display = not show

        if show:
            self.animation_frame = 0
            self._animate_loading()
            if self.animation_timer is None:
                self.animation_timer = self.set_interval(0.15, self._animate_loading)
        elif self.animation_timer:
            self.animation_timer.stop()
            self.animation_timer = None

    def _animate_loading(self) -> None:
        self.animation_frame = (self.animation_frame + 1) % len(SPINNER_FRAMES)
        animation = self.dashboard.query_one("#loading-animation", Static)
        animation.update(f"[cyan]{SPINNER_FRAMES[self.animation_frame]}  {self.loading_message}[/cyan]")

    def refresh_repos(self) -> None:
        if not self.config.repos:
            self._populate_repo_table([])
            return
        self.show_loading(True)
        self.run_worker(self._refresh_worker, exclusive=True, thread=True, name="_refresh_worker")

    def _refresh_worker(self) -> list[RepoInfo]:
        return refresh_all([Path(p) for p in self.config.repos])

    def open_picker(self) -> None:
        self.show_loading(True, f"Scanning {self.config.scan_root} for git repos...")
        self.run_worker(self._scan_worker, exclusive=True, thread=True, name="_scan_worker")

    def _scan_worker(self) -> list[Path]:
        return scan_for_repos(
            self.config.scan_root_path,
            self.config.scan_depth,
            self.config.home_dotdirs,
        )

    def on_worker_state_changed(self, event: Worker.StateChanged) -> None:
        if event.state == WorkerState.SUCCESS:
            if event.worker.name == "_refresh_worker":
                self._populate_repo_table(event.worker.result)
            elif event.worker.name == "_scan_worker":
                self.show_loading(False)
                self.push_screen(
                    RepoPickerScreen(event.worker.result, self.config.repos),
                    self._handle_picker_result,
                )
        elif event.state == WorkerState.ERROR:
            logger.error("Worker %s failed: %s", event.worker.name, event.worker.error)
            self.show_loading(False)
            self.notify(f"Failed: {event.worker.error}", severity="error")

    def _handle_picker_result(self, selected: list[str] | None) -> None:
        if selected is None:
            if not self.config.repos:
                self.exit()
            else:
                self.refresh_repos()
            return
        self.config.repos = selected
        self.config.save()
        self.marked.clear()
        self.refresh_repos()

    # =========================================================================
    # Table rendering
    # =========================================================================

    def _populate_repo_table(self, repos: list[RepoInfo] | None = None) -> None:
        table = self.dashboard.query_one("#repo-table", DataTable)
        cursor_row = table.cursor_row
        table.clear(columns=True)
        columns = ["", "Name", "Branch", "Upstream", "Status", "Stack"]
        if self.show_deploy_columns:
            columns += ["Deploy", "URL", "Health", "Deployed"]
        else:
            columns += ["Deploy"]
        table.add_columns(*columns)

        if repos is not None:
            self.all_repos = repos
            self.last_refresh = datetime.now()
            known = {str(r.path) for r in repos}
            self.marked &= known
        self.repos = sort_repos(self.all_repos, self.config.sort_mode)

        for repo in self.repos:
            mark = Text("◉", style="green") if str(repo.path) in self.marked else Text(" ")
            upstream = Text(f"→ {repo.upstream}", style="dim") if repo.upstream else Text("no remote", style="yellow")
            vercel = repo.vercel
            row = [
                mark,
                Text(repo.name, style="bold"),
                Text(repo.branch[:30], style="bright_blue"),
                upstream,
                status_badge(repo.ahead, repo.behind, repo.dirty, repo.error),
                Text(" ".join(repo.tech_stack[:3]), style="magenta"),
                deploy_badge(vercel.deploy_state if vercel else None),
            ]
            if self.show_deploy_columns:
                row += [
                    Text(vercel.prod_url or "-", style="bright_blue") if vercel else Text("-", style="dim"),
                    health_badge(vercel.healthy if vercel else None),
                    Text(time_ago(vercel.last_deploy_at), style="dim") if vercel and vercel.last_deploy_at else Text("-", style="dim"),
                ]
            table.add_row(*row, key=str(repo.path))

        self.show_loading(False)
        if self.repos and cursor_row is not None:
            table.move_cursor(row=min(cursor_row, len(self.repos) - 1))
        table.focus()
        self.sub_title = f"{len(self.repos)} repos | sort: {self.config.sort_mode}"
        self.update_detail()
        self.update_status()

    def update_status(self) -> None:
        label = self.dashboard.query_one("#status-label", Label)
        refreshed = self.last_refresh.strftime("%H:%M:%S") if self.last_refresh else "—"
        parts = [f"?: help | refreshed {refreshed}"]
        if self.marked:
            parts.append(f"{len(self.marked)} marked | c: commit+push | t: tidy")
        usage = get_agent_usage()
        if usage:
            now = time.time()
            parts.append(
                f"agent 5h {usage.five_hour_pct:.0f}% ({format_countdown(usage.five_hour_resets_at, now)})"
                f" · 7d {usage.seven_day_pct:.0f}% ({format_countdown(usage.seven_day_resets_at, now)})"
            )
        label.update(" | ".join(parts))

    def current_repo(self) -> RepoInfo | None:
        table = self.dashboard.query_one("#repo-table", DataTable)
        if table.cursor_row is None or table.cursor_row >= len(self.repos):
            return None
        return self.repos[table.cursor_row]

    def update_detail(self) -> None:
        pane = self.dashboard.query_one("#detail-pane", Static)
        repo = self.current_repo()
        if not pane.has_class("visible") or repo is None:
            return
        lines = [
            f"[bold]{repo.name}[/bold]  [dim]{repo.path}[/dim]",
            f"branch [bright_blue]{repo.branch}[/bright_blue] → {repo.upstream or '[yellow]no remote[/yellow]'}",
            f"ahead {repo.ahead} | behind {repo.behind} | changed files {repo.dirty}",
            f"stack: {', '.join(repo.tech_stack) or '-'}",
        ]
        if repo.error:
            lines.append(f"[red]error: {repo.error}[/red]")
        if repo.vercel:
            v = repo.vercel
            deployed = time_ago(v.last_deploy_at) if v.last_deploy_at else "-"
            lines.append(
                f"vercel: {v.project_name} | {v.deploy_state or 'UNKNOWN'} | {v.prod_url or '-'} | "
                f"{'healthy' if v.healthy else 'down' if v.healthy is False else '-'} | {deployed}"
            )
        pane.update("\n".join(lines))

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        if event.data_table.id == "repo-table":
            self.update_detail()

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        if event.data_table.id == "repo-table":
            self.action_commit()

    # =========================================================================
    # Actions
    # =========================================================================

    def _dashboard_active(self) -> bool:
        """Dashboard keys only apply when no other screen is on top."""
        return len(self.screen_stack) == 1 and not self.is_loading

    def action_request_quit(self) -> None:
        """Handle quit request - require double press to quit."""
        if len(self.screen_stack) > 1:
            return
        now = time.time()
        if hasattr(self, '_last_quit_time') and now - self._last_quit_time < 1.5:
            self.exit()
        else:
            self._last_quit_time = now
            self.notify("Press again to quit", severity="warning", timeout=1.5)

    def action_show_help(self) -> None:
        if not self._dashboard_active():
            return
        self.push_screen(HelpModal())

    def action_nav_down(self) -> None:
        if self._dashboard_active():
            self.dashboard.query_one("#repo-table", DataTable).action_cursor_down()

    def action_nav_up(self) -> None:
        if self._dashboard_active():
            self.dashboard.query_one("#repo-table", DataTable).action_cursor_up()

    def action_toggle_mark(self) -> None:
        if not self._dashboard_active():
            return
        repo = self.current_repo()
        if repo is None:
            return
        reason = repo.why_not_delegate()
        if reason:
            self.notify(f"Cannot mark {repo.name}: {reason}", severity="warning")
            return
        key = str(repo.path)
        if key in self.marked:
            self.marked.discard(key)
        else:
            self.marked.add(key)
        table = self.dashboard.query_one("#repo-table", DataTable)
        mark = Text("◉", style="green") if key in self.marked else Text(" ")
        table.update_cell_at(Coordinate(table.cursor_row, 0), mark)
        self.update_status()
        # Auto-advance to next row
        if table.cursor_row < len(self.repos) - 1:
            table.move_cursor(row=table.cursor_row + 1)

    def action_mark_all(self) -> None:
        if not self._dashboard_active():
            return
        eligible = {str(r.path) for r in self.repos if r.can_delegate()}
        if eligible and eligible <= self.marked:
            self.marked.clear()
        else:
            self.marked = eligible
        table = self.dashboard.query_one("#repo-table", DataTable)
        for i, repo in enumerate(self.repos):
            mark = Text("◉", style="green") if str(repo.path) in self.marked else Text(" ")
            table.update_cell_at(Coordinate(i, 0), mark)
        self.update_status()

    def action_refresh(self) -> None:
        if self._dashboard_active():
            self.refresh_repos()

    def action_pick(self) -> None:
        if self._dashboard_active():
            self.open_picker()

    def action_cycle_sort(self) -> None:
        if not self._dashboard_active():
            return
        idx = SORT_MODES.index(self.config.sort_mode) if self.config.sort_mode in SORT_MODES else 0
        self.config.sort_mode = SORT_MODES[(idx + 1) % len(SORT_MODES)]
        self.config.save()
        self._populate_repo_table()
        self.notify(f"Sorted by {self.config.sort_mode}", timeout=1.5)

    def action_toggle_detail(self) -> None:
        if not self._dashboard_active():
            return
        self.dashboard.query_one("#detail-pane", Static).toggle_class("visible")
        self.update_detail()

    def action_toggle_deploy_columns(self) -> None:
        if not self._dashboard_active():
            return
        self.show_deploy_columns = not self.show_deploy_columns
        self._populate_repo_table()

    def _open_repo_url(self, kind: str) -> None:
        if not self._dashboard_active():
            return
        repo = self.current_repo()
        if repo is None:
            return
        if repo.vercel is None:
            self.notify(f"{repo.name} is not linked to Vercel", severity="warning")
            return
        url = repo.vercel.site_url() if kind == "site" else repo.vercel.dashboard_url()
        if not url:
            self.notify(f"No {kind} URL for {repo.name}", severity="warning")
            return
        ok, msg = open_in_browser(url)
        self.notify(msg if ok else f"Failed: {msg}", severity="information" if ok else "error")

    def action_open_site(self) -> None:
        self._open_repo_url("site")

    def action_open_vercel(self) -> None:
        self._open_repo_url("vercel")

    def action_commit(self) -> None:
        self.delegate(COMMIT_TASK, "Commit + Push")

    def action_tidy(self) -> None:
        self.delegate(TIDY_TASK, "Tidy")

    # =========================================================================
    # Delegation
    # =========================================================================

    def delegation_targets(self) -> list[RepoInfo]:
        """Marked repos, or the highlighted one when nothing is marked."""
        if self.marked:
            return [r for r in self.repos if str(r.path) in self.marked]
        repo = self.current_repo()
        return [repo] if repo is not None else []

    def delegate(self, task: TaskDefinition, action_name: str) -> None:
        if not self._dashboard_active():
            return
        selected = self.delegation_targets()
        if not selected:
            self.notify("No repos selected", severity="warning")
            return

        eligible = [r for r in selected if r.can_delegate()]
        skipped = [(r, r.why_not_delegate()) for r in selected if not r.can_delegate()]
        if not eligible:
            self.notify(f"Nothing to {action_name.lower()}: {skipped[0][1]}", severity="warning")
            return

        msg = f"Hand {len(eligible)} repo(s) to the agent:\n"
        msg += "\n".join(f"  • {r.name} ({r.branch}, {r.dirty} changed)" for r in eligible[:10])
        if len(eligible) > 10:
            msg += f"\n  ... and {len(eligible) - 10} more"
        if skipped:
            msg += f"\n\n[dim]Skipped {len(skipped)} repo(s):[/dim]"
            for repo, reason in skipped[:5]:
                msg += f"\n[dim]  • {repo.name}: {reason}[/dim]"

        def do_delegate(confirmed: bool) -> None:
            if not confirmed:
                return
            paths = [r.path for r in eligible]
            logger.info("Delegating %s to %d repo(s)", task.name, len(paths))
            if len(paths) == 1:
                screen = TranscriptScreen(paths[0], task, agent=self.config.agent_command)
            else:
                screen = ParallelRunScreen(paths, task, agent=self.config.agent_command)
            self.push_screen(screen, self._handle_delegation_done)

        self.push_screen(ConfirmModal(action_name, msg), do_delegate)

    def _handle_delegation_done(self, runs: list[TaskRun] | None) -> None:
        failed = [run.label for run in runs or [] if run.failed]
        if failed:
            self.notify(f"Failed: {', '.join(failed)}", severity="error")
        self.marked.clear()
        self.refresh_repos()
