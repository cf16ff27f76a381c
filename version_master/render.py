"""rich renderables shared by the dashboard, run views and the CLI."""
import time

from rich.text import Text

from .stream import LineKind, LogLine

LINE_STYLES = {
    LineKind.COMMAND: "cyan",
    LineKind.TEXT: "",
    LineKind.OK: "green",
    LineKind.ERROR: "red",
    LineKind.OUTPUT: "dim",
}

DEPLOY_STATE_STYLES = {
    "READY": "green",
    "BUILDING": "yellow",
    "ERROR": "red",
    "CANCELED": "red",
    "QUEUED": "yellow",
}


def render_line(line: LogLine, indent: str = "") -> Text:
    style = LINE_STYLES.get(line.kind, "")
    if line.kind == LineKind.COMMAND:
        text = Text(f"{indent}▸ ", style="cyan")
        text.append(line.text, style=style)
        return text
    if line.kind == LineKind.OUTPUT:
        return Text("\n".join(f"{indent}  {part}" for part in line.text.split("\n")), style=style)
    return Text(f"{indent}{line.text}", style=style)


def status_badge(ahead: int, behind: int, dirty: int, error: str | None = None) -> Text:
    """↑ahead ↓behind ●dirty, or "in sync"."""
    if error:
        return Text("error", style="red")
    parts = []
    if ahead > 0:
        parts.append(Text(f"↑{ahead}", style="green"))
    if behind > 0:
        parts.append(Text(f"↓{behind}", style="red"))
    if dirty > 0:
        parts.append(Text(f"●{dirty}", style="yellow"))
    if not parts:
        return Text("in sync", style="green")
    return Text(" ").join(parts)


def deploy_badge(deploy_state: str | None) -> Text:
    if deploy_state is None:
        return Text("-", style="dim")
    return Text(f"▲ {deploy_state}", style=DEPLOY_STATE_STYLES.get(deploy_state, "dim"))


def health_badge(healthy: bool | None) -> Text:
    if healthy is None:
        return Text("-", style="dim")
    if healthy:
        return Text("● healthy", style="green")
    return Text("● down", style="red")


def time_ago(ts_ms: int | float, now: float | None = None) -> str:
    """Vercel timestamps are milliseconds since the epoch."""
    now = time.time() if now is None else now
    seconds = max(0, int(now - ts_ms / 1000))
    if seconds < 60:
        return f"{seconds}s ago"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    return f"{hours // 24}d ago"
