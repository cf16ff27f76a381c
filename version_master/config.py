import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "version-master"
CONFIG_FILE = CONFIG_DIR / "repos.json"

SORT_MODES = ["name", "status", "language"]
DEFAULT_HOME_DOTDIRS = [".dotfiles", ".claude", ".claude_phoenix"]


def config_path() -> Path:
    override = os.environ.get("VERSION_MASTER_CONFIG")
    return Path(override).expanduser() if override else CONFIG_FILE


@dataclass
class AppConfig:
    """Monitored repos plus a few knobs, persisted as JSON."""
    repos: list[str] = field(default_factory=list)
    scan_root: str = "~/CursorProjects"
    scan_depth: int = 2
    home_dotdirs: list[str] = field(default_factory=lambda: list(DEFAULT_HOME_DOTDIRS))
    agent_command: str = "claude"
    sort_mode: str = "name"

    @classmethod
    def load(cls, path: Path | None = None) -> "AppConfig":
        """Load config from disk or return defaults."""
        path = path or config_path()
        if not path.exists():
            return cls()
        try:
            with open(path, "r") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Ignoring unreadable config %s: %s", path, e)
            return cls()
        if not isinstance(data, dict):
            logger.warning("Ignoring config %s: expected a JSON object", path)
            return cls()

        defaults = cls()
        repos = data.get("repos", [])
        dotdirs = data.get("home_dotdirs", defaults.home_dotdirs)
        sort_mode = data.get("sort_mode", defaults.sort_mode)
        try:
            scan_depth = int(data.get("scan_depth", defaults.scan_depth))
        except (TypeError, ValueError):
            scan_depth = defaults.scan_depth
        return cls(
            repos=[str(r) for r in repos] if isinstance(repos, list) else [],
            scan_root=str(data.get("scan_root", defaults.scan_root)),
            scan_depth=scan_depth,
            home_dotdirs=[str(d) for d in dotdirs] if isinstance(dotdirs, list) else defaults.home_dotdirs,
            agent_command=str(data.get("agent_command", defaults.agent_command)),
            sort_mode=sort_mode if sort_mode in SORT_MODES else defaults.sort_mode,
        )

    def save(self, path: Path | None = None) -> None:
        """Save config to disk."""
        path = path or config_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump({
                "repos": self.repos,
                "scan_root": self.scan_root,
                "scan_depth": self.scan_depth,
                "home_dotdirs": self.home_dotdirs,
                "agent_command": self.agent_command,
                "sort_mode": self.sort_mode,
            }, f, indent=2)

    @property
    def scan_root_path(self) -> Path:
        return Path(self.scan_root).expanduser()
