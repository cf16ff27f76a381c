import logging
import subprocess
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from .techstack import detect_tech_stack
from .vercel import VercelClient, VercelInfo

logger = logging.getLogger(__name__)

GIT_TIMEOUT = 5


@dataclass
class RepoInfo:
    path: Path
    name: str
    branch: str
    upstream: str
    ahead: int = 0
    behind: int = 0
    dirty: int = 0
    error: str | None = None
    tech_stack: list[str] = field(default_factory=list)
    vercel: VercelInfo | None = None

    @property
    def in_sync(self) -> bool:
        return self.error is None and self.ahead == 0 and self.behind == 0 and self.dirty == 0

    def can_delegate(self) -> bool:
        return self.why_not_delegate() is None

    def why_not_delegate(self) -> str | None:
        if self.error:
            return "could not be inspected"
        if self.dirty == 0:
            return "no local changes"
        return None


def run_git(args: list[str], cwd: Path, timeout: int = GIT_TIMEOUT) -> tuple[bool, str]:
    try:
        result = subprocess.run(
            ["git", "-C", str(cwd)] + args,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
        if result.returncode == 0:
            return True, result.stdout.strip()
        else:
            # On failure, prefer stderr (where git errors go), fall back to stdout
            error = result.stderr.strip() or result.stdout.strip()
            for line in error.split('\n'):
                if line.startswith(('fatal:', 'error:', 'warning:')):
                    return False, line
            lines = [l for l in error.split('\n') if l.strip()]
            return False, lines[-1] if lines else "Unknown error"
    except subprocess.TimeoutExpired:
        return False, f"Command timed out after {timeout}s"
    except OSError as e:
        return False, str(e)


def get_branch(repo_path: Path) -> str:
    ok, branch = run_git(["rev-parse", "--abbrev-ref", "HEAD"], repo_path)
    return branch if ok and branch else "unknown"


def get_upstream(repo_path: Path) -> str:
    """Tracking branch, else origin/main, else origin/master, else ''."""
    ok, upstream = run_git(["rev-parse", "--abbrev-ref", "@{upstream}"], repo_path)
    if ok and upstream:
        return upstream
    for candidate in ("origin/main", "origin/master"):
        ok, _ = run_git(["rev-parse", "--verify", candidate], repo_path)
        if ok:
            return candidate
    return ""


def get_dirty_count(repo_path: Path) -> int:
    ok, output = run_git(["status", "--porcelain"], repo_path)
    if not ok or not output:
        return 0
    return len(output.splitlines())


def get_ahead_behind(repo_path: Path, upstream: str) -> tuple[int, int]:
    if not upstream:
        return 0, 0
    ok, output = run_git(["rev-list", "--left-right", "--count", f"{upstream}...HEAD"], repo_path)
    if not ok:
        return 0, 0
    parts = output.split()
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        return 0, 0
    behind, ahead = int(parts[0]), int(parts[1])
    return ahead, behind


def fetch_repo_info(repo_path: Path, vercel: VercelClient | None = None) -> RepoInfo:
    name = repo_path.name
    if not repo_path.is_dir():
        return RepoInfo(path=repo_path, name=name, branch="error", upstream="", error="not found")
    try:
        branch = get_branch(repo_path)
        upstream = get_upstream(repo_path)
        ahead, behind = get_ahead_behind(repo_path, upstream)
        info = RepoInfo(
            path=repo_path,
            name=name,
            branch=branch,
            upstream=upstream,
            ahead=ahead,
            behind=behind,
            dirty=get_dirty_count(repo_path),
            tech_stack=detect_tech_stack(repo_path),
        )
    except Exception as e:
        logger.exception("Failed to inspect %s", repo_path)
        return RepoInfo(path=repo_path, name=name, branch="error", upstream="", error=str(e))

    if vercel is not None:
        info.vercel = vercel.fetch_info(repo_path)
    return info


def refresh_all(repo_paths: list[Path], max_workers: int = 16, with_vercel: bool = True) -> list[RepoInfo]:
    """Inspect all repos in parallel; results keep the input order."""
    if not repo_paths:
        return []
    vercel = VercelClient() if with_vercel else None
    try:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            return list(executor.map(lambda p: fetch_repo_info(p, vercel), repo_paths))
    finally:
        if vercel is not None:
            vercel.close()
