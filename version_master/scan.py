from pathlib import Path


def _is_repo(path: Path) -> bool:
    # .git is a directory for clones and a file for worktrees
    return (path / ".git").exists()


def _subdirs(path: Path) -> list[Path]:
    try:
        return [p for p in path.iterdir() if p.is_dir()]
    except OSError:
        return []


def scan_dir(root: Path, max_depth: int = 2) -> list[Path]:
    """Repos directly under root, plus one level deeper when max_depth > 1."""
    repos: list[Path] = []
    for item in _subdirs(root):
        if _is_repo(item):
            repos.append(item)
            continue
        if max_depth > 1:
            repos.extend(sub for sub in _subdirs(item) if _is_repo(sub))
    return repos


def scan_for_repos(
    root: Path,
    max_depth: int = 2,
    home_dotdirs: list[str] | None = None,
    home: Path | None = None,
) -> list[Path]:
    """Candidate repos for the picker, sorted by path."""
    repos = scan_dir(root, max_depth)
    home = home or Path.home()
    for name in home_dotdirs or []:
        candidate = home / name
        if _is_repo(candidate):
            repos.append(candidate)
    return sorted(set(repos))
