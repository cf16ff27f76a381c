import logging
import subprocess
from collections import Counter
from pathlib import Path, PurePosixPath

logger = logging.getLogger(__name__)

EXT_TO_LANG = {
    ".ts": "TypeScript",
    ".tsx": "TypeScript",
    ".js": "JavaScript",
    ".jsx": "JavaScript",
    ".mjs": "JavaScript",
    ".swift": "Swift",
    ".cs": "C#",
    ".fs": "F#",
    ".rs": "Rust",
    ".go": "Go",
    ".py": "Python",
    ".rb": "Ruby",
    ".java": "Java",
    ".kt": "Kotlin",
    ".dart": "Dart",
    ".php": "PHP",
    ".lua": "Lua",
    ".zig": "Zig",
    ".c": "C",
    ".cpp": "C++",
    ".cc": "C++",
    ".h": "C",
    ".hpp": "C++",
    ".css": "CSS",
    ".scss": "SCSS",
    ".html": "HTML",
    ".svelte": "Svelte",
    ".vue": "Vue",
    ".ex": "Elixir",
    ".exs": "Elixir",
    ".sh": "Shell",
    ".bash": "Shell",
    ".zsh": "Shell",
    ".xaml": "XAML",
}


def tally_languages(files: list[str]) -> list[str]:
    """Languages with a meaningful share of files, most common first."""
    counts: Counter[str] = Counter()
    for name in files:
        # type declarations are generated, not written
        if name.endswith(".d.ts"):
            continue
        lang = EXT_TO_LANG.get(PurePosixPath(name).suffix.lower())
        if lang:
            counts[lang] += 1
    total = sum(counts.values())
    threshold = max(2, total // 100)
    return [lang for lang, n in counts.most_common() if n >= threshold]


def detect_tech_stack(repo_path: Path) -> list[str]:
    try:
        result = subprocess.run(
            ["git", "-C", str(repo_path), "ls-files"],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (subprocess.TimeoutExpired, OSError) as e:
        logger.debug("ls-files failed in %s: %s", repo_path, e)
        return []
    if result.returncode != 0:
        return []
    return tally_languages([line for line in result.stdout.splitlines() if line])
