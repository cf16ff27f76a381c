"""Shared fixtures: a scripted stand-in for the agent CLI."""
import json
import sys
from pathlib import Path

import pytest

# Reads fake-agent.json from its working directory (the repo it was started
# in), prints the scripted lines and exits with the scripted status.
FAKE_AGENT = """\
import json
import sys
import time
from pathlib import Path

script = Path("fake-agent.json")
cfg = json.loads(script.read_text()) if script.exists() else {}
time.sleep(cfg.get("delay", 0))
for line in cfg.get("lines", []):
    print(line, flush=True)
    time.sleep(cfg.get("line_delay", 0))
time.sleep(cfg.get("hang", 0))
sys.exit(cfg.get("exit", 0))
"""


@pytest.fixture
def fake_agent(tmp_path_factory) -> list[str]:
    script = tmp_path_factory.mktemp("agent") / "fake_agent.py"
    script.write_text(FAKE_AGENT)
    return [sys.executable, str(script)]


@pytest.fixture
def make_repo(tmp_path):
    """Create a working directory with a scripted agent session."""

    def _make(
        name: str,
        lines: list[str] = (),
        exit_code: int = 0,
        delay: float = 0.0,
        line_delay: float = 0.0,
        hang: float = 0.0,
    ) -> Path:
        path = tmp_path / name
        path.mkdir()
        (path / "fake-agent.json").write_text(json.dumps({
            "lines": list(lines),
            "exit": exit_code,
            "delay": delay,
            "line_delay": line_delay,
            "hang": hang,
        }))
        return path

    return _make
