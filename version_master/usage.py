"""Agent rate-limit usage, as cached by the agent CLI's status line hook."""
import json
import math
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

USAGE_FILE = Path.home() / ".claude" / "cache" / "oauth-usage.json"

SESSION_WINDOW = 5 * 3600
WEEKLY_WINDOW = 7 * 86400


@dataclass
class AgentUsage:
    """Percentages are 0-100; all timestamps are unix seconds."""
    five_hour_pct: float
    seven_day_pct: float
    five_hour_resets_at: int
    seven_day_resets_at: int
    updated: int


def _reset_time(value: object, fallback: int) -> int:
    if not value:
        return fallback
    try:
        return int(datetime.fromisoformat(str(value).replace("Z", "+00:00")).timestamp())
    except ValueError:
        return fallback


def get_agent_usage(path: Path | None = None) -> AgentUsage | None:
    try:
        raw = json.loads((path or USAGE_FILE).read_text())
        five_hour = float(raw["five_hour_pct"])
        seven_day = float(raw["seven_day_pct"])
    except (OSError, ValueError, KeyError, TypeError):
        return None
    updated = raw.get("updated")
    if math.isnan(five_hour) or math.isnan(seven_day) or not isinstance(updated, (int, float)):
        return None
    updated = int(updated)
    return AgentUsage(
        five_hour_pct=five_hour,
        seven_day_pct=seven_day,
        five_hour_resets_at=_reset_time(raw.get("five_hour_reset"), updated + SESSION_WINDOW),
        seven_day_resets_at=_reset_time(raw.get("seven_day_reset"), updated + WEEKLY_WINDOW),
        updated=updated,
    )


def format_countdown(resets_at: int, now: float) -> str:
    remaining = max(0, resets_at - int(now))
    hours, rem = divmod(remaining, 3600)
    if hours >= 24:
        return f"{hours // 24}d{hours % 24}h"
    return f"{hours}:{rem // 60:02d}"
