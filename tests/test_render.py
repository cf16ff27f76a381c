from version_master.render import deploy_badge, render_line, status_badge, time_ago
from version_master.stream import LineKind, LogLine


class TestBadges:
    def test_status(self):
        assert status_badge(0, 0, 0).plain == "in sync"
        assert status_badge(2, 1, 3).plain == "↑2 ↓1 ●3"
        assert status_badge(0, 0, 4).plain == "●4"
        assert status_badge(1, 0, 0, error="boom").plain == "error"

    def test_deploy(self):
        assert deploy_badge(None).plain == "-"
        assert deploy_badge("READY").plain == "▲ READY"

    def test_time_ago(self):
        now = 1_700_000_000
        assert time_ago(now * 1000, now=now) == "0s ago"
        assert time_ago((now - 90) * 1000, now=now) == "1m ago"
        assert time_ago((now - 3 * 3600) * 1000, now=now) == "3h ago"
        assert time_ago((now - 50 * 3600) * 1000, now=now) == "2d ago"


class TestRenderLine:
    def test_command_marker(self):
        assert render_line(LogLine(LineKind.COMMAND, "git push"), indent="  ").plain == "  ▸ git push"

    def test_output_is_indented(self):
        line = LogLine(LineKind.OUTPUT, "a\nb")
        assert render_line(line).plain == "  a\n  b"
