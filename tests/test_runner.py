"""Tests for the per-repo agent subprocess runner."""
from contextlib import aclosing
from pathlib import Path

import pytest

from version_master.runner import (
    MAX_RETAINED_LINES,
    TaskRun,
    TaskRunner,
    agent_argv,
    build_agent_args,
    describe_exit,
    run_task,
)
from version_master.stream import LineKind, LogLine
from version_master.tasks import COMMIT_TASK, TIDY_TASK

from .streams import final_result, text_block, tool_call


class TestAgentArgs:
    def test_command_line(self):
        args = build_agent_args(COMMIT_TASK, ["claude"])
        assert args == [
            "claude", "-p", COMMIT_TASK.prompt,
            "--allowedTools", "Bash(git *)",
            "--output-format", "stream-json",
            "--verbose",
            "--include-partial-messages",
        ]

    def test_every_allowed_tool_is_passed(self):
        args = build_agent_args(TIDY_TASK, ["claude"])
        start = args.index("--allowedTools") + 1
        assert tuple(args[start:start + len(TIDY_TASK.allowed_tools)]) == TIDY_TASK.allowed_tools

    def test_agent_argv(self):
        assert agent_argv(None) == ["claude"]
        assert agent_argv("") == ["claude"]
        assert agent_argv("npx claude --debug") == ["npx", "claude", "--debug"]
        assert agent_argv(["/bin/agent"]) == ["/bin/agent"]

    def test_describe_exit(self):
        assert describe_exit(1) == "Exit code 1"
        assert describe_exit(None) == "Exit code unknown"
        assert describe_exit(-9) == "Exit code unknown (signal 9)"


class TestTaskRun:
    def test_label_is_last_path_segment(self):
        assert TaskRun(path=Path("/work/site")).label == "site"

    def test_retained_lines_are_capped(self):
        run = TaskRun(path=Path("/work/site"))
        for i in range(MAX_RETAINED_LINES + 5):
            run.append(LogLine(LineKind.TEXT, str(i)))
        assert len(run.lines) == MAX_RETAINED_LINES
        assert run.lines[0].text == "5"
        assert [line.text for line in run.visible_lines(3)] == [
            str(MAX_RETAINED_LINES + 2), str(MAX_RETAINED_LINES + 3), str(MAX_RETAINED_LINES + 4)
        ]


class TestTaskRunner:
    @pytest.mark.asyncio
    async def test_streams_lines_in_order(self, fake_agent, make_repo):
        repo = make_repo(
            "site",
            lines=text_block("Committing") + tool_call("Bash", {"command": "git push"}),
        )
        runner = TaskRunner(repo, COMMIT_TASK, agent=fake_agent)
        seen = []
        async with aclosing(runner.stream()) as lines:
            async for line in lines:
                assert line in runner.run.lines
                seen.append(line)

        assert seen == [LogLine(LineKind.TEXT, "Committing"), LogLine(LineKind.COMMAND, "git push")]
        assert runner.run.done
        assert not runner.run.failed
        assert runner.run.exit_code == 0

    @pytest.mark.asyncio
    async def test_exit_code_without_output(self, fake_agent, make_repo):
        """A failing agent that printed nothing still leaves one error line."""
        run = await run_task(make_repo("api", exit_code=1), COMMIT_TASK, agent=fake_agent)

        assert run.lines == [LogLine(LineKind.ERROR, "Exit code 1")]
        assert run.done
        assert run.failed
        assert run.exit_code == 1

    @pytest.mark.asyncio
    async def test_missing_executable(self, make_repo):
        run = await run_task(make_repo("api"), COMMIT_TASK, agent="version-master-no-such-agent")

        assert run.lines == [LogLine(LineKind.ERROR, '"version-master-no-such-agent" not found on PATH.')]
        assert run.done
        assert run.failed
        assert run.exit_code is None

    @pytest.mark.asyncio
    async def test_missing_directory(self, fake_agent, tmp_path):
        run = await run_task(tmp_path / "gone", COMMIT_TASK, agent=fake_agent)

        assert len(run.lines) == 1
        assert run.lines[0].kind == LineKind.ERROR
        assert run.lines[0].text.startswith("Directory not found")
        assert run.done

    @pytest.mark.asyncio
    async def test_verbose_runner_shows_tool_output(self, fake_agent, make_repo):
        repo = make_repo("site", lines=['{"type": "tool_result", "content": "Everything up-to-date"}'])
        quiet = await run_task(repo, COMMIT_TASK, agent=fake_agent)
        loud = await run_task(repo, COMMIT_TASK, agent=fake_agent, verbose=True)

        assert quiet.lines == []
        assert loud.lines == [LogLine(LineKind.OUTPUT, "Everything up-to-date")]

    @pytest.mark.asyncio
    async def test_error_result_then_failure_exit(self, fake_agent, make_repo):
        repo = make_repo("site", lines=[final_result("Not logged in", is_error=True)], exit_code=2)
        run = await run_task(repo, COMMIT_TASK, agent=fake_agent)

        assert run.lines == [
            LogLine(LineKind.ERROR, "Not logged in"),
            LogLine(LineKind.ERROR, "Exit code 2"),
        ]

    @pytest.mark.asyncio
    async def test_closing_the_stream_kills_the_agent(self, fake_agent, make_repo):
        repo = make_repo("slow", lines=tool_call("Bash", {"command": "git status"}), hang=30)
        spawned = []

        class RecordingRunner(TaskRunner):
            async def _spawn(self):
                process = await super()._spawn()
                spawned.append(process)
                return process

        runner = RecordingRunner(repo, COMMIT_TASK, agent=fake_agent)
        stream = runner.stream()
        first = await stream.__anext__()
        assert first == LogLine(LineKind.COMMAND, "git status")

        await stream.aclose()

        [process] = spawned
        assert process.returncode is not None
        assert runner.run.done
        assert runner.run.exit_code is None

    @pytest.mark.asyncio
    async def test_reducer_failure_is_reported_before_completion(self, fake_agent, make_repo, monkeypatch):
        class BrokenReducer:
            def __init__(self, verbose=False):
                pass

            def feed(self, line):
                raise RuntimeError("bad event")

        monkeypatch.setattr("version_master.runner.StreamReducer", BrokenReducer)
        repo = make_repo("site", lines=tool_call("Bash", {"command": "git status"}), hang=30)
        spawned = []

        class RecordingRunner(TaskRunner):
            async def _spawn(self):
                process = await super()._spawn()
                spawned.append(process)
                return process

        runner = RecordingRunner(repo, COMMIT_TASK, agent=fake_agent)
        done_when_reported = []
        async for line in runner.stream():
            done_when_reported.append(runner.run.done)

        assert runner.run.lines == [LogLine(LineKind.ERROR, "Internal error: bad event")]
        assert done_when_reported == [False]
        assert runner.run.done and runner.run.failed
        assert spawned[0].returncode is not None
