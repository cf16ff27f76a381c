"""Tests for git inspection against throwaway repositories."""
import shutil
import subprocess

import pytest

from version_master.git import (
    RepoInfo,
    fetch_repo_info,
    get_ahead_behind,
    get_branch,
    get_dirty_count,
    get_upstream,
    refresh_all,
    run_git,
)

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")

GIT_IDENTITY = ["-c", "user.name=Test", "-c", "user.email=test@example.com", "-c", "commit.gpgsign=false"]


def git(repo, *args):
    subprocess.run(["git", *GIT_IDENTITY, "-C", str(repo), *args], check=True, capture_output=True)


@pytest.fixture
def repo(tmp_path):
    """main with one commit, origin/main pointing at it, then one local commit."""
    path = tmp_path / "site"
    path.mkdir()
    git(path, "init", "-q")
    git(path, "symbolic-ref", "HEAD", "refs/heads/main")
    (path / "app.py").write_text("print('hi')\n")
    (path / "util.py").write_text("")
    git(path, "add", "-A")
    git(path, "commit", "-q", "-m", "init")
    git(path, "update-ref", "refs/remotes/origin/main", "HEAD")
    (path / "README.md").write_text("# site\n")
    git(path, "add", "README.md")
    git(path, "commit", "-q", "-m", "docs")
    return path


class TestGitQueries:
    def test_branch_and_upstream(self, repo):
        assert get_branch(repo) == "main"
        assert get_upstream(repo) == "origin/main"

    def test_ahead_behind(self, repo):
        assert get_ahead_behind(repo, "origin/main") == (1, 0)
        git(repo, "update-ref", "refs/remotes/origin/main", "HEAD")
        git(repo, "reset", "-q", "--hard", "HEAD~1")
        assert get_ahead_behind(repo, "origin/main") == (0, 1)

    def test_no_upstream(self, tmp_path):
        path = tmp_path / "bare"
        path.mkdir()
        git(path, "init", "-q")
        assert get_upstream(path) == ""
        assert get_ahead_behind(path, "") == (0, 0)

    def test_dirty_count(self, repo):
        assert get_dirty_count(repo) == 0
        (repo / "new.txt").write_text("x")
        (repo / "app.py").write_text("print('changed')\n")
        assert get_dirty_count(repo) == 2

    def test_run_git_reports_the_fatal_line(self, repo):
        ok, message = run_git(["rev-parse", "--verify", "no-such-ref"], repo)
        assert not ok
        assert message.startswith("fatal:")


class TestFetchRepoInfo:
    def test_inspects_everything(self, repo):
        (repo / "scratch.txt").write_text("x")
        info = fetch_repo_info(repo)

        assert info.name == "site"
        assert info.branch == "main"
        assert info.upstream == "origin/main"
        assert (info.ahead, info.behind, info.dirty) == (1, 0, 1)
        assert info.tech_stack == ["Python"]
        assert info.error is None
        assert info.vercel is None
        assert info.can_delegate()

    def test_missing_path(self, tmp_path):
        info = fetch_repo_info(tmp_path / "gone")
        assert info.error == "not found"
        assert info.why_not_delegate() == "could not be inspected"

    def test_refresh_keeps_input_order(self, repo, tmp_path):
        missing = tmp_path / "gone"
        infos = refresh_all([missing, repo], with_vercel=False)
        assert [i.path for i in infos] == [missing, repo]
        assert infos[0].error == "not found"
        assert infos[1].error is None


class TestRepoInfo:
    def test_clean_repo_cannot_be_delegated(self, tmp_path):
        info = RepoInfo(path=tmp_path, name="x", branch="main", upstream="origin/main", ahead=2)
        assert not info.in_sync
        assert info.why_not_delegate() == "no local changes"
