"""Tests for the Vercel deployment lookup, against a mocked API."""
import json

import httpx
import pytest

from version_master.vercel import VercelClient, load_token, read_vercel_project


def link(repo, project_id="prj_1", org_id="team_1"):
    (repo / ".vercel").mkdir(parents=True)
    (repo / ".vercel" / "project.json").write_text(json.dumps({"projectId": project_id, "orgId": org_id}))
    return repo


class FakeVercel:
    """Routes requests like the real API and records what was asked."""

    def __init__(self, domains_status=200, site_status=200):
        self.domains_status = domains_status
        self.site_status = site_status
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append((request.method, request.url.host, request.url.path))
        if request.url.host != "api.vercel.com":
            return httpx.Response(self.site_status)
        assert request.headers["Authorization"] == "Bearer tok"
        path = request.url.path
        if path == "/v2/teams/team_1":
            return httpx.Response(200, json={"slug": "acme"})
        if path == "/v9/projects/prj_1/domains":
            assert request.url.params["teamId"] == "team_1"
            if self.domains_status != 200:
                return httpx.Response(self.domains_status)
            return httpx.Response(200, json={"domains": [{"name": "acme.dev"}, {"name": "www.acme.dev"}]})
        if path == "/v6/deployments":
            assert request.url.params["projectId"] == "prj_1"
            assert request.url.params["target"] == "production"
            return httpx.Response(200, json={"deployments": [{
                "name": "acme-site",
                "url": "acme-site-abc123.vercel.app",
                "readyState": "READY",
                "created": 1_700_000_000_000,
            }]})
        return httpx.Response(404)


@pytest.fixture
def no_env_token(monkeypatch):
    monkeypatch.delenv("VERCEL_TOKEN", raising=False)


class TestFetchInfo:
    def test_linked_project(self, tmp_path):
        api = FakeVercel()
        client = VercelClient(token="tok", transport=httpx.MockTransport(api))
        info = client.fetch_info(link(tmp_path / "site"))

        assert info.project_name == "acme-site"
        assert info.team_slug == "acme"
        assert info.prod_url == "acme.dev"
        assert info.deploy_state == "READY"
        assert info.healthy is True
        assert info.last_deploy_at == 1_700_000_000_000
        assert info.dashboard_url() == "https://vercel.com/acme/acme-site"
        assert info.site_url() == "https://acme.dev"
        assert ("HEAD", "acme.dev", "/") in api.calls

    def test_team_slug_is_cached(self, tmp_path):
        api = FakeVercel()
        client = VercelClient(token="tok", transport=httpx.MockTransport(api))
        client.fetch_info(link(tmp_path / "a"))
        client.fetch_info(link(tmp_path / "b"))
        assert sum(1 for call in api.calls if call[2] == "/v2/teams/team_1") == 1

    def test_falls_back_to_deployment_url(self, tmp_path):
        api = FakeVercel(domains_status=403, site_status=502)
        client = VercelClient(token="tok", transport=httpx.MockTransport(api))
        info = client.fetch_info(link(tmp_path / "site"))

        assert info.prod_url == "acme-site-abc123.vercel.app"
        assert info.healthy is False

    def test_unlinked_repo(self, tmp_path):
        api = FakeVercel()
        client = VercelClient(token="tok", transport=httpx.MockTransport(api))
        assert client.fetch_info(tmp_path) is None
        assert api.calls == []

    def test_no_token(self, tmp_path, monkeypatch, no_env_token):
        monkeypatch.setattr("version_master.vercel.load_token", lambda home=None: None)
        api = FakeVercel()
        client = VercelClient(transport=httpx.MockTransport(api))
        assert client.fetch_info(link(tmp_path / "site")) is None
        assert api.calls == []


class TestTokenAndProject:
    def test_env_token_wins(self, monkeypatch, tmp_path):
        monkeypatch.setenv("VERCEL_TOKEN", "from-env")
        assert load_token(tmp_path) == "from-env"

    def test_cli_auth_file(self, monkeypatch, tmp_path, no_env_token):
        monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
        auth = tmp_path / "data" / "com.vercel.cli" / "auth.json"
        auth.parent.mkdir(parents=True)
        auth.write_text(json.dumps({"token": "from-cli"}))
        assert load_token(tmp_path) == "from-cli"

    def test_no_token_anywhere(self, monkeypatch, tmp_path, no_env_token):
        monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
        assert load_token(tmp_path) is None

    def test_project_file_needs_both_ids(self, tmp_path):
        link(tmp_path / "ok")
        assert read_vercel_project(tmp_path / "ok").project_id == "prj_1"
        broken = tmp_path / "broken" / ".vercel"
        broken.mkdir(parents=True)
        (broken / "project.json").write_text(json.dumps({"projectId": "prj_1"}))
        assert read_vercel_project(tmp_path / "broken") is None
