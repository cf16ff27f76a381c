"""Deployment status for repos linked to a Vercel project (``.vercel/project.json``)."""
import json
import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx

logger = logging.getLogger(__name__)

API = "https://api.vercel.com"
API_TIMEOUT = 8.0
PING_TIMEOUT = 5.0


@dataclass
class VercelProject:
    project_id: str
    org_id: str


@dataclass
class VercelInfo:
    project_name: str
    project_id: str
    team_slug: str | None
    prod_url: str | None
    deploy_state: str | None
    healthy: bool | None
    last_deploy_at: int | None

    def dashboard_url(self) -> str | None:
        if not self.team_slug:
            return None
        return f"https://vercel.com/{self.team_slug}/{self.project_name}"

    def site_url(self) -> str | None:
        return f"https://{self.prod_url}" if self.prod_url else None


def token_paths(home: Path | None = None) -> list[Path]:
    home = home or Path.home()
    data_home = Path(os.environ.get("XDG_DATA_HOME", home / ".local" / "share"))
    return [
        home / "Library" / "Application Support" / "com.vercel.cli" / "auth.json",
        data_home / "com.vercel.cli" / "auth.json",
    ]


def load_token(home: Path | None = None) -> str | None:
    """VERCEL_TOKEN, or the token the Vercel CLI stored on login."""
    env_token = os.environ.get("VERCEL_TOKEN")
    if env_token:
        return env_token
    for path in token_paths(home):
        try:
            token = json.loads(path.read_text()).get("token")
        except (OSError, ValueError, AttributeError):
            continue
        if token:
            return str(token)
    return None


def read_vercel_project(repo_path: Path) -> VercelProject | None:
    try:
        data = json.loads((repo_path / ".vercel" / "project.json").read_text())
    except (OSError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    project_id, org_id = data.get("projectId"), data.get("orgId")
    if project_id and org_id:
        return VercelProject(project_id=str(project_id), org_id=str(org_id))
    return None


class VercelClient:
    """Thin REST client; safe to share between the refresh worker threads."""

    def __init__(self, token: str | None = None, transport: httpx.BaseTransport | None = None) -> None:
        self._token = token
        self._token_loaded = token is not None
        self._team_slugs: dict[str, str] = {}
        self._lock = threading.Lock()
        self._client = httpx.Client(
            base_url=API, timeout=API_TIMEOUT, transport=transport, follow_redirects=True
        )

    def close(self) -> None:
        self._client.close()

    @property
    def token(self) -> str | None:
        with self._lock:
            if not self._token_loaded:
                self._token = load_token()
                self._token_loaded = True
            return self._token

    def _get(self, path: str, team_id: str | None = None, **params: Any) -> Any:
        if team_id:
            params["teamId"] = team_id
        try:
            response = self._client.get(
                path, params=params, headers={"Authorization": f"Bearer {self.token}"}
            )
        except httpx.HTTPError as e:
            logger.debug("Vercel request %s failed: %s", path, e)
            return None
        if not response.is_success:
            logger.debug("Vercel request %s returned %s", path, response.status_code)
            return None
        try:
            return response.json()
        except ValueError:
            return None

    def team_slug(self, org_id: str) -> str | None:
        with self._lock:
            if org_id in self._team_slugs:
                return self._team_slugs[org_id]
        data = self._get(f"/v2/teams/{org_id}")
        slug = data.get("slug") if isinstance(data, dict) else None
        if not slug:
            return None
        with self._lock:
            self._team_slugs[org_id] = slug
        return slug

    def ping(self, host: str) -> bool:
        try:
            response = self._client.head(f"https://{host}", timeout=PING_TIMEOUT)
        except httpx.HTTPError:
            return False
        return response.is_success

    def fetch_info(self, repo_path: Path) -> VercelInfo | None:
        project = read_vercel_project(repo_path)
        if project is None or not self.token:
            return None

        team_slug = self.team_slug(project.org_id)
        domains_data = self._get(f"/v9/projects/{project.project_id}/domains", project.org_id)
        deployments_data = self._get(
            "/v6/deployments",
            project.org_id,
            projectId=project.project_id,
            target="production",
            limit=1,
        )

        domains = []
        if isinstance(domains_data, dict):
            domains = [
                d["name"] for d in domains_data.get("domains") or []
                if isinstance(d, dict) and d.get("name")
            ]
        deployment = None
        if isinstance(deployments_data, dict) and deployments_data.get("deployments"):
            deployment = deployments_data["deployments"][0]
        if not isinstance(deployment, dict):
            deployment = {}

        prod_url = domains[0] if domains else deployment.get("url")
        return VercelInfo(
            project_name=deployment.get("name") or project.project_id,
            project_id=project.project_id,
            team_slug=team_slug,
            prod_url=prod_url,
            deploy_state=deployment.get("readyState"),
            healthy=self.ping(prod_url) if prod_url else None,
            last_deploy_at=deployment.get("created"),
        )
