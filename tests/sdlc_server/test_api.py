"""HTTP-level tests for the SDLC server endpoints."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from branchward.sdlc_server.app import app
from branchward.sdlc_server.models.enums import GitLabMode
from branchward.sdlc_server.settings import BranchwardSettings, get_settings

if TYPE_CHECKING:
    from tests.conftest import FakeGitLab

AUTH = {"Authorization": "Bearer glpat-test"}


def _settings(**overrides: object) -> BranchwardSettings:
    return BranchwardSettings(
        _env_file=None,
        gitlab_prod_url="https://gitlab.test",
        retry_initial_wait=0,
        retry_wait_increment=0,
        verification_wait=0,
        **overrides,
    )


@pytest.fixture
async def client(gitlab_client: httpx.AsyncClient) -> AsyncIterator[AsyncClient]:
    """Async HTTP client wired to the app and the in-memory GitLab.

    The app lifespan does NOT run under ``ASGITransport``, so the GitLab
    clients are pre-set on app state and settings are overridden.  The user
    header is trusted, as behind the fronting proxy.
    """
    app.dependency_overrides[get_settings] = lambda: _settings(trust_user_header=True)
    app.state.gitlab_clients = {GitLabMode.PROD: gitlab_client}

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    app.state.gitlab_clients = {}


async def test_health(client: AsyncClient) -> None:
    response = await client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_missing_token(client: AsyncClient) -> None:
    response = await client.get("/api/users/list")
    assert response.status_code == 401


async def test_unconfigured_platform(client: AsyncClient) -> None:
    app.state.gitlab_clients = {}
    response = await client.get("/api/users/list", headers=AUTH)
    assert response.status_code == 503


# -- Backup ----------------------------------------------------------------------


async def test_recover_and_discard(gitlab: FakeGitLab, client: AsyncClient) -> None:
    """User name comes from the platform when the user header is absent."""
    gitlab.current_user = {"id": 1, "username": "alice", "name": "Alice"}
    gitlab.add_branch(1, "backup/alice/w1", "backup-head")

    response = await client.post("/api/projects/PROD-1/workspaces/w1/backup/recover", headers=AUTH)
    assert response.status_code == 204
    assert gitlab.branch_head(1, "workspace/alice/w1") == "backup-head"
    assert gitlab.branch_head(1, "backup/alice/w1") is None

    gitlab.add_branch(1, "backup/alice/w1", "newer")
    response = await client.post("/api/projects/PROD-1/workspaces/w1/backup/discard", headers=AUTH)
    assert response.status_code == 204
    assert gitlab.branch_head(1, "backup/alice/w1") is None


async def test_user_header_names_the_user(gitlab: FakeGitLab, client: AsyncClient) -> None:
    gitlab.add_branch(1, "backup/bob/w1")

    response = await client.post(
        "/api/projects/PROD-1/workspaces/w1/backup/discard",
        headers={**AUTH, "X-SDLC-User": "bob"},
    )

    assert response.status_code == 204
    assert gitlab.branch_head(1, "backup/bob/w1") is None
    assert not any(r.url.path.endswith("/user") for r in gitlab.requests)


async def test_user_header_ignored_unless_trusted(gitlab: FakeGitLab, client: AsyncClient) -> None:
    app.dependency_overrides[get_settings] = lambda: _settings()
    gitlab.current_user = {"id": 1, "username": "alice", "name": "Alice"}
    gitlab.add_branch(1, "backup/alice/w1")
    gitlab.add_branch(1, "backup/bob/w1")

    response = await client.post(
        "/api/projects/PROD-1/workspaces/w1/backup/discard",
        headers={**AUTH, "X-SDLC-User": "bob"},
    )

    assert response.status_code == 204
    assert gitlab.branch_head(1, "backup/alice/w1") is None
    assert gitlab.branch_head(1, "backup/bob/w1") is not None
    assert any(r.url.path.endswith("/user") for r in gitlab.requests)


async def test_logs_carry_user_project_and_workspace(
    gitlab: FakeGitLab,
    client: AsyncClient,
    log_records: list[dict[str, Any]],
) -> None:
    gitlab.add_branch(1, "backup/bob/w1")

    response = await client.post(
        "/api/projects/PROD-1/workspaces/w1/backup/discard",
        headers={**AUTH, "X-SDLC-User": "bob"},
    )

    assert response.status_code == 204
    discarded = [r for r in log_records if r["message"].startswith("Discarded")]
    assert len(discarded) == 1
    extra = discarded[0]["extra"]
    assert (extra["user"], extra["project"], extra["workspace"]) == ("bob", "PROD-1", "w1")


async def test_recover_conflict_and_force(gitlab: FakeGitLab, client: AsyncClient) -> None:
    gitlab.add_branch(1, "group-backup/w1", "backup-head")
    gitlab.add_branch(1, "group/w1", "live")
    url = "/api/projects/PROD-1/group-workspaces/w1/backup/recover"

    response = await client.post(url, headers=AUTH)
    assert response.status_code == 405
    assert "already existed" in response.json()["detail"]
    assert gitlab.branch_head(1, "group/w1") == "live"

    response = await client.post(url, params={"force_recovery": "true"}, headers=AUTH)
    assert response.status_code == 204
    assert gitlab.branch_head(1, "group/w1") == "backup-head"


async def test_recover_missing_backup(gitlab: FakeGitLab, client: AsyncClient) -> None:
    gitlab.project(1)
    response = await client.post("/api/projects/PROD-1/workspaces/w1/backup/recover", headers=AUTH)
    assert response.status_code == 404
    assert "recovery is not possible" in response.json()["detail"]


async def test_invalid_project_id(client: AsyncClient) -> None:
    response = await client.post(
        "/api/projects/not-a-project/workspaces/w1/backup/discard",
        headers={**AUTH, "X-SDLC-User": "alice"},
    )
    assert response.status_code == 400
    assert response.json() == {"detail": 'Invalid project id: "not-a-project"'}


async def test_forbidden(gitlab: FakeGitLab, client: AsyncClient) -> None:
    gitlab.add_branch(1, "backup/alice/w1")
    gitlab.forbidden_projects.add(1)
    response = await client.post(
        "/api/projects/PROD-1/workspaces/w1/backup/discard",
        headers={**AUTH, "X-SDLC-User": "alice"},
    )
    assert response.status_code == 403


async def test_unverified_delete_is_server_error(
    gitlab: FakeGitLab,
    client: AsyncClient,
    log_records: list[dict[str, Any]],
) -> None:
    gitlab.add_branch(1, "backup/alice/w1")
    gitlab.sticky_deletes.add("backup/alice/w1")
    response = await client.post(
        "/api/projects/PROD-1/workspaces/w1/backup/discard",
        headers={**AUTH, "X-SDLC-User": "alice"},
    )
    assert response.status_code == 500
    assert response.json()["detail"].startswith("User alice: Failed to delete user backup workspace w1")
    failed = [r for r in log_records if r["message"].startswith("Request failed")]
    assert [r["extra"]["user"] for r in failed] == ["alice"]
    assert failed[0]["extra"]["workspace"] == "w1"


# -- Users -----------------------------------------------------------------------


async def test_users(gitlab: FakeGitLab, client: AsyncClient) -> None:
    gitlab.add_user("bob", "Bob")
    gitlab.add_user("alice", "Alice")
    headers = {**AUTH, "X-SDLC-User": "alice"}

    response = await client.get("/api/users/list", headers=headers)
    assert response.status_code == 200
    assert response.json() == [{"user_id": "alice", "name": "Alice"}, {"user_id": "bob", "name": "Bob"}]

    response = await client.get("/api/users/search", params={"search": "bo"}, headers=headers)
    assert [u["user_id"] for u in response.json()] == ["bob"]

    response = await client.get("/api/users/bob/get", headers=headers)
    assert response.json() == {"user_id": "bob", "name": "Bob"}

    response = await client.get("/api/users/nobody/get", headers=headers)
    assert response.status_code == 404
    assert response.json() == {"detail": "Unknown user: nobody"}


async def test_current_user(gitlab: FakeGitLab, client: AsyncClient) -> None:
    gitlab.current_user = {"id": 1, "username": "alice", "name": "Alice Example"}
    response = await client.get("/api/users/current", headers=AUTH)
    assert response.status_code == 200
    assert response.json() == {"user_id": "alice", "name": "Alice Example"}


# -- Workflows -------------------------------------------------------------------


async def test_workspace_workflows(gitlab: FakeGitLab, client: AsyncClient) -> None:
    gitlab.add_pipeline(1, 1, ref="workspace/alice/w1", status="failed")
    gitlab.add_pipeline(1, 2, ref="workspace/alice/w1", status="success")
    headers = {**AUTH, "X-SDLC-User": "alice"}

    response = await client.get("/api/projects/PROD-1/workspaces/w1/workflows/list", headers=headers)
    assert response.status_code == 200
    assert [w["workflow_id"] for w in response.json()] == ["2", "1"]

    response = await client.get(
        "/api/projects/PROD-1/workspaces/w1/workflows/list",
        params={"status": "FAILED"},
        headers=headers,
    )
    assert [w["workflow_id"] for w in response.json()] == ["1"]

    response = await client.get(
        "/api/projects/PROD-1/workspaces/w1/workflows/list",
        params={"limit": -1},
        headers=headers,
    )
    assert response.status_code == 400

    response = await client.get("/api/projects/PROD-1/workspaces/w1/workflows/2/get", headers=headers)
    assert response.json()["status"] == "SUCCEEDED"
    assert response.json()["project_id"] == "PROD-1"


async def test_review_workflows(gitlab: FakeGitLab, client: AsyncClient) -> None:
    gitlab.project(1)
    gitlab.add_merge_request_pipeline(1, 3, {"id": 9, "status": "running", "created_at": "2024-05-01T10:00:00Z"})
    headers = {**AUTH, "X-SDLC-User": "alice"}

    response = await client.get("/api/projects/PROD-1/reviews/3/workflows/list", headers=headers)
    assert [w["status"] for w in response.json()] == ["IN_PROGRESS"]

    response = await client.get("/api/projects/PROD-1/reviews/3/workflows/10/get", headers=headers)
    assert response.status_code == 404
