"""Shared test fixtures: an in-memory GitLab behind ``httpx.MockTransport``.

The fake speaks just enough of the GitLab REST API (branches, pipelines,
merge request pipelines, users) for the real client, pager, retry and
verification code to run unmodified against it.  Failure modes are injected
per test:

- ``queue_error`` answers matching requests with an HTTP error (or a
  dropped connection) a given number of times;
- ``sticky_deletes`` acknowledges branch deletes without applying them;
- ``lazy_creates`` keeps a created branch invisible for a number of reads.
"""

from __future__ import annotations

import re
from collections.abc import AsyncIterator, Iterator
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import unquote

import httpx
import pytest
from loguru import logger

from branchward.sdlc_server.context import UserContext
from branchward.sdlc_server.gitlab.client import ITEMS_PER_PAGE
from branchward.sdlc_server.gitlab.platform import GitLabPlatform
from branchward.sdlc_server.gitlab.retry import RetryPolicy
from branchward.sdlc_server.models.enums import GitLabMode

GITLAB_URL = "https://gitlab.test"

_PROJECT_PATH = re.compile(r"^/projects/(\d+)(/.*)?$")


@dataclass
class _InjectedError:
    method: str
    path_contains: str
    status_code: int
    times: int


@dataclass
class FakeProject:
    branches: dict[str, str] = field(default_factory=dict)
    """Branch name -> head commit id."""
    pipelines: list[dict[str, Any]] = field(default_factory=list)
    merge_request_pipelines: dict[int, list[dict[str, Any]]] = field(default_factory=dict)


class FakeGitLab:
    def __init__(self) -> None:
        self.projects: dict[int, FakeProject] = {}
        self.users: list[dict[str, Any]] = []
        self.current_user: dict[str, Any] = {"id": 1, "username": "alice", "name": "Alice Example"}
        self.forbidden_projects: set[int] = set()
        self.sticky_deletes: set[str] = set()
        self.lazy_creates: dict[str, int] = {}
        self.page_size = ITEMS_PER_PAGE
        self.requests: list[httpx.Request] = []
        self._errors: list[_InjectedError] = []

    # -- Setup -----------------------------------------------------------------

    def project(self, project_id: int) -> FakeProject:
        return self.projects.setdefault(project_id, FakeProject())

    def add_branch(self, project_id: int, name: str, commit_id: str = "c0ffee") -> None:
        self.project(project_id).branches[name] = commit_id

    def branch_head(self, project_id: int, name: str) -> str | None:
        return self.project(project_id).branches.get(name)

    def add_pipeline(self, project_id: int, pipeline_id: int | None, **fields: Any) -> dict[str, Any]:
        pipeline = {
            "id": pipeline_id,
            "project_id": project_id,
            "status": "success",
            "ref": "main",
            "sha": f"sha{pipeline_id}",
            "created_at": "2024-05-01T10:00:00Z",
            **fields,
        }
        self.project(project_id).pipelines.append(pipeline)
        return pipeline

    def add_merge_request_pipeline(self, project_id: int, iid: int, pipeline: dict[str, Any]) -> None:
        self.project(project_id).merge_request_pipelines.setdefault(iid, []).append(pipeline)

    def add_user(self, username: str, name: str | None = None, user_id: int | None = None) -> None:
        self.users.append({"id": user_id or len(self.users) + 100, "username": username, "name": name or username})

    def queue_error(self, method: str, path_contains: str, status_code: int, times: int = 1) -> None:
        """Fail the next *times* matching requests.  ``status_code=0`` drops the connection."""
        self._errors.append(_InjectedError(method, path_contains, status_code, times))

    def mutations(self) -> list[tuple[str, str]]:
        return [(r.method, unquote(_path(r))) for r in self.requests if r.method != "GET"]

    # -- Transport -------------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = _path(request)

        for error in self._errors:
            if error.times > 0 and error.method == request.method and error.path_contains in unquote(path):
                error.times -= 1
                if error.status_code == 0:
                    raise httpx.ConnectError("connection dropped", request=request)
                return _error(error.status_code, f"{error.status_code} injected")

        if not request.headers.get("Authorization", "").startswith("Bearer "):
            return _error(401, "401 Unauthorized")

        if path == "/user":
            return httpx.Response(200, json=self.current_user)
        if path == "/users":
            return self._list_users(request)

        match = _PROJECT_PATH.match(path)
        if match is None:
            return _error(404, "404 Not Found")
        project_id = int(match.group(1))
        if project_id in self.forbidden_projects:
            return _error(403, "403 Forbidden")
        project = self.projects.get(project_id)
        if project is None:
            return _error(404, "404 Project Not Found")
        return self._project_route(request, project_id, project, match.group(2) or "")

    def _project_route(
        self,
        request: httpx.Request,
        project_id: int,
        project: FakeProject,
        rest: str,
    ) -> httpx.Response:
        segments = [unquote(s) for s in rest.strip("/").split("/")]
        params = request.url.params

        if segments[:2] == ["repository", "branches"]:
            if len(segments) == 2 and request.method == "POST":
                return self._create_branch(project, params["branch"], params["ref"])
            if len(segments) == 3:
                name = segments[2]
                if request.method == "GET":
                    return self._get_branch(project, name)
                if request.method == "DELETE":
                    return self._delete_branch(project, name)

        if segments[0] == "pipelines":
            if len(segments) == 1 and request.method == "GET":
                pipelines = project.pipelines
                if "ref" in params:
                    pipelines = [p for p in pipelines if p.get("ref") == params["ref"]]
                return self._page(request, sorted(pipelines, key=lambda p: p["id"] or 0, reverse=True))
            if len(segments) == 2 and request.method == "GET":
                for pipeline in project.pipelines:
                    if str(pipeline["id"]) == segments[1]:
                        return httpx.Response(200, json=pipeline)
                return _error(404, "404 Not found")

        if segments[0] == "merge_requests" and len(segments) == 3 and segments[2] == "pipelines":
            iid = int(segments[1])
            if iid not in project.merge_request_pipelines:
                return _error(404, "404 Not found")
            return self._page(request, project.merge_request_pipelines[iid])

        return _error(404, f"404 No route for {project_id}{rest}")

    # -- Branches --------------------------------------------------------------

    def _get_branch(self, project: FakeProject, name: str) -> httpx.Response:
        if name not in project.branches:
            return _error(404, "404 Branch Not Found")
        if self.lazy_creates.get(name, 0) > 0:
            self.lazy_creates[name] -= 1
            return _error(404, "404 Branch Not Found")
        return httpx.Response(200, json=_branch_json(name, project.branches[name]))

    def _create_branch(self, project: FakeProject, name: str, ref: str) -> httpx.Response:
        if name in project.branches:
            return _error(400, "Branch already exists")
        commit_id = project.branches.get(ref, ref)
        project.branches[name] = commit_id
        return httpx.Response(201, json=_branch_json(name, commit_id))

    def _delete_branch(self, project: FakeProject, name: str) -> httpx.Response:
        if name not in project.branches:
            return _error(404, "404 Branch Not Found")
        if name not in self.sticky_deletes:
            del project.branches[name]
        return httpx.Response(204)

    # -- Users -----------------------------------------------------------------

    def _list_users(self, request: httpx.Request) -> httpx.Response:
        params = request.url.params
        users = self.users
        if "username" in params:
            users = [u for u in users if u["username"] == params["username"]]
        elif "search" in params:
            term = params["search"].lower()
            users = [u for u in users if term in u["username"].lower() or term in (u["name"] or "").lower()]
        return self._page(request, users)

    # -- Pagination ------------------------------------------------------------

    def _page(self, request: httpx.Request, items: list[dict[str, Any]]) -> httpx.Response:
        params = request.url.params
        page = int(params.get("page", 1))
        per_page = min(int(params.get("per_page", 20)), self.page_size)
        start = (page - 1) * per_page
        has_next = start + per_page < len(items)
        headers = {
            "X-Total": str(len(items)),
            "X-Page": str(page),
            "X-Next-Page": str(page + 1) if has_next else "",
        }
        return httpx.Response(200, json=items[start : start + per_page], headers=headers)


def _path(request: httpx.Request) -> str:
    raw = request.url.raw_path.decode("ascii").split("?", 1)[0]
    return raw.removeprefix("/api/v4")


def _branch_json(name: str, commit_id: str) -> dict[str, Any]:
    return {"name": name, "commit": {"id": commit_id, "short_id": commit_id[:8]}, "protected": False}


def _error(status_code: int, message: str) -> httpx.Response:
    return httpx.Response(status_code, json={"message": message})


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def gitlab() -> FakeGitLab:
    return FakeGitLab()


@pytest.fixture
async def gitlab_client(gitlab: FakeGitLab) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(
        transport=httpx.MockTransport(gitlab.handler),
        base_url=f"{GITLAB_URL}/api/v4",
    ) as client:
        yield client


@pytest.fixture
def no_wait_retries() -> RetryPolicy:
    return RetryPolicy(max_retries=5, initial_wait=0, wait_increment=0)


@pytest.fixture
def platform(gitlab_client: httpx.AsyncClient, no_wait_retries: RetryPolicy) -> GitLabPlatform:
    """Platform for user ``alice`` on a single PROD instance, with no retry delays."""
    return GitLabPlatform(
        {GitLabMode.PROD: gitlab_client},
        UserContext(username="alice", token="glpat-test"),
        retry_policy=no_wait_retries,
    )


@pytest.fixture
def log_records() -> Iterator[list[dict[str, Any]]]:
    """Capture loguru records emitted during the test."""
    records: list[dict[str, Any]] = []
    sink_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(sink_id)


@pytest.fixture
def uat_gitlab() -> FakeGitLab:
    """A second, independent instance for multi-mode tests."""
    return FakeGitLab()


@pytest.fixture
async def uat_gitlab_client(uat_gitlab: FakeGitLab) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(
        transport=httpx.MockTransport(uat_gitlab.handler),
        base_url="https://uat.gitlab.test/api/v4",
    ) as client:
        yield client
