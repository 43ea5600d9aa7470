"""Thin async client for the GitLab REST API (v4).

Each method is one HTTP call.  Non-2xx responses raise ``GitLabApiError``
carrying the HTTP status; transport failures propagate as ``httpx`` errors.
Retrying and interpreting statuses is left to the callers.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Generic, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel

from branchward.sdlc_server.models.gitlab import Branch, Pipeline, PlatformUser

ITEMS_PER_PAGE = 100

M = TypeVar("M", bound=BaseModel)
R = TypeVar("R")

RetryCall = Callable[[Callable[[], Awaitable[R]]], Awaitable[R]]
"""Wraps a zero-argument coroutine factory with a retry policy."""


def create_http_client(url: str, timeout: float) -> httpx.AsyncClient:
    """Pooled client for the instance at *url*.  Carries no credentials."""
    return httpx.AsyncClient(base_url=f"{url}/api/v4", timeout=timeout)


class GitLabApiError(Exception):
    """GitLab answered with a non-2xx status."""

    def __init__(self, status_code: int, message: str | None = None) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(message or f"GitLab responded with HTTP {status_code}")


def _segment(value: str) -> str:
    """Encode a value (e.g. a branch name containing ``/``) as one path segment."""
    return quote(value, safe="")


def _error_message(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return response.text or None
    if isinstance(body, dict):
        detail = body.get("message") or body.get("error")
        if detail is not None:
            return detail if isinstance(detail, str) else str(detail)
    return str(body)


class GitLabApi:
    """GitLab REST calls made on behalf of one user against one instance.

    ``http`` must be configured with ``base_url`` pointing at ``.../api/v4``.
    ``retry`` is applied by ``with_retry``, which is how a ``Pager`` fetches
    the pages after its first; the first page is fetched under the caller's
    own wrapper.
    """

    def __init__(self, http: httpx.AsyncClient, token: str, *, retry: RetryCall | None = None) -> None:
        self._http = http
        self._headers = {"Authorization": f"Bearer {token}"}
        self._retry = retry

    async def with_retry(self, call: Callable[[], Awaitable[R]]) -> R:
        """Await *call* under this client's retry policy, or once when it has none."""
        if self._retry is None:
            return await call()
        return await self._retry(call)

    async def request(self, method: str, path: str, *, params: dict[str, Any] | None = None) -> httpx.Response:
        if params:
            params = {k: v for k, v in params.items() if v is not None}
        response = await self._http.request(method, path, params=params, headers=self._headers)
        if response.is_error:
            raise GitLabApiError(response.status_code, _error_message(response))
        return response

    # -- Branches --------------------------------------------------------------

    async def get_branch(self, project_id: int, branch_name: str) -> Branch:
        response = await self.request("GET", f"/projects/{project_id}/repository/branches/{_segment(branch_name)}")
        return Branch.model_validate(response.json())

    async def create_branch(self, project_id: int, branch_name: str, ref: str) -> Branch:
        """Create *branch_name* at *ref* (a branch name or commit id)."""
        response = await self.request(
            "POST",
            f"/projects/{project_id}/repository/branches",
            params={"branch": branch_name, "ref": ref},
        )
        return Branch.model_validate(response.json())

    async def delete_branch(self, project_id: int, branch_name: str) -> None:
        await self.request("DELETE", f"/projects/{project_id}/repository/branches/{_segment(branch_name)}")

    # -- Pipelines -------------------------------------------------------------

    async def get_pipeline(self, project_id: int, pipeline_id: int) -> Pipeline:
        response = await self.request("GET", f"/projects/{project_id}/pipelines/{pipeline_id}")
        return Pipeline.model_validate(response.json())

    async def get_pipelines(self, project_id: int, *, ref: str | None = None) -> Pager[Pipeline]:
        return await Pager.create(self, f"/projects/{project_id}/pipelines", Pipeline, params={"ref": ref})

    async def get_merge_request_pipelines(self, project_id: int, merge_request_iid: int) -> Pager[Pipeline]:
        return await Pager.create(
            self,
            f"/projects/{project_id}/merge_requests/{merge_request_iid}/pipelines",
            Pipeline,
        )

    # -- Users -----------------------------------------------------------------

    async def get_users(self) -> Pager[PlatformUser]:
        return await Pager.create(self, "/users", PlatformUser)

    async def find_users(self, search: str) -> Pager[PlatformUser]:
        return await Pager.create(self, "/users", PlatformUser, params={"search": search})

    async def get_user(self, username: str) -> PlatformUser | None:
        """Look a user up by username.  Returns ``None`` when there is no such user."""
        response = await self.request("GET", "/users", params={"username": username})
        users = response.json()
        return PlatformUser.model_validate(users[0]) if users else None

    async def get_current_user(self) -> PlatformUser:
        response = await self.request("GET", "/user")
        return PlatformUser.model_validate(response.json())


class Pager(Generic[M]):
    """Lazily paginated GitLab listing.

    Creating a pager fetches the first page, so request errors surface at
    creation.  Iteration follows ``X-Next-Page`` until it is empty.
    """

    def __init__(
        self,
        api: GitLabApi,
        path: str,
        model: type[M],
        params: dict[str, Any],
        first_page: httpx.Response,
    ) -> None:
        self._api = api
        self._path = path
        self._model = model
        self._params = params
        self._first_page = first_page

    @classmethod
    async def create(
        cls,
        api: GitLabApi,
        path: str,
        model: type[M],
        *,
        params: dict[str, Any] | None = None,
    ) -> Pager[M]:
        params = dict(params or {})
        first_page = await cls._fetch_page(api, path, params, 1)
        return cls(api, path, model, params, first_page)

    @property
    def total_items(self) -> int | None:
        """Total reported by GitLab, or ``None`` when it declines to count."""
        total = self._first_page.headers.get("X-Total")
        return int(total) if total else None

    async def __aiter__(self) -> AsyncIterator[M]:
        response = self._first_page
        while True:
            for item in response.json():
                yield self._model.model_validate(item)
            next_page = response.headers.get("X-Next-Page")
            if not next_page:
                return
            response = await self._fetch_next(int(next_page))

    async def to_list(self) -> list[M]:
        return [item async for item in self]

    async def _fetch_next(self, page: int) -> httpx.Response:
        def call() -> Awaitable[httpx.Response]:
            return self._fetch_page(self._api, self._path, self._params, page)

        return await self._api.with_retry(call)

    @staticmethod
    async def _fetch_page(api: GitLabApi, path: str, params: dict[str, Any], page: int) -> httpx.Response:
        return await api.request("GET", path, params={**params, "page": page, "per_page": ITEMS_PER_PAGE})
