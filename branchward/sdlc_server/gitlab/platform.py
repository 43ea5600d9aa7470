"""The platform capability handed to managers.

``GitLabPlatform`` bundles what every operation needs from the hosting
platform: an API client per GitLab mode, the acting user, the retry policy
and the error classifier.  Managers receive it by composition; nothing
inherits from it.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import TypeVar

import httpx

from branchward.sdlc_server.context import UserContext
from branchward.sdlc_server.errors import InvalidArgumentError, MessageFn, SDLCServerError, build_exception
from branchward.sdlc_server.gitlab.branches import (
    Absent,
    BranchLookup,
    Found,
    LookupFailed,
    is_not_found,
    workspace_branch_name,
)
from branchward.sdlc_server.gitlab.client import GitLabApi
from branchward.sdlc_server.gitlab.retry import RetryPolicy, call_with_retries
from branchward.sdlc_server.models.enums import GitLabMode, WorkspaceAccessType, WorkspaceType
from branchward.sdlc_server.models.project import ProjectId

T = TypeVar("T")


class GitLabPlatform:
    """Per-request view of the platform for one acting user.

    ``clients`` holds the shared, pooled HTTP client for each configured
    mode; a mode without a client is not valid for this deployment.
    """

    def __init__(
        self,
        clients: Mapping[GitLabMode, httpx.AsyncClient],
        user: UserContext,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._clients = dict(clients)
        self._user = user
        self._retry_policy = retry_policy or RetryPolicy()

    @property
    def current_user(self) -> str:
        return self._user.username

    @property
    def valid_modes(self) -> list[GitLabMode]:
        return [mode for mode in GitLabMode if mode in self._clients]

    def api(self, mode: GitLabMode) -> GitLabApi:
        client = self._clients.get(mode)
        if client is None:
            msg = f"GitLab mode {mode} is not configured"
            raise InvalidArgumentError(msg)
        return GitLabApi(client, self._user.token, retry=self.with_retries)

    def parse_project_id(self, project_id: str) -> ProjectId:
        try:
            parsed = ProjectId.parse(project_id)
        except ValueError as exc:
            msg = f'Invalid project id: "{project_id}"'
            raise InvalidArgumentError(msg) from exc
        if parsed.mode not in self._clients:
            msg = f'Invalid project id: "{project_id}"'
            raise InvalidArgumentError(msg)
        return parsed

    def workspace_branch_name(
        self,
        workspace_id: str,
        workspace_type: WorkspaceType,
        access_type: WorkspaceAccessType,
    ) -> str:
        return workspace_branch_name(workspace_id, workspace_type, access_type, self.current_user)

    # -- Calls -----------------------------------------------------------------

    async def with_retries(self, call: Callable[[], Awaitable[T]]) -> T:
        policy = self._retry_policy
        return await call_with_retries(
            call,
            max_retries=policy.max_retries,
            initial_wait=policy.initial_wait,
            wait_increment=policy.wait_increment,
        )

    async def lookup_branch(self, project_id: ProjectId, branch_name: str) -> BranchLookup:
        """Fetch a branch (with retries) and report the outcome as a value."""
        api = self.api(project_id.mode)
        try:
            branch = await self.with_retries(lambda: api.get_branch(project_id.gitlab_id, branch_name))
        except Exception as exc:
            if is_not_found(exc):
                return Absent()
            return LookupFailed(exc)
        return Found(branch)

    # -- Errors ----------------------------------------------------------------

    def build_exception(
        self,
        exc: BaseException,
        forbidden: MessageFn | None = None,
        not_found: MessageFn | None = None,
        default: MessageFn | None = None,
    ) -> SDLCServerError:
        return build_exception(exc, forbidden=forbidden, not_found=not_found, default=default)
