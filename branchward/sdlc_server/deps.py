"""FastAPI dependency injection for the acting user, platform and managers.

Usage in route handlers::

    @router.post("/{workspace_id}/backup/discard")
    async def discard(project_id: str, workspace_id: str, backups: BackupMgr) -> None:
        ...

Every request must carry ``Authorization: Bearer <token>``; the token is the
caller's own GitLab token and is forwarded as-is.  Dependencies raise HTTP
503 if no GitLab instance was configured (BRANCHWARD_GITLAB_*_URL unset).
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Annotated

import httpx
from fastapi import Depends, HTTPException, Request, status

from branchward.sdlc_server.context import UserContext
from branchward.sdlc_server.errors import build_exception
from branchward.sdlc_server.gitlab.client import GitLabApi
from branchward.sdlc_server.gitlab.platform import GitLabPlatform
from branchward.sdlc_server.gitlab.retry import RetryPolicy, call_with_retries
from branchward.sdlc_server.log import request_log_context
from branchward.sdlc_server.managers.backup import BackupManager
from branchward.sdlc_server.managers.users import UserManager
from branchward.sdlc_server.managers.workflows import WorkflowManager
from branchward.sdlc_server.models.enums import GitLabMode
from branchward.sdlc_server.settings import BranchwardSettings, get_settings

Settings = Annotated[BranchwardSettings, Depends(get_settings)]
"""Annotated dependency: cached service settings."""


def get_gitlab_clients(request: Request) -> dict[GitLabMode, httpx.AsyncClient]:
    """Return the shared HTTP client of each configured GitLab instance."""
    clients: dict[GitLabMode, httpx.AsyncClient] | None = getattr(request.app.state, "gitlab_clients", None)
    if not clients:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="GitLab not configured (BRANCHWARD_GITLAB_PROD_URL / BRANCHWARD_GITLAB_UAT_URL are unset).",
        )
    return clients


GitLabClients = Annotated[dict[GitLabMode, httpx.AsyncClient], Depends(get_gitlab_clients)]


def _bearer_token(request: Request) -> str:
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token.strip()


def _retry_policy(settings: BranchwardSettings) -> RetryPolicy:
    return RetryPolicy(
        max_retries=settings.max_retries,
        initial_wait=settings.retry_initial_wait,
        wait_increment=settings.retry_wait_increment,
    )


async def _resolve_user(
    request: Request,
    settings: BranchwardSettings,
    clients: dict[GitLabMode, httpx.AsyncClient],
) -> UserContext:
    token = _bearer_token(request)
    if settings.trust_user_header:
        username = request.headers.get(settings.user_header)
        if username:
            return UserContext(username=username, token=token)

    mode = next(mode for mode in GitLabMode if mode in clients)
    api = GitLabApi(clients[mode], token)
    policy = _retry_policy(settings)
    try:
        current = await call_with_retries(
            api.get_current_user,
            max_retries=policy.max_retries,
            initial_wait=policy.initial_wait,
            wait_increment=policy.wait_increment,
        )
    except Exception as exc:
        raise build_exception(exc, default=lambda: "Error identifying the current user") from exc
    if not current.username:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Could not identify the current user.")
    return UserContext(username=current.username, token=token)


async def get_user_context(
    request: Request,
    settings: Settings,
    clients: GitLabClients,
) -> AsyncIterator[UserContext]:
    """Identify the acting user and bind them to the request's log records.

    The username comes from GitLab's current-user endpoint on the first
    configured instance, or from the configured user header when
    ``trust_user_header`` is enabled and the header is present.
    """
    user = await _resolve_user(request, settings, clients)
    request.state.username = user.username
    with request_log_context(request):
        yield user


CurrentUser = Annotated[UserContext, Depends(get_user_context)]


def get_platform(settings: Settings, clients: GitLabClients, user: CurrentUser) -> GitLabPlatform:
    return GitLabPlatform(clients, user, retry_policy=_retry_policy(settings))


# -- Annotated type aliases for concise route signatures ---------------------

Platform = Annotated[GitLabPlatform, Depends(get_platform)]
"""Annotated dependency: platform view for the acting user."""


def get_backup_manager(settings: Settings, platform: Platform) -> BackupManager:
    return BackupManager(platform, verification_wait=settings.verification_wait)


def get_user_manager(platform: Platform) -> UserManager:
    return UserManager(platform)


def get_workflow_manager(platform: Platform) -> WorkflowManager:
    return WorkflowManager(platform)


BackupMgr = Annotated[BackupManager, Depends(get_backup_manager)]
UserMgr = Annotated[UserManager, Depends(get_user_manager)]
WorkflowMgr = Annotated[WorkflowManager, Depends(get_workflow_manager)]
