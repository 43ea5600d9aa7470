"""Branch primitives: naming, lookup, and verified create/delete.

Workspaces are not stored anywhere but in branch names.  Each workspace has
one branch per access type, named deterministically from its id (and, for
user workspaces, the owning user)::

    workspace/{user}/{workspace_id}      backup/{user}/{workspace_id}
    group/{workspace_id}                 group-backup/{workspace_id}
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from branchward.sdlc_server.gitlab.client import GitLabApi, GitLabApiError
from branchward.sdlc_server.gitlab.retry import call_until
from branchward.sdlc_server.models.enums import WorkspaceAccessType, WorkspaceType
from branchward.sdlc_server.models.gitlab import Branch

BRANCH_DELIMITER = "/"

_BRANCH_PREFIXES: dict[tuple[WorkspaceType, WorkspaceAccessType], str] = {
    (WorkspaceType.USER, WorkspaceAccessType.WORKSPACE): "workspace",
    (WorkspaceType.USER, WorkspaceAccessType.CONFLICT_RESOLUTION): "resolution",
    (WorkspaceType.USER, WorkspaceAccessType.BACKUP): "backup",
    (WorkspaceType.GROUP, WorkspaceAccessType.WORKSPACE): "group",
    (WorkspaceType.GROUP, WorkspaceAccessType.CONFLICT_RESOLUTION): "group-resolution",
    (WorkspaceType.GROUP, WorkspaceAccessType.BACKUP): "group-backup",
}


def workspace_branch_name(
    workspace_id: str,
    workspace_type: WorkspaceType,
    access_type: WorkspaceAccessType,
    current_user: str,
) -> str:
    prefix = _BRANCH_PREFIXES[(workspace_type, access_type)]
    if workspace_type == WorkspaceType.USER:
        return BRANCH_DELIMITER.join((prefix, current_user, workspace_id))
    return BRANCH_DELIMITER.join((prefix, workspace_id))


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Found:
    branch: Branch


@dataclass(frozen=True)
class Absent:
    pass


@dataclass(frozen=True)
class LookupFailed:
    error: Exception


BranchLookup = Found | Absent | LookupFailed
"""Outcome of asking the platform whether a branch exists."""


def is_not_found(exc: BaseException) -> bool:
    return isinstance(exc, GitLabApiError) and exc.status_code == 404


async def get_branch(api: GitLabApi, project_id: int, branch_name: str) -> Branch | None:
    """Return the branch, or ``None`` if it does not exist."""
    try:
        return await api.get_branch(project_id, branch_name)
    except GitLabApiError as exc:
        if is_not_found(exc):
            return None
        raise


# ---------------------------------------------------------------------------
# Verified mutations
# ---------------------------------------------------------------------------


async def delete_branch_and_verify(
    api: GitLabApi,
    project_id: int,
    branch_name: str,
    max_tries: int,
    wait: float,
) -> bool:
    """Delete a branch and poll until it is gone.

    Returns ``True`` once the branch is observed absent (or if it never
    existed), ``False`` if it is still visible after *max_tries* polls.
    """
    logger.debug("Deleting branch {} in project {}", branch_name, project_id)
    try:
        await api.delete_branch(project_id, branch_name)
    except GitLabApiError as exc:
        if is_not_found(exc):
            logger.debug("Branch {} does not exist in project {}: nothing to delete", branch_name, project_id)
            return True
        raise

    result = await call_until(
        lambda: get_branch(api, project_id, branch_name),
        lambda branch: branch is None,
        max_tries,
        wait,
    )
    logger.debug(
        "Deleting branch {} in project {} {}",
        branch_name,
        project_id,
        "succeeded" if result.succeeded else "failed",
    )
    return result.succeeded


async def _get_branch_at_commit(api: GitLabApi, project_id: int, branch_name: str, commit_id: str) -> Branch | None:
    """Return the branch only if it exists and its head is *commit_id*."""
    branch = await get_branch(api, project_id, branch_name)
    if branch is not None and (branch.commit is None or branch.commit.id != commit_id):
        return None
    return branch


async def create_branch_and_verify(
    api: GitLabApi,
    project_id: int,
    branch_name: str,
    commit_id: str,
    max_tries: int,
    wait: float,
) -> Branch | None:
    """Create a branch at *commit_id* and poll until it is visible there.

    A branch that already exists at *commit_id* is returned without a write.
    Returns ``None`` if the branch is never observed at the commit.
    """
    logger.debug("Creating branch {} in project {} from commit {}", branch_name, project_id, commit_id)

    branch = await _get_branch_at_commit(api, project_id, branch_name, commit_id)
    if branch is not None:
        logger.debug("Branch {} already exists in project {} with commit {}", branch_name, project_id, commit_id)
        return branch

    await api.create_branch(project_id, branch_name, commit_id)
    result = await call_until(
        lambda: _get_branch_at_commit(api, project_id, branch_name, commit_id),
        lambda found: found is not None,
        max_tries,
        wait,
    )
    logger.debug(
        "Creating branch {} in project {} from commit {} {}",
        branch_name,
        project_id,
        commit_id,
        "succeeded" if result.succeeded else "failed",
    )
    return result.result if result.succeeded else None


async def create_branch_from_source_branch_and_verify(
    api: GitLabApi,
    project_id: int,
    branch_name: str,
    source_branch_name: str,
    max_tries: int,
    wait: float,
) -> Branch | None:
    """Create *branch_name* at the current head of *source_branch_name*.

    Returns ``None`` when the source branch cannot be found or the new branch
    is never observed.
    """
    result = await call_until(
        lambda: get_branch(api, project_id, source_branch_name),
        lambda branch: branch is not None,
        max_tries,
        wait,
    )
    source = result.result if result.succeeded else None
    if source is None or source.commit is None:
        logger.warning(
            "Failed to get source branch {} in project {}. Aborting branch creation from source branch.",
            source_branch_name,
            project_id,
        )
        return None
    return await create_branch_and_verify(api, project_id, branch_name, source.commit.id, max_tries, wait)
