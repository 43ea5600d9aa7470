"""Workspace backup endpoints (RPC-style).

Both operations mutate branches, so both use POST and return 204.
"""

from __future__ import annotations

from fastapi import APIRouter, Query, status

from branchward.sdlc_server.deps import BackupMgr
from branchward.sdlc_server.models.enums import WorkspaceType

router = APIRouter(prefix="/projects/{project_id}", tags=["backup"])


# -- User workspaces ---------------------------------------------------------


@router.post("/workspaces/{workspace_id}/backup/discard", status_code=status.HTTP_204_NO_CONTENT)
async def discard_backup(project_id: str, workspace_id: str, backups: BackupMgr) -> None:
    """Delete the backup of one of the caller's workspaces."""
    await backups.discard_backup_workspace(project_id, workspace_id, WorkspaceType.USER)


@router.post("/workspaces/{workspace_id}/backup/recover", status_code=status.HTTP_204_NO_CONTENT)
async def recover_backup(
    project_id: str,
    workspace_id: str,
    backups: BackupMgr,
    force_recovery: bool = Query(False, description="Replace the workspace if it still exists."),
) -> None:
    """Restore one of the caller's workspaces from its backup."""
    await backups.recover_backup_workspace(project_id, workspace_id, WorkspaceType.USER, force_recovery)


# -- Group workspaces --------------------------------------------------------


@router.post("/group-workspaces/{workspace_id}/backup/discard", status_code=status.HTTP_204_NO_CONTENT)
async def discard_group_backup(project_id: str, workspace_id: str, backups: BackupMgr) -> None:
    await backups.discard_backup_workspace(project_id, workspace_id, WorkspaceType.GROUP)


@router.post("/group-workspaces/{workspace_id}/backup/recover", status_code=status.HTTP_204_NO_CONTENT)
async def recover_group_backup(
    project_id: str,
    workspace_id: str,
    backups: BackupMgr,
    force_recovery: bool = Query(False, description="Replace the workspace if it still exists."),
) -> None:
    await backups.recover_backup_workspace(project_id, workspace_id, WorkspaceType.GROUP, force_recovery)
