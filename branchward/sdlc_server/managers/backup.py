"""Workspace backup discard and recovery.

A workspace's BACKUP branch is the last snapshot of its WORKSPACE branch.
Recovery rebuilds the WORKSPACE branch from that snapshot:

1. Verify the backup exists (fail fast with NotFound before any write).
2. Probe for a live workspace branch.
3. If one exists, refuse (MethodNotAllowed) unless recovery is forced, in
   which case delete it and verify the delete.
4. Recreate the workspace branch at the backup head and verify.
5. Delete the backup branch.  Best effort: the workspace is already
   restored, so failures here are logged and never raised.

Any failure after step 3 began writing may leave the workspace deleted but
not recreated; those surface as ``OperationFailedError``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from branchward.sdlc_server.errors import (
    MethodNotAllowedError,
    NotFoundError,
    OperationFailedError,
    validate_non_null,
)
from branchward.sdlc_server.gitlab.branches import (
    Absent,
    Found,
    create_branch_from_source_branch_and_verify,
    delete_branch_and_verify,
)
from branchward.sdlc_server.models.enums import WorkspaceAccessType, WorkspaceType

if TYPE_CHECKING:
    from branchward.sdlc_server.gitlab.platform import GitLabPlatform
    from branchward.sdlc_server.models.gitlab import Branch
    from branchward.sdlc_server.models.project import ProjectId

DELETE_VERIFICATION_TRIES = 20
CREATE_VERIFICATION_TRIES = 30

WORKSPACE = WorkspaceAccessType.WORKSPACE
BACKUP = WorkspaceAccessType.BACKUP


def _label(workspace_type: WorkspaceType, access_type: WorkspaceAccessType) -> str:
    return f"{workspace_type.label} {access_type.label}"


class BackupManager:
    """Discards and recovers workspace backups for the acting user."""

    def __init__(self, platform: GitLabPlatform, *, verification_wait: float = 1.0) -> None:
        self._platform = platform
        self._verification_wait = verification_wait

    # -- Discard ---------------------------------------------------------------

    async def discard_backup_workspace(
        self,
        project_id: str | None,
        workspace_id: str | None,
        workspace_type: WorkspaceType = WorkspaceType.USER,
    ) -> None:
        """Delete the workspace's backup branch.

        Does not check that the backup exists first: deleting an absent
        backup succeeds if the platform reports it gone.
        """
        project_id = validate_non_null(project_id, "projectId may not be null")
        workspace_id = validate_non_null(workspace_id, "workspaceId may not be null")
        platform = self._platform
        gitlab_project_id = platform.parse_project_id(project_id)
        api = platform.api(gitlab_project_id.mode)
        label = _label(workspace_type, BACKUP)
        backup_branch = platform.workspace_branch_name(workspace_id, workspace_type, BACKUP)

        try:
            deleted = await delete_branch_and_verify(
                api,
                gitlab_project_id.gitlab_id,
                backup_branch,
                DELETE_VERIFICATION_TRIES,
                self._verification_wait,
            )
        except Exception as exc:
            raise platform.build_exception(
                exc,
                forbidden=lambda: (
                    f"User {platform.current_user} is not allowed to delete {label} {workspace_id} "
                    f"in project {project_id}"
                ),
                not_found=lambda: f"Unknown {label} ({workspace_id}) or project ({project_id})",
                default=lambda: f"Error deleting {label} {workspace_id} in project {project_id}",
            ) from exc

        if not deleted:
            msg = f"User {platform.current_user}: Failed to delete {label} {workspace_id} in project {project_id}"
            raise OperationFailedError(msg)
        logger.info("Discarded {} {} in project {} for user {}", label, workspace_id, project_id, platform.current_user)

    # -- Recover ---------------------------------------------------------------

    async def recover_backup_workspace(
        self,
        project_id: str | None,
        workspace_id: str | None,
        workspace_type: WorkspaceType = WorkspaceType.USER,
        force_recovery: bool = False,
    ) -> None:
        """Rebuild the workspace branch from its backup (see module docstring)."""
        project_id = validate_non_null(project_id, "projectId may not be null")
        workspace_id = validate_non_null(workspace_id, "workspaceId may not be null")
        platform = self._platform
        gitlab_project_id = platform.parse_project_id(project_id)

        await self._verify_backup_exists(gitlab_project_id, project_id, workspace_id, workspace_type)

        existing = await self._find_live_workspace(gitlab_project_id, project_id, workspace_id, workspace_type)
        if existing is not None:
            if not force_recovery:
                msg = (
                    f"User {platform.current_user}: Workspace {workspace_id} of project {project_id} already existed "
                    "and the recovery is not forced, so recovery from backup is not possible"
                )
                raise MethodNotAllowedError(msg)
            await self._delete_live_workspace(gitlab_project_id, project_id, workspace_id, workspace_type)

        await self._recreate_workspace(gitlab_project_id, project_id, workspace_id, workspace_type)
        await self._cleanup_backup(gitlab_project_id, project_id, workspace_id, workspace_type)
        logger.info(
            "Recovered {} {} from backup in project {} for user {}",
            _label(workspace_type, WORKSPACE),
            workspace_id,
            project_id,
            platform.current_user,
        )

    async def _verify_backup_exists(
        self,
        gitlab_project_id: ProjectId,
        project_id: str,
        workspace_id: str,
        workspace_type: WorkspaceType,
    ) -> Branch:
        platform = self._platform
        label = _label(workspace_type, BACKUP)
        backup_branch = platform.workspace_branch_name(workspace_id, workspace_type, BACKUP)

        lookup = await platform.lookup_branch(gitlab_project_id, backup_branch)
        if isinstance(lookup, Found):
            return lookup.branch
        if isinstance(lookup, Absent):
            logger.error(
                "No backup for workspace {} in project {}, so recovery is not possible",
                workspace_id,
                project_id,
            )
            msg = (
                f"User {platform.current_user}: Unknown {label} with ({workspace_id}) or project "
                f"({project_id}). This implies that a backup does not exist for the specified workspace, "
                "hence recovery is not possible"
            )
            raise NotFoundError(msg)
        raise platform.build_exception(
            lookup.error,
            forbidden=lambda: (
                f"User {platform.current_user} is not allowed to get {label} {workspace_id} in project {project_id}"
            ),
            default=lambda: f"Error getting {label} {workspace_id} in project {project_id}",
        ) from lookup.error

    async def _find_live_workspace(
        self,
        gitlab_project_id: ProjectId,
        project_id: str,
        workspace_id: str,
        workspace_type: WorkspaceType,
    ) -> Branch | None:
        """Probe for the workspace branch.  Absence is the normal case; errors are only logged."""
        platform = self._platform
        branch_name = platform.workspace_branch_name(workspace_id, workspace_type, WORKSPACE)

        lookup = await platform.lookup_branch(gitlab_project_id, branch_name)
        if isinstance(lookup, Found):
            return lookup.branch
        if isinstance(lookup, Absent):
            return None
        logger.opt(exception=lookup.error).error(
            "Error getting {} {} in project {}",
            _label(workspace_type, WORKSPACE),
            workspace_id,
            project_id,
        )
        return None

    async def _delete_live_workspace(
        self,
        gitlab_project_id: ProjectId,
        project_id: str,
        workspace_id: str,
        workspace_type: WorkspaceType,
    ) -> None:
        platform = self._platform
        label = _label(workspace_type, WORKSPACE)
        context = f"Error while attempting to recover backup for {label} {workspace_id} in project {project_id}"

        try:
            deleted = await delete_branch_and_verify(
                platform.api(gitlab_project_id.mode),
                gitlab_project_id.gitlab_id,
                platform.workspace_branch_name(workspace_id, workspace_type, WORKSPACE),
                DELETE_VERIFICATION_TRIES,
                self._verification_wait,
            )
        except Exception as exc:
            raise platform.build_exception(
                exc,
                forbidden=lambda: f"{context}: User {platform.current_user} is not allowed to delete workspace",
                not_found=lambda: f"{context}: Unknown project: {project_id}",
                default=lambda: f"{context}: Error deleting workspace",
            ) from exc

        if not deleted:
            msg = f"User {platform.current_user}: Failed to delete {label} {workspace_id} in project {project_id}"
            raise OperationFailedError(msg)

    async def _recreate_workspace(
        self,
        gitlab_project_id: ProjectId,
        project_id: str,
        workspace_id: str,
        workspace_type: WorkspaceType,
    ) -> Branch:
        platform = self._platform
        label = _label(workspace_type, WORKSPACE)

        try:
            branch = await create_branch_from_source_branch_and_verify(
                platform.api(gitlab_project_id.mode),
                gitlab_project_id.gitlab_id,
                platform.workspace_branch_name(workspace_id, workspace_type, WORKSPACE),
                platform.workspace_branch_name(workspace_id, workspace_type, BACKUP),
                CREATE_VERIFICATION_TRIES,
                self._verification_wait,
            )
        except Exception as exc:
            raise platform.build_exception(
                exc,
                forbidden=lambda: (
                    f"User {platform.current_user} is not allowed to create {label} {workspace_id} "
                    f"in project {project_id}"
                ),
                not_found=lambda: f"Unknown project: {project_id}",
                default=lambda: f"Error creating {label} {workspace_id} in project {project_id}",
            ) from exc

        if branch is None:
            msg = (
                f"User {platform.current_user}: Failed to create {label} {workspace_id} in project {project_id} from "
                f"{_label(workspace_type, BACKUP)} {workspace_id}"
            )
            raise OperationFailedError(msg)
        return branch

    async def _cleanup_backup(
        self,
        gitlab_project_id: ProjectId,
        project_id: str,
        workspace_id: str,
        workspace_type: WorkspaceType,
    ) -> bool:
        """Delete the backup branch once recovery has succeeded.  Never raises."""
        platform = self._platform
        label = _label(workspace_type, BACKUP)
        try:
            deleted = await delete_branch_and_verify(
                platform.api(gitlab_project_id.mode),
                gitlab_project_id.gitlab_id,
                platform.workspace_branch_name(workspace_id, workspace_type, BACKUP),
                DELETE_VERIFICATION_TRIES,
                self._verification_wait,
            )
        except Exception:
            logger.exception(
                "Error deleting {} {} in project {} after recovery is completed",
                label,
                workspace_id,
                project_id,
            )
            return False
        if not deleted:
            logger.error("Failed to delete {} {} in project {}", label, workspace_id, project_id)
        return deleted
