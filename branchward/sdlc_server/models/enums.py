"""Shared enumerations used across the SDLC server."""

from __future__ import annotations

from enum import StrEnum

# -- Platform ----------------------------------------------------------------


class GitLabMode(StrEnum):
    """GitLab instance a project lives on; the first part of a project id."""

    PROD = "PROD"
    UAT = "UAT"


# -- Workspace ---------------------------------------------------------------


class WorkspaceType(StrEnum):
    USER = "user"
    GROUP = "group"

    @property
    def label(self) -> str:
        return self.value


class WorkspaceAccessType(StrEnum):
    """Which of a workspace's branches is being addressed."""

    WORKSPACE = "workspace"
    CONFLICT_RESOLUTION = "conflict_resolution"
    BACKUP = "backup"

    @property
    def label(self) -> str:
        return _ACCESS_TYPE_LABELS[self]


_ACCESS_TYPE_LABELS = {
    WorkspaceAccessType.WORKSPACE: "workspace",
    WorkspaceAccessType.CONFLICT_RESOLUTION: "workspace with conflict resolution",
    WorkspaceAccessType.BACKUP: "backup workspace",
}


# -- Workflow ----------------------------------------------------------------


class WorkflowStatus(StrEnum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELED = "CANCELED"
    UNKNOWN = "UNKNOWN"
