"""Data models for the SDLC server."""

from branchward.sdlc_server.models.api import ErrorResponse, UserResponse, WorkflowResponse
from branchward.sdlc_server.models.domain import User, Workflow
from branchward.sdlc_server.models.enums import (
    GitLabMode,
    WorkflowStatus,
    WorkspaceAccessType,
    WorkspaceType,
)
from branchward.sdlc_server.models.gitlab import Branch, Commit, Pipeline, PlatformUser
from branchward.sdlc_server.models.project import ProjectId

__all__ = [
    # GitLab payloads
    "Branch",
    "Commit",
    # API schemas
    "ErrorResponse",
    # Enums
    "GitLabMode",
    "Pipeline",
    "PlatformUser",
    # Identifiers
    "ProjectId",
    # Domain
    "User",
    "UserResponse",
    "Workflow",
    "WorkflowResponse",
    "WorkflowStatus",
    "WorkspaceAccessType",
    "WorkspaceType",
]
