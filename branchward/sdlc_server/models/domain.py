"""Domain records returned by managers.

These are what the rest of the SDLC service sees; the GitLab payloads in
``gitlab.py`` never leave the managers.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from branchward.sdlc_server.models.enums import WorkflowStatus


class User(BaseModel):
    """A platform user.  ``user_id`` is the platform username."""

    user_id: str | None = None
    name: str | None = None


class Workflow(BaseModel):
    """A CI pipeline, seen as the workflow of a workspace or review."""

    workflow_id: str
    project_id: str
    revision_id: str | None = None
    status: WorkflowStatus | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    web_url: str | None = None
