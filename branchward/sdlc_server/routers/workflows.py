"""Workflow status endpoints (RPC-style, read-only).

Listings are newest first.  ``status`` and ``revision_id`` may be repeated
to match any of several values.
"""

from __future__ import annotations

from fastapi import APIRouter, Query

from branchward.sdlc_server.deps import WorkflowMgr
from branchward.sdlc_server.models.api import WorkflowResponse
from branchward.sdlc_server.models.domain import Workflow
from branchward.sdlc_server.models.enums import WorkflowStatus, WorkspaceType

router = APIRouter(prefix="/projects/{project_id}", tags=["workflows"])


@router.get("/workspaces/{workspace_id}/workflows/list", response_model=list[WorkflowResponse])
async def list_workspace_workflows(
    project_id: str,
    workspace_id: str,
    workflows: WorkflowMgr,
    workflow_status: list[WorkflowStatus] | None = Query(None, alias="status"),
    revision_id: list[str] | None = Query(None),
    limit: int | None = Query(None, description="Maximum number of workflows; 0 returns none."),
) -> list[Workflow]:
    return await workflows.list_workspace_workflows(
        project_id,
        workspace_id,
        WorkspaceType.USER,
        statuses=workflow_status,
        revision_ids=revision_id,
        limit=limit,
    )


@router.get("/workspaces/{workspace_id}/workflows/{workflow_id}/get", response_model=WorkflowResponse)
async def get_workspace_workflow(
    project_id: str,
    workspace_id: str,
    workflow_id: str,
    workflows: WorkflowMgr,
) -> Workflow:
    return await workflows.get_workspace_workflow(project_id, workspace_id, workflow_id, WorkspaceType.USER)


@router.get("/reviews/{review_id}/workflows/list", response_model=list[WorkflowResponse])
async def list_review_workflows(
    project_id: str,
    review_id: str,
    workflows: WorkflowMgr,
    workflow_status: list[WorkflowStatus] | None = Query(None, alias="status"),
    revision_id: list[str] | None = Query(None),
    limit: int | None = Query(None, description="Maximum number of workflows; 0 returns none."),
) -> list[Workflow]:
    """List the pipelines of the merge request behind a review."""
    return await workflows.list_review_workflows(
        project_id,
        review_id,
        statuses=workflow_status,
        revision_ids=revision_id,
        limit=limit,
    )


@router.get("/reviews/{review_id}/workflows/{workflow_id}/get", response_model=WorkflowResponse)
async def get_review_workflow(project_id: str, review_id: str, workflow_id: str, workflows: WorkflowMgr) -> Workflow:
    return await workflows.get_review_workflow(project_id, review_id, workflow_id)
