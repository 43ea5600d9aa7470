"""Workflow status for workspaces and reviews.

A workflow is a GitLab pipeline.  Workspace workflows are the pipelines run
on the workspace branch; review workflows are the pipelines of the merge
request backing the review (the review id is the merge request iid).
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from typing import TYPE_CHECKING

from loguru import logger

from branchward.sdlc_server.errors import InvalidArgumentError, NotFoundError, validate_non_null
from branchward.sdlc_server.managers.pipelines import (
    get_merge_request_pipeline,
    get_merge_request_pipelines,
    get_ref_pipeline,
    get_ref_pipelines,
    index_pipelines_by_id,
)
from branchward.sdlc_server.models.domain import Workflow
from branchward.sdlc_server.models.enums import WorkflowStatus, WorkspaceAccessType, WorkspaceType

if TYPE_CHECKING:
    from branchward.sdlc_server.gitlab.client import Pager
    from branchward.sdlc_server.gitlab.platform import GitLabPlatform
    from branchward.sdlc_server.models.gitlab import Pipeline
    from branchward.sdlc_server.models.project import ProjectId

_PIPELINE_STATUSES = {
    "pending": WorkflowStatus.PENDING,
    "running": WorkflowStatus.IN_PROGRESS,
    "success": WorkflowStatus.SUCCEEDED,
    "failed": WorkflowStatus.FAILED,
    "canceled": WorkflowStatus.CANCELED,
    "skipped": WorkflowStatus.CANCELED,
}


def status_from_pipeline(status: str | None) -> WorkflowStatus | None:
    if status is None:
        return None
    return _PIPELINE_STATUSES.get(status, WorkflowStatus.UNKNOWN)


def to_workflow(project_id: ProjectId, pipeline: Pipeline) -> Workflow:
    return Workflow(
        workflow_id=str(pipeline.id),
        project_id=str(project_id),
        revision_id=pipeline.sha,
        status=status_from_pipeline(pipeline.status),
        created_at=pipeline.created_at,
        started_at=pipeline.started_at,
        finished_at=pipeline.finished_at,
        web_url=pipeline.web_url,
    )


def _parse_id(value: str | None, kind: str) -> int:
    value = validate_non_null(value, f"{kind} may not be null")
    try:
        return int(value)
    except ValueError:
        msg = f"Invalid {kind}: {value}"
        raise InvalidArgumentError(msg) from None


class WorkflowManager:
    def __init__(self, platform: GitLabPlatform) -> None:
        self._platform = platform

    # -- Workspaces ------------------------------------------------------------

    async def list_workspace_workflows(
        self,
        project_id: str | None,
        workspace_id: str | None,
        workspace_type: WorkspaceType = WorkspaceType.USER,
        *,
        statuses: Iterable[WorkflowStatus] | None = None,
        revision_ids: Iterable[str] | None = None,
        limit: int | None = None,
    ) -> list[Workflow]:
        project_id = validate_non_null(project_id, "projectId may not be null")
        workspace_id = validate_non_null(workspace_id, "workspaceId may not be null")
        platform = self._platform
        gitlab_project_id = platform.parse_project_id(project_id)
        ref = platform.workspace_branch_name(workspace_id, workspace_type, WorkspaceAccessType.WORKSPACE)
        return await self._list_workflows(
            gitlab_project_id,
            f"{workspace_type.label} workspace {workspace_id} in project {project_id}",
            lambda: get_ref_pipelines(platform, gitlab_project_id, ref),
            statuses=statuses,
            revision_ids=revision_ids,
            limit=limit,
        )

    async def get_workspace_workflow(
        self,
        project_id: str | None,
        workspace_id: str | None,
        workflow_id: str | None,
        workspace_type: WorkspaceType = WorkspaceType.USER,
    ) -> Workflow:
        project_id = validate_non_null(project_id, "projectId may not be null")
        workspace_id = validate_non_null(workspace_id, "workspaceId may not be null")
        pipeline_id = _parse_id(workflow_id, "workflowId")
        platform = self._platform
        gitlab_project_id = platform.parse_project_id(project_id)
        ref = platform.workspace_branch_name(workspace_id, workspace_type, WorkspaceAccessType.WORKSPACE)
        return await self._get_workflow(
            gitlab_project_id,
            f"{workspace_type.label} workspace {workspace_id} in project {project_id}",
            pipeline_id,
            lambda: get_ref_pipeline(platform, gitlab_project_id, ref, pipeline_id),
        )

    # -- Reviews ---------------------------------------------------------------

    async def list_review_workflows(
        self,
        project_id: str | None,
        review_id: str | None,
        *,
        statuses: Iterable[WorkflowStatus] | None = None,
        revision_ids: Iterable[str] | None = None,
        limit: int | None = None,
    ) -> list[Workflow]:
        project_id = validate_non_null(project_id, "projectId may not be null")
        merge_request_iid = _parse_id(review_id, "reviewId")
        platform = self._platform
        gitlab_project_id = platform.parse_project_id(project_id)
        return await self._list_workflows(
            gitlab_project_id,
            f"review {review_id} of project {project_id}",
            lambda: get_merge_request_pipelines(platform, gitlab_project_id, merge_request_iid),
            statuses=statuses,
            revision_ids=revision_ids,
            limit=limit,
        )

    async def get_review_workflow(
        self,
        project_id: str | None,
        review_id: str | None,
        workflow_id: str | None,
    ) -> Workflow:
        project_id = validate_non_null(project_id, "projectId may not be null")
        merge_request_iid = _parse_id(review_id, "reviewId")
        pipeline_id = _parse_id(workflow_id, "workflowId")
        platform = self._platform
        gitlab_project_id = platform.parse_project_id(project_id)
        return await self._get_workflow(
            gitlab_project_id,
            f"review {review_id} of project {project_id}",
            pipeline_id,
            lambda: get_merge_request_pipeline(platform, gitlab_project_id, merge_request_iid, pipeline_id),
        )

    # -- Internals -------------------------------------------------------------

    async def _get_workflow(
        self,
        project_id: ProjectId,
        info: str,
        pipeline_id: int,
        fetch: Callable[[], Awaitable[Pipeline | None]],
    ) -> Workflow:
        platform = self._platform
        try:
            pipeline = await fetch()
        except Exception as exc:
            raise platform.build_exception(
                exc,
                forbidden=lambda: (
                    f"User {platform.current_user} is not allowed to access workflow {pipeline_id} in {info}"
                ),
                not_found=lambda: f"Unknown workflow in {info}: {pipeline_id}",
                default=lambda: f"Error getting workflow {pipeline_id} in {info}",
            ) from exc
        if pipeline is None:
            msg = f"Unknown workflow in {info}: {pipeline_id}"
            raise NotFoundError(msg)
        return to_workflow(project_id, pipeline)

    async def _list_workflows(
        self,
        project_id: ProjectId,
        info: str,
        list_pipelines: Callable[[], Awaitable[Pager[Pipeline]]],
        *,
        statuses: Iterable[WorkflowStatus] | None,
        revision_ids: Iterable[str] | None,
        limit: int | None,
    ) -> list[Workflow]:
        """List workflows newest first, filtered then truncated to *limit* distinct ids.

        An empty *statuses* or *revision_ids* collection means no filter.
        """
        if limit is not None:
            if limit == 0:
                return []
            if limit < 0:
                msg = f"Invalid limit: {limit}"
                raise InvalidArgumentError(msg)
        status_set = set(statuses or ())
        revision_set = set(revision_ids or ())
        platform = self._platform

        try:
            pager = await list_pipelines()
            selected: list[Pipeline] = []
            selected_ids: set[int] = set()
            async for pipeline in pager:
                if revision_set and pipeline.sha not in revision_set:
                    continue
                if status_set and status_from_pipeline(pipeline.status) not in status_set:
                    continue
                selected.append(pipeline)
                if pipeline.id is not None:
                    selected_ids.add(pipeline.id)
                if limit is not None and len(selected_ids) >= limit:
                    break
            pipelines = index_pipelines_by_id(selected, ignore_null_ids=True, ignore_id_conflicts=True)
            return [to_workflow(project_id, await self._with_details(project_id, p)) for p in pipelines.values()]
        except Exception as exc:
            raise platform.build_exception(
                exc,
                forbidden=lambda: f"User {platform.current_user} is not allowed to access workflows for {info}",
                not_found=lambda: f"Unknown {info}",
                default=lambda: f"Error getting workflows for {info}",
            ) from exc

    async def _with_details(self, project_id: ProjectId, pipeline: Pipeline) -> Pipeline:
        """Listings may omit timestamps; fetch the full pipeline when they do."""
        if pipeline.created_at is not None or pipeline.id is None:
            return pipeline
        platform = self._platform
        api = platform.api(project_id.mode)
        pipeline_id = pipeline.id
        try:
            return await platform.with_retries(lambda: api.get_pipeline(project_id.gitlab_id, pipeline_id))
        except Exception as exc:
            logger.warning("Could not fetch details of pipeline {} in project {}: {}", pipeline_id, project_id, exc)
            return pipeline
