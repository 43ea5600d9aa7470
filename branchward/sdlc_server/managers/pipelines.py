"""Pipeline lookup helpers.

Pipelines are read by merge request or by ref.  Single-pipeline lookups
return ``None`` when the pipeline does not belong to the requested merge
request or ref; only platform failures raise.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from branchward.sdlc_server.gitlab.client import Pager

if TYPE_CHECKING:
    from branchward.sdlc_server.gitlab.platform import GitLabPlatform
    from branchward.sdlc_server.models.gitlab import Pipeline
    from branchward.sdlc_server.models.project import ProjectId


class PipelineIndexError(ValueError):
    """Pipelines could not be indexed under the requested policy."""


async def get_merge_request_pipelines(
    platform: GitLabPlatform,
    project_id: ProjectId,
    merge_request_iid: int,
) -> Pager[Pipeline]:
    api = platform.api(project_id.mode)
    return await platform.with_retries(lambda: api.get_merge_request_pipelines(project_id.gitlab_id, merge_request_iid))


async def get_merge_request_pipeline(
    platform: GitLabPlatform,
    project_id: ProjectId,
    merge_request_iid: int,
    pipeline_id: int,
) -> Pipeline | None:
    """Scan the merge request's pipelines for *pipeline_id*."""
    pager = await get_merge_request_pipelines(platform, project_id, merge_request_iid)
    async for pipeline in pager:
        if pipeline.id is not None and pipeline.id == pipeline_id:
            return pipeline
    return None


async def get_ref_pipelines(platform: GitLabPlatform, project_id: ProjectId, ref: str) -> Pager[Pipeline]:
    api = platform.api(project_id.mode)
    return await platform.with_retries(lambda: api.get_pipelines(project_id.gitlab_id, ref=ref))


async def get_ref_pipeline(
    platform: GitLabPlatform,
    project_id: ProjectId,
    ref: str,
    pipeline_id: int,
) -> Pipeline | None:
    """Fetch *pipeline_id* directly; ``None`` if it ran for a different ref."""
    api = platform.api(project_id.mode)
    pipeline = await platform.with_retries(lambda: api.get_pipeline(project_id.gitlab_id, pipeline_id))
    if pipeline is None or pipeline.ref != ref:
        return None
    return pipeline


def index_pipelines_by_id(
    pipelines: Iterable[Pipeline],
    *,
    ignore_null_ids: bool,
    ignore_id_conflicts: bool,
) -> dict[int, Pipeline]:
    """Map pipeline id to pipeline.

    With *ignore_id_conflicts* the first pipeline seen for an id wins;
    otherwise a repeated id raises ``PipelineIndexError``.  Pipelines without
    an id are dropped when *ignore_null_ids* is set, else they raise.
    """
    index: dict[int, Pipeline] = {}
    for pipeline in pipelines:
        pipeline_id = pipeline.id
        if pipeline_id is None:
            if ignore_null_ids:
                continue
            msg = f"Pipeline with null id: {pipeline!r}"
            raise PipelineIndexError(msg)
        if pipeline_id in index:
            if ignore_id_conflicts:
                continue
            msg = f"Conflict for id {pipeline_id}"
            raise PipelineIndexError(msg)
        index[pipeline_id] = pipeline
    return index
