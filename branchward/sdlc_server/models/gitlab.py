"""GitLab REST payloads.

Only the fields the server reads are modelled; everything else GitLab sends
is ignored.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class _GitLabModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Commit(_GitLabModel):
    id: str
    short_id: str | None = None
    title: str | None = None
    created_at: datetime | None = None


class Branch(_GitLabModel):
    name: str
    commit: Commit | None = None
    protected: bool = False
    web_url: str | None = None


class Pipeline(_GitLabModel):
    id: int | None = None
    project_id: int | None = None
    ref: str | None = None
    sha: str | None = None
    status: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    web_url: str | None = None


class PlatformUser(_GitLabModel):
    id: int | None = None
    username: str | None = None
    name: str | None = None
    state: str | None = None
    web_url: str | None = None
