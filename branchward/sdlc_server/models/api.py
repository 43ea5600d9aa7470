"""API response schemas.

The domain records already have the right shape for clients, so these are
thin aliases that keep the router signatures independent of the managers.
"""

from __future__ import annotations

from pydantic import BaseModel

from branchward.sdlc_server.models.domain import User, Workflow


class UserResponse(User):
    """Serialized user returned to clients."""


class WorkflowResponse(Workflow):
    """Serialized workflow returned to clients."""


class ErrorResponse(BaseModel):
    """Body of every error response."""

    detail: str
