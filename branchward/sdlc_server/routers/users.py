"""User directory endpoints (RPC-style, read-only)."""

from __future__ import annotations

from fastapi import APIRouter, Query

from branchward.sdlc_server.deps import UserMgr
from branchward.sdlc_server.models.api import UserResponse
from branchward.sdlc_server.models.domain import User

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/list", response_model=list[UserResponse])
async def list_users(users: UserMgr) -> list[User]:
    """List users of every configured GitLab instance, ordered by user id."""
    return await users.get_users()


@router.get("/search", response_model=list[UserResponse])
async def search_users(
    users: UserMgr,
    search: str = Query(..., description="Matched against name and username."),
) -> list[User]:
    return await users.find_users(search)


@router.get("/current", response_model=UserResponse)
async def current_user(users: UserMgr) -> User:
    """Describe the caller."""
    return await users.get_current_user_info()


@router.get("/{user_id}/get", response_model=UserResponse)
async def get_user(user_id: str, users: UserMgr) -> User:
    return await users.get_user_by_id(user_id)
