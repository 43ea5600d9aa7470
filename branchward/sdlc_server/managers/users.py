"""User directory lookups across every configured GitLab instance."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from branchward.sdlc_server.errors import NotFoundError, validate_non_null
from branchward.sdlc_server.models.domain import User

if TYPE_CHECKING:
    from branchward.sdlc_server.gitlab.client import GitLabApi, Pager
    from branchward.sdlc_server.gitlab.platform import GitLabPlatform
    from branchward.sdlc_server.models.gitlab import PlatformUser


def _to_user(platform_user: PlatformUser) -> User:
    return User(user_id=platform_user.username, name=platform_user.name)


def _sort_key(user: User) -> tuple[bool, str]:
    # Users without an id sort last
    return (user.user_id is None, user.user_id or "")


class UserManager:
    def __init__(self, platform: GitLabPlatform) -> None:
        self._platform = platform

    async def get_users(self) -> list[User]:
        platform = self._platform
        try:
            return await self._collect(lambda api: api.get_users())
        except Exception as exc:
            raise platform.build_exception(
                exc,
                forbidden=lambda: f"User {platform.current_user} is not allowed to get users",
                default=lambda: "Error getting users",
            ) from exc

    async def find_users(self, search: str | None) -> list[User]:
        search = validate_non_null(search, "search cannot be null")
        platform = self._platform
        try:
            return await self._collect(lambda api: api.find_users(search))
        except Exception as exc:
            raise platform.build_exception(
                exc,
                forbidden=lambda: f"User {platform.current_user} is not allowed to search users: {search}",
                default=lambda: f"Error finding users with search string: {search}",
            ) from exc

    async def get_user_by_id(self, user_id: str | None) -> User:
        """Return the first user named *user_id* on any configured instance."""
        user_id = validate_non_null(user_id, "userId cannot be null")
        platform = self._platform
        error: Exception | None = None
        for mode in platform.valid_modes:
            api = platform.api(mode)
            try:
                platform_user = await platform.with_retries(lambda: api.get_user(user_id))
            except Exception as exc:
                error = exc
                continue
            if platform_user is not None:
                return _to_user(platform_user)

        if error is not None:
            raise platform.build_exception(
                error,
                forbidden=lambda: f"User {platform.current_user} is not allowed to get user {user_id}",
                not_found=lambda: f"Unknown user: {user_id}",
                default=lambda: f"Error getting user {user_id}",
            ) from error
        msg = f"Unknown user: {user_id}"
        raise NotFoundError(msg)

    async def get_current_user_info(self) -> User:
        """Describe the acting user as seen by the first configured instance."""
        platform = self._platform
        modes = platform.valid_modes
        if not modes:
            msg = "Error getting current user information"
            raise NotFoundError(msg)
        api = platform.api(modes[0])
        try:
            platform_user = await platform.with_retries(api.get_current_user)
        except Exception as exc:
            raise platform.build_exception(
                exc,
                forbidden=lambda: f"User {platform.current_user} is not allowed to get current user information",
                default=lambda: "Error getting current user information",
            ) from exc
        return _to_user(platform_user)

    async def _collect(self, list_users: Callable[[GitLabApi], Awaitable[Pager[PlatformUser]]]) -> list[User]:
        """Merge users from every instance, keeping the first seen per id."""
        platform = self._platform
        users_by_id: dict[str | None, User] = {}
        for mode in platform.valid_modes:
            api = platform.api(mode)
            pager: Pager[PlatformUser] = await platform.with_retries(lambda: list_users(api))
            async for platform_user in pager:
                user = _to_user(platform_user)
                users_by_id.setdefault(user.user_id, user)
        return sorted(users_by_id.values(), key=_sort_key)
