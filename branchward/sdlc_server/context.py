"""Per-request identity of the acting user."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class UserContext:
    """Who is acting, and the credential forwarded to the platform.

    ``username`` names the user in error messages and in USER workspace
    branch names.  The token is never logged.
    """

    username: str
    token: str = field(repr=False)
