"""Service configuration loaded from BRANCHWARD_* environment variables."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from branchward.sdlc_server.models.enums import GitLabMode


class BranchwardSettings(BaseSettings):
    """SDLC server settings.

    All fields are read from environment variables with the ``BRANCHWARD_``
    prefix.  For example, ``BRANCHWARD_LOG_LEVEL=DEBUG`` maps to ``log_level``.

    Platform credentials are **not** managed here -- every request carries
    the acting user's own token, which is forwarded to GitLab as-is.
    """

    model_config = SettingsConfigDict(
        env_prefix="BRANCHWARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "INFO"

    # -- Platform --------------------------------------------------------------
    gitlab_prod_url: str | None = None
    """Base URL of the PROD GitLab instance, e.g. ``https://gitlab.example.com``."""

    gitlab_uat_url: str | None = None
    """Base URL of the UAT GitLab instance.  UAT projects are rejected when unset."""

    request_timeout: float = 30.0

    # -- Retries / verification --------------------------------------------------
    max_retries: int = 5
    retry_initial_wait: float = 1.0
    retry_wait_increment: float = 1.0
    """Added to the wait interval after every retry (linear backoff)."""

    verification_wait: float = 1.0
    """Seconds between polls when verifying a branch was created or deleted."""

    # -- Request identity --------------------------------------------------------
    trust_user_header: bool = False
    """Take the acting user from ``user_header``.  Enable only behind a proxy that sets it.

    When disabled the header is ignored and the user is always resolved from
    the platform with the caller's token.
    """

    user_header: str = "X-SDLC-User"

    # -- Server ----------------------------------------------------------------
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8000

    # -- Helpers ---------------------------------------------------------------

    def gitlab_urls(self) -> dict[GitLabMode, str]:
        """Return the configured platform URL for each usable mode."""
        urls = {
            GitLabMode.PROD: self.gitlab_prod_url,
            GitLabMode.UAT: self.gitlab_uat_url,
        }
        return {mode: url.rstrip("/") for mode, url in urls.items() if url}


@lru_cache(maxsize=1)
def get_settings() -> BranchwardSettings:
    """Return a cached settings instance.

    Reads from environment variables and ``.env`` on first call, then returns
    the same object.  Call ``get_settings.cache_clear()`` in tests to force a
    re-read after overriding env vars.
    """
    return BranchwardSettings()
