import click


@click.group()
def main() -> None:
    """Branchward - workspace backup, workflow and user directory facade over GitLab."""


@main.command()
@click.option("--host", default=None, help="Bind host (default: from BRANCHWARD_HOST or 0.0.0.0).")
@click.option("--port", default=None, type=int, help="Bind port (default: from BRANCHWARD_PORT or 8000).")
@click.option("--log-level", default=None, help="Log level (default: from BRANCHWARD_LOG_LEVEL or INFO).")
@click.option("--reload", is_flag=True, default=False, help="Enable auto-reload for development.")
def serve(host: str | None, port: int | None, log_level: str | None, reload: bool) -> None:
    """Start the SDLC server."""
    import os

    import uvicorn

    from branchward.sdlc_server.settings import BranchwardSettings

    # The app reads its settings in the lifespan, possibly in a reload worker
    if log_level:
        os.environ["BRANCHWARD_LOG_LEVEL"] = log_level
    settings = BranchwardSettings()

    uvicorn.run(
        "branchward.sdlc_server.app:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level="warning",  # uvicorn's own logging is intercepted by loguru
    )


@main.command()
@click.option(
    "--token",
    envvar="GITLAB_TOKEN",
    default=None,
    help="GitLab token to identify with on each instance (default: from GITLAB_TOKEN).",
)
def check(token: str | None) -> None:
    """Show the configured GitLab instances and, given a token, who it identifies."""
    import asyncio

    from branchward.sdlc_server.models.enums import GitLabMode
    from branchward.sdlc_server.settings import BranchwardSettings

    settings = BranchwardSettings()
    urls = settings.gitlab_urls()

    for mode in GitLabMode:
        click.echo(f"{mode}: {urls.get(mode, 'not configured')}")
    if not urls:
        raise click.ClickException("No GitLab instance configured (set BRANCHWARD_GITLAB_PROD_URL).")
    if token is None:
        return

    failures = asyncio.run(_identify(settings, urls, token))
    if failures:
        raise click.ClickException(f"Could not identify the token on: {', '.join(failures)}")


async def _identify(settings, urls, token: str) -> list[str]:
    """Resolve the token's user on every instance; return the modes that failed."""
    from branchward.sdlc_server.gitlab.client import GitLabApi, create_http_client
    from branchward.sdlc_server.gitlab.retry import call_with_retries

    failures = []
    for mode, url in urls.items():
        async with create_http_client(url, settings.request_timeout) as http:
            api = GitLabApi(http, token)
            try:
                user = await call_with_retries(
                    api.get_current_user,
                    max_retries=settings.max_retries,
                    initial_wait=settings.retry_initial_wait,
                    wait_increment=settings.retry_wait_increment,
                )
            except Exception as exc:
                click.echo(f"{mode}: error: {exc}", err=True)
                failures.append(str(mode))
                continue
        click.echo(f"{mode}: authenticated as {user.username}")
    return failures


if __name__ == "__main__":
    main()
