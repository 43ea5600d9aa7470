from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.routing import APIRouter
from loguru import logger

from branchward.sdlc_server.errors import SDLCServerError
from branchward.sdlc_server.gitlab.client import create_http_client
from branchward.sdlc_server.log import request_log_fields, setup_logging
from branchward.sdlc_server.settings import get_settings


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    # -- Startup ---------------------------------------------------------------
    settings = get_settings()
    setup_logging(settings.log_level)

    logger.info("SDLC server starting (host={}, port={})", settings.host, settings.port)

    # -- GitLab clients --------------------------------------------------------
    # One pooled client per instance, shared by every request.  Credentials
    # are per request, so the clients carry none.
    _app.state.gitlab_clients = {}
    for mode, url in settings.gitlab_urls().items():
        _app.state.gitlab_clients[mode] = create_http_client(url, settings.request_timeout)
        logger.info("GitLab {}: {}", mode, url)
    if not _app.state.gitlab_clients:
        logger.warning("No BRANCHWARD_GITLAB_*_URL set -- platform endpoints disabled")

    yield

    # -- Shutdown --------------------------------------------------------------
    logger.info("SDLC server shutting down")
    for mode, client in _app.state.gitlab_clients.items():
        await client.aclose()
        logger.info("GitLab {}: closed", mode)


app = FastAPI(title="Branchward SDLC Server", lifespan=lifespan)


@app.exception_handler(SDLCServerError)
async def sdlc_error_handler(request: Request, exc: SDLCServerError) -> JSONResponse:
    if exc.status_code >= 500:
        # The request's log context is already unbound here
        logger.bind(**request_log_fields(request)).opt(exception=exc).error("Request failed: {}", exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# ---------------------------------------------------------------------------
# API router -- all backend endpoints live under /api
# ---------------------------------------------------------------------------
api = APIRouter(prefix="/api")


@api.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


from branchward.sdlc_server.routers.backup import router as backup_router  # noqa: E402
from branchward.sdlc_server.routers.users import router as users_router  # noqa: E402
from branchward.sdlc_server.routers.workflows import router as workflows_router  # noqa: E402

api.include_router(backup_router)
api.include_router(users_router)
api.include_router(workflows_router)

app.include_router(api)
