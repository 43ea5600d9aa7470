"""Logging configuration using loguru.

Every line names who the request acts for and on what::

    2024-05-01 10:00:00.000 | INFO     | alice PROD-1/w1 | branchward...:discard_backup_workspace:104 - Discarded ...

The acting user, project and workspace (or review) are bound per request by
``request_log_context`` and default to ``-`` outside a request.  Stdlib
logging from uvicorn and httpx is intercepted into the same sink.
"""

from __future__ import annotations

import logging
import sys
from contextlib import AbstractContextManager
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from fastapi import Request

UNBOUND = "-"

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[user]}</magenta> {extra[project]}/{extra[workspace]} | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


def request_log_fields(request: Request) -> dict[str, str]:
    """User, project and workspace of a routed request, ``-`` where unknown.

    The user is whatever the identity dependency stored on ``request.state``;
    review routes log their review id in the workspace slot.
    """
    params = request.path_params
    return {
        "user": getattr(request.state, "username", None) or UNBOUND,
        "project": params.get("project_id") or UNBOUND,
        "workspace": params.get("workspace_id") or params.get("review_id") or UNBOUND,
    }


def request_log_context(request: Request) -> AbstractContextManager[None]:
    """Bind the request's log fields to every record emitted inside the block."""
    return logger.contextualize(**request_log_fields(request))


class _InterceptHandler(logging.Handler):
    """Bridge stdlib logging records into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Report the stdlib caller, not this handler
        frame = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = "INFO") -> None:
    """Make loguru the sole sink, with request fields in every line.

    Call once at process startup, before uvicorn starts serving.
    """
    level = level.upper()

    logger.remove()
    logger.configure(extra={"user": UNBOUND, "project": UNBOUND, "workspace": UNBOUND})
    logger.add(sys.stderr, level=level, format=LOG_FORMAT)

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)

    # GitLab calls are logged by the branch and retry code; per-request access
    # lines and raw client traffic only add noise.
    for name in ("uvicorn.access", "httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info("Logging initialised (level={})", level)
