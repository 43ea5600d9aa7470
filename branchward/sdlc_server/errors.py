"""Domain errors and the platform-exception classifier.

Every failure a manager raises is an ``SDLCServerError`` subclass carrying
the HTTP status it maps to.  The app installs a single handler that renders
them, so managers never deal in ``HTTPException``.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeVar

from fastapi import status
from loguru import logger

from branchward.sdlc_server.gitlab.client import GitLabApiError

T = TypeVar("T")

MessageFn = Callable[[], str | None]


class SDLCServerError(Exception):
    """Base class for all errors surfaced to SDLC API callers."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.message = message
        if cause is not None:
            self.__cause__ = cause


class InvalidArgumentError(SDLCServerError, ValueError):
    """A required identifier is missing or malformed.  No remote call was made."""

    status_code = status.HTTP_400_BAD_REQUEST


class ForbiddenError(SDLCServerError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(SDLCServerError, LookupError):
    status_code = status.HTTP_404_NOT_FOUND


class MethodNotAllowedError(SDLCServerError):
    """The operation is refused in the current remote state.  Nothing was mutated."""

    status_code = status.HTTP_405_METHOD_NOT_ALLOWED


class OperationFailedError(SDLCServerError):
    """A mutation was not observed within its verification budget.

    Remote state may be partially changed; callers should inspect it rather
    than retry blindly.
    """


class UnknownError(SDLCServerError):
    """Any other platform failure, wrapped with operation context."""


def validate_non_null(value: T | None, message: str) -> T:
    if value is None:
        raise InvalidArgumentError(message)
    return value


def build_exception(
    exc: BaseException,
    forbidden: MessageFn | None = None,
    not_found: MessageFn | None = None,
    default: MessageFn | None = None,
) -> SDLCServerError:
    """Classify *exc* into a domain error.

    Each message function describes the failure for one case; ``None`` means
    the case cannot occur for the operation and ``default`` is used instead.
    Errors that are already domain errors are returned unchanged.
    """
    if isinstance(exc, SDLCServerError):
        return exc

    if isinstance(exc, GitLabApiError):
        if exc.status_code == status.HTTP_401_UNAUTHORIZED:
            return ForbiddenError(
                _with_cause_message("Platform credentials were rejected", exc),
                cause=exc,
            )
        if exc.status_code == status.HTTP_403_FORBIDDEN:
            message = _message(forbidden) or _message(default)
            return ForbiddenError(_with_cause_message(message, exc) if message else str(exc), cause=exc)
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            message = _message(not_found) or _with_cause_message(_message(default), exc)
            return NotFoundError(message or str(exc), cause=exc)

    message = _message(default)
    if message is None:
        message = "An unexpected exception occurred"
    return UnknownError(_with_cause_message(message, exc), cause=exc)


def _message(fn: MessageFn | None) -> str | None:
    if fn is None:
        return None
    try:
        return fn()
    except Exception:
        logger.exception("Error building exception message")
        return None


def _with_cause_message(message: str | None, exc: BaseException) -> str | None:
    if message is None:
        return None
    detail = str(exc)
    return f"{message}: {detail}" if detail else message
