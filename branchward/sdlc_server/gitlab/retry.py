"""Retry and polling primitives for platform calls.

``call_with_retries`` absorbs transient failures (gateway errors, timeouts,
dropped connections) with a linearly growing wait.  ``call_until`` polls a
read until its result satisfies a predicate, which is how mutations are
verified: GitLab may acknowledge a branch change before reads reflect it.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

import httpx
from loguru import logger

from branchward.sdlc_server.gitlab.client import GitLabApiError

T = TypeVar("T")

RETRYABLE_STATUSES = frozenset({408, 502, 503, 504})


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, GitLabApiError):
        return exc.status_code in RETRYABLE_STATUSES
    return isinstance(exc, httpx.TransportError)


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 5
    initial_wait: float = 1.0
    wait_increment: float = 1.0


async def call_with_retries(
    call: Callable[[], Awaitable[T]],
    max_retries: int = 5,
    initial_wait: float = 1.0,
    wait_increment: float = 1.0,
) -> T:
    """Await ``call()``, retrying retryable failures up to *max_retries* times.

    The wait before retry *n* is ``initial_wait + (n - 1) * wait_increment``
    seconds.  Non-retryable failures propagate immediately; when the budget
    is exhausted the last failure propagates.
    """
    wait = initial_wait
    attempt = 1
    while True:
        try:
            return await call()
        except Exception as exc:
            if not is_retryable(exc):
                raise
            logger.error("Retryable exception encountered on attempt #{}; {}", attempt, _describe(exc))
            if attempt > max_retries:
                raise
        if wait > 0:
            logger.debug("Waiting {}s for attempt #{}", wait, attempt + 1)
            await asyncio.sleep(wait)
        wait += wait_increment
        attempt += 1


def _describe(exc: BaseException) -> str:
    if isinstance(exc, GitLabApiError):
        return f"HTTP status: {exc.status_code}; message: {exc}"
    return f"{type(exc).__name__}: {exc}"


@dataclass(frozen=True)
class CallUntilResult(Generic[T]):
    result: T | None
    succeeded: bool
    attempts: int


async def call_until(
    call: Callable[[], Awaitable[T]],
    predicate: Callable[[T], bool],
    max_tries: int,
    wait: float,
) -> CallUntilResult[T]:
    """Poll ``call()`` until *predicate* holds, at most *max_tries* times.

    Sleeps *wait* seconds between tries.  Exceptions from *call* propagate.
    """
    result: T | None = None
    for attempt in range(1, max_tries + 1):
        result = await call()
        if predicate(result):
            return CallUntilResult(result=result, succeeded=True, attempts=attempt)
        if attempt < max_tries and wait > 0:
            await asyncio.sleep(wait)
    return CallUntilResult(result=result, succeeded=False, attempts=max_tries)
