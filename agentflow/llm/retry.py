"""
Bounded retry for external calls.

Every AI, retrieval and utility call made by a node goes through
invoke_with_retry(): a per-attempt timeout, exponential backoff with jitter,
and a fixed attempt cap. Only transient failures are retried; the last error
is re-raised for the node's failure policy to handle.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from agentflow.config.settings import Settings, get_settings
from agentflow.errors import TransientInvocationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS = (
    TransientInvocationError,
    httpx.TransportError,
    asyncio.TimeoutError,
)


def build_retrying(settings: Settings) -> AsyncRetrying:
    return AsyncRetrying(
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_initial_wait,
            max=settings.retry_max_wait,
            jitter=settings.retry_jitter,
        ),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


async def invoke_with_retry(
    fn: Callable[..., Awaitable[T]],
    *args: Any,
    timeout: float | None = None,
    settings: Settings | None = None,
    **kwargs: Any,
) -> T:
    """
    Await `fn(*args, **kwargs)` with a per-attempt timeout and bounded retry.

    A timed-out attempt surfaces as TransientInvocationError so it is retried
    like any other transient failure.
    """
    settings = settings or get_settings()

    async for attempt in build_retrying(settings):
        with attempt:
            try:
                if timeout is None:
                    return await fn(*args, **kwargs)
                return await asyncio.wait_for(fn(*args, **kwargs), timeout=timeout)
            except asyncio.TimeoutError as e:
                raise TransientInvocationError(
                    f"{getattr(fn, '__qualname__', fn)} timed out after {timeout}s"
                ) from e

    raise TransientInvocationError("retry loop exited without a result")  # pragma: no cover
