"""Fixed-delay async retry for outbound text-generation calls."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Sequence, TypeVar

import structlog

from .errors import MatchingError

T = TypeVar("T")

DEFAULT_DELAYS: tuple[float, ...] = (1.0, 2.0)

_TRANSIENT_ERRNO_NAMES = frozenset({"ETIMEDOUT", "ECONNRESET", "ECONNREFUSED", "EPIPE", "ENOTFOUND"})

_logger = structlog.get_logger(__name__)


def _status_from_error(error: BaseException) -> int | None:
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def is_retryable(error: BaseException) -> bool:
    """Return True for rate limits, server errors and transient network failures."""
    if isinstance(error, MatchingError):
        return error.retryable
    if isinstance(error, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return True
    status = _status_from_error(error)
    if status is not None and (status == 429 or status >= 500):
        return True
    code = getattr(error, "code", None)
    return isinstance(code, str) and code in _TRANSIENT_ERRNO_NAMES


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    retries: int | None = None,
    delays: Sequence[float] = DEFAULT_DELAYS,
    should_retry: Callable[[BaseException], bool] = is_retryable,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await ``fn`` and retry retryable failures after each delay in ``delays``."""
    max_retries = len(delays) if retries is None else retries
    attempt = 0
    while True:
        try:
            return await fn()
        except Exception as exc:
            if attempt >= max_retries or not should_retry(exc):
                raise
            delay = delays[min(attempt, len(delays) - 1)] if delays else 0.0
            _logger.warning("retry.scheduled", attempt=attempt + 1, delay=delay, error=str(exc))
            await sleep(delay)
            attempt += 1


__all__ = ["DEFAULT_DELAYS", "is_retryable", "with_retry"]
