"""
Classified retry policy with exponential backoff and jitter.

Every failure is classified into an `ErrorKind`. Each kind has its own retry
budget, and a global budget caps the total number of failed attempts:

    SOCKET 5 | NETWORK 3 | TIMEOUT 3 | RATE_LIMIT 5
    SERVER 2 | RPC_SERVER 2 | CLIENT 0 | UNKNOWN 1     (global: 5)

The delay before the n-th retry of a kind is `base * 2**(n-1)` capped at
`max_delay`, spread by +/- `jitter` (a fraction of the delay).

Example
-------
from ethstorage_sdk.utils.retry import aretry_call

async def fetch():
    ...

result = await aretry_call(fetch)

Decorator form
--------------
@aretryable()
async def do_it(...):
    ...

Notes
-----
- CLIENT errors are never retried; they are raised wrapped in `RetryError`.
- Exhausting a budget raises `RetryError` chained to the last failure and
  reporting its classified kind.
- `on_retry` receives (attempt_index, exception, kind, sleep_seconds).
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, TypeVar

from ..errors import ErrorKind, RetryError, classify_error

__all__ = [
    "DEFAULT_KIND_BUDGETS",
    "RetryPolicy",
    "DEFAULT_POLICY",
    "backoff_delay",
    "aretry_call",
    "aretryable",
]

T = TypeVar("T")

log = logging.getLogger("ethstorage_sdk.rpc")

DEFAULT_KIND_BUDGETS: Mapping[ErrorKind, int] = {
    ErrorKind.SOCKET: 5,
    ErrorKind.NETWORK: 3,
    ErrorKind.TIMEOUT: 3,
    ErrorKind.RATE_LIMIT: 5,
    ErrorKind.SERVER: 2,
    ErrorKind.RPC_SERVER: 2,
    ErrorKind.CLIENT: 0,
    ErrorKind.UNKNOWN: 1,
}


@dataclass(frozen=True)
class RetryPolicy:
    """Budgets and backoff shape. Delays are in seconds."""

    total_retries: int = 5
    base: float = 0.1
    max_delay: float = 5.0
    jitter: float = 0.2
    budgets: Mapping[ErrorKind, int] = field(
        default_factory=lambda: dict(DEFAULT_KIND_BUDGETS)
    )

    def budget(self, kind: ErrorKind) -> int:
        return int(self.budgets.get(kind, 0))

    def retryable(self, kind: ErrorKind) -> bool:
        return kind is not ErrorKind.CLIENT


DEFAULT_POLICY = RetryPolicy()


def backoff_delay(
    attempt: int,
    *,
    base: float,
    max_delay: float,
    jitter: float = 0.2,
) -> float:
    """
    Compute the delay (seconds) before retry number `attempt` (1-based).

    - base: delay of the first retry
    - max_delay: cap applied before jitter
    - jitter: symmetric spread as a fraction of the delay (0.2 -> +/-20%)
    """
    if attempt < 1:
        attempt = 1
    delay = min(base * (2 ** (attempt - 1)), max_delay)
    spread = delay * jitter * (random.random() * 2.0 - 1.0)
    return max(0.0, delay + spread)


async def aretry_call(
    fn: Callable[..., Awaitable[T]],
    *args: Any,
    policy: RetryPolicy = DEFAULT_POLICY,
    on_retry: Optional[Callable[[int, BaseException, ErrorKind, float], None]] = None,
    **kwargs: Any,
) -> T:
    """
    Await `fn(*args, **kwargs)` under the classified retry policy.

    Cancellation is never retried.
    """
    per_kind: Dict[ErrorKind, int] = {k: 0 for k in ErrorKind}
    failures = 0

    while True:
        try:
            return await fn(*args, **kwargs)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            failures += 1
            kind = classify_error(exc)

            if not policy.retryable(kind):
                raise RetryError(exc, attempts=failures, kind=kind) from exc

            per_kind[kind] += 1
            if per_kind[kind] > policy.budget(kind) or failures > policy.total_retries:
                raise RetryError(exc, attempts=failures, kind=kind) from exc

            sleep_s = backoff_delay(
                per_kind[kind],
                base=policy.base,
                max_delay=policy.max_delay,
                jitter=policy.jitter,
            )
            log.warning(
                "retrying %s after %s error (attempt %d, sleep %.3fs): %s",
                getattr(fn, "__name__", "call"),
                kind.value,
                failures,
                sleep_s,
                exc,
            )
            if on_retry is not None:
                on_retry(failures, exc, kind, sleep_s)

            await asyncio.sleep(sleep_s)


def aretryable(
    *,
    policy: RetryPolicy = DEFAULT_POLICY,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Decorator for async functions.

    Example:
        @aretryable()
        async def fetch(): ...
    """

    def _decorator(fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        async def _wrapped(*args: Any, **kwargs: Any) -> T:
            return await aretry_call(fn, *args, policy=policy, **kwargs)

        _wrapped.__name__ = getattr(fn, "__name__", "_wrapped")  # type: ignore[attr-defined]
        _wrapped.__doc__ = fn.__doc__
        return _wrapped

    return _decorator
