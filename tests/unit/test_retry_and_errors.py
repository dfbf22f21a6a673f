import asyncio
import errno
import socket

import pytest

from ethstorage_sdk.errors import ErrorKind, RetryError, RpcError, classify_error
from ethstorage_sdk.upload.ordering import OrderedBuffer
from ethstorage_sdk.utils.retry import RetryPolicy, aretry_call, aretryable, backoff_delay

NO_WAIT = RetryPolicy(base=0.0, jitter=0.0)


# ------------------------------ classification -------------------------------


@pytest.mark.parametrize(
    "exc, kind",
    [
        (RpcError("request timed out"), ErrorKind.TIMEOUT),
        (RpcError("busy", http_status=429), ErrorKind.RATE_LIMIT),
        (RpcError("exceeded rate limit"), ErrorKind.RATE_LIMIT),
        (RpcError("header not found", code=-32000), ErrorKind.RPC_SERVER),
        (RpcError("bad gateway", http_status=502), ErrorKind.SERVER),
        (RpcError("forbidden", http_status=403), ErrorKind.CLIENT),
        (RpcError("execution reverted", code=3), ErrorKind.UNKNOWN),
        (RpcError("whatever", kind=ErrorKind.SOCKET), ErrorKind.SOCKET),
        (asyncio.TimeoutError(), ErrorKind.TIMEOUT),
        (socket.gaierror("name resolution"), ErrorKind.NETWORK),
        (OSError(errno.ECONNRESET, "reset"), ErrorKind.SOCKET),
        (OSError(errno.EHOSTUNREACH, "unreachable"), ErrorKind.NETWORK),
        (ConnectionError("closed"), ErrorKind.SOCKET),
        (ValueError("odd"), ErrorKind.UNKNOWN),
    ],
)
def test_classify_error(exc, kind):
    assert classify_error(exc) is kind


def test_backoff_delay_doubles_and_caps():
    assert backoff_delay(1, base=0.5, max_delay=10, jitter=0) == 0.5
    assert backoff_delay(3, base=0.5, max_delay=10, jitter=0) == 2.0
    assert backoff_delay(10, base=0.5, max_delay=3, jitter=0) == 3
    d = backoff_delay(2, base=1.0, max_delay=10, jitter=0.2)
    assert 1.6 <= d <= 2.4


# ---------------------------------- budgets ----------------------------------


class Flaky:
    def __init__(self, *failures: BaseException, result="ok"):
        self.failures = list(failures)
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.result


@pytest.mark.asyncio
async def test_retries_transient_then_succeeds():
    fn = Flaky(RpcError("timed out"), RpcError("503", http_status=503))
    seen = []
    result = await aretry_call(fn, policy=NO_WAIT, on_retry=lambda n, e, k, s: seen.append((n, k)))
    assert result == "ok"
    assert fn.calls == 3
    assert seen == [(1, ErrorKind.TIMEOUT), (2, ErrorKind.SERVER)]


@pytest.mark.asyncio
async def test_client_errors_are_not_retried():
    fn = Flaky(RpcError("bad request", http_status=400))
    with pytest.raises(RetryError) as ei:
        await aretry_call(fn, policy=NO_WAIT)
    assert fn.calls == 1
    assert ei.value.kind is ErrorKind.CLIENT
    assert ei.value.attempts == 1
    assert isinstance(ei.value.__cause__, RpcError)


@pytest.mark.asyncio
async def test_per_kind_budget():
    fn = Flaky(*[RpcError("bad gateway", http_status=502) for _ in range(10)])
    with pytest.raises(RetryError) as ei:
        await aretry_call(fn, policy=NO_WAIT)
    # SERVER budget is 2 retries
    assert fn.calls == 3
    assert ei.value.kind is ErrorKind.SERVER


@pytest.mark.asyncio
async def test_global_budget():
    policy = RetryPolicy(total_retries=2, base=0.0, jitter=0.0)
    fn = Flaky(*[ConnectionResetError("reset") for _ in range(10)])
    with pytest.raises(RetryError) as ei:
        await aretry_call(fn, policy=policy)
    assert fn.calls == 3
    assert ei.value.attempts == 3
    assert ei.value.kind is ErrorKind.SOCKET


@pytest.mark.asyncio
async def test_decorator_form():
    fn = Flaky(RpcError("timed out"), result=42)

    @aretryable(policy=NO_WAIT)
    async def wrapped():
        return await fn()

    assert await wrapped() == 42
    assert wrapped.__name__ == "wrapped"


# --------------------------------- ordering ----------------------------------


def test_ordered_buffer_releases_contiguous_runs():
    buf = OrderedBuffer()
    assert buf.put(2, "c") == []
    assert buf.put(0, "a") == ["a"]
    assert buf.pending == 1
    assert buf.put(1, "b") == ["b", "c"]
    assert buf.next_index == 3
    assert buf.pending == 0


def test_ordered_buffer_rejects_duplicates():
    buf = OrderedBuffer(start=5)
    buf.put(7, "x")
    with pytest.raises(ValueError):
        buf.put(7, "y")
    with pytest.raises(ValueError):
        buf.put(4, "old")
