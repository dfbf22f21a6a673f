"""
Typed error classes for the EthStorage SDK.

Every error raised by the SDK derives from `EthStorageError` so callers can
catch the whole family, or a specific failure mode:

- ValidationError  : bad key / data / request shape, raised at the call boundary
- CapabilityError  : the deployed contract cannot serve the request
- CodecError       : blob encode/decode violations
- RpcError         : JSON-RPC / transport failure, classified into an ErrorKind
- RetryError       : a retry budget was exhausted (wraps the last failure)
- TxError          : the transaction was mined but reported failure
- ConfigError      : invalid SDK configuration

`RpcError.kind` is computed once at construction from the HTTP status, the
JSON-RPC code and the message; the retry policy only ever reads that field.
"""

from __future__ import annotations

import asyncio
import errno
import socket
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

__all__ = [
    "EthStorageError",
    "ValidationError",
    "CapabilityError",
    "CodecError",
    "ConfigError",
    "ErrorKind",
    "RpcError",
    "RetryError",
    "TxError",
    "classify_error",
]


class EthStorageError(Exception):
    """Base class for all SDK errors."""


class ValidationError(EthStorageError, ValueError):
    """Missing, oversized or otherwise invalid key / data / request."""


class CapabilityError(EthStorageError):
    """Requested mode unsupported by the contract, or contract version mismatch."""


class CodecError(EthStorageError, ValueError):
    """Oversize input for one blob, or an illegal bit pattern on decode."""


class ConfigError(EthStorageError, ValueError):
    """Invalid SDK configuration."""


class ErrorKind(str, Enum):
    SOCKET = "SOCKET"
    NETWORK = "NETWORK"
    TIMEOUT = "TIMEOUT"
    RATE_LIMIT = "RATE_LIMIT"
    SERVER = "SERVER"
    RPC_SERVER = "RPC_SERVER"
    CLIENT = "CLIENT"
    UNKNOWN = "UNKNOWN"


# JSON-RPC codes treated as transient node-side failures.
_RPC_SERVER_CODES = frozenset({-32000, -32603, -32601, -32600})

_SOCKET_ERRNOS = frozenset(
    {errno.ECONNRESET, errno.ECONNREFUSED, errno.EPIPE, errno.ECONNABORTED}
)
_NETWORK_ERRNOS = frozenset(
    {errno.ETIMEDOUT, errno.EHOSTUNREACH, errno.ENETUNREACH}
)


def _kind_from_fields(
    code: Optional[int], message: str, http_status: Optional[int]
) -> ErrorKind:
    msg = (message or "").lower()
    if "timeout" in msg or "timed out" in msg:
        return ErrorKind.TIMEOUT
    if http_status == 429 or code == 429 or "rate limit" in msg:
        return ErrorKind.RATE_LIMIT
    if code is not None and code in _RPC_SERVER_CODES:
        return ErrorKind.RPC_SERVER
    if http_status is not None:
        if http_status >= 500:
            return ErrorKind.SERVER
        if http_status >= 400:
            return ErrorKind.CLIENT
    return ErrorKind.UNKNOWN


@dataclass(eq=False)
class RpcError(EthStorageError):
    """
    Raised when a JSON-RPC call fails.

    `kind` may be passed explicitly (transport failures know their class up
    front); otherwise it is derived from `code`, `message` and `http_status`.
    """

    message: str
    method: Optional[str] = None
    code: Optional[int] = None
    data: Optional[Any] = None
    http_status: Optional[int] = None
    kind: Optional[ErrorKind] = None

    def __post_init__(self) -> None:
        if self.kind is None:
            self.kind = _kind_from_fields(self.code, self.message, self.http_status)

    def __str__(self) -> str:  # pragma: no cover - trivial
        parts = [f"RPC[{self.method or '-'}] kind={self.kind.value if self.kind else '-'}"]
        if self.code is not None:
            parts.append(f"code={self.code}")
        if self.http_status is not None:
            parts.append(f"http={self.http_status}")
        parts.append(f"msg={self.message!r}")
        if self.data is not None:
            parts.append(f"data={self.data!r}")
        return " ".join(parts)


class RetryError(EthStorageError):
    """Raised when a retry budget is exhausted or the failure is not retryable."""

    def __init__(
        self, last_exception: BaseException, attempts: int, kind: ErrorKind
    ) -> None:
        super().__init__(
            f"retry failed after {attempts} attempts "
            f"(last error type: {kind.value}): {last_exception}"
        )
        self.last_exception = last_exception
        self.attempts = attempts
        self.kind = kind


@dataclass(eq=False)
class TxError(EthStorageError):
    """
    Raised when a submitted transaction fails on-chain (mined with status 0).

    Fields:
      - message: human-readable description
      - tx_hash: 0x hash if known
      - receipt: receipt body for context
    """

    message: str
    tx_hash: Optional[str] = None
    receipt: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:  # pragma: no cover - trivial
        suffix = f" tx={self.tx_hash}" if self.tx_hash else ""
        return f"TxError{suffix}: {self.message}"


def classify_error(exc: BaseException) -> ErrorKind:
    """
    Map an arbitrary exception onto an ErrorKind.

    `RpcError` carries its own classification. OS-level failures are mapped by
    errno; anything else falls back to message inspection.
    """
    if isinstance(exc, RpcError):
        return exc.kind or ErrorKind.UNKNOWN
    if isinstance(exc, RetryError):
        return exc.kind
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return ErrorKind.TIMEOUT
    if isinstance(exc, socket.gaierror):
        return ErrorKind.NETWORK
    if isinstance(exc, OSError) and exc.errno is not None:
        if exc.errno in _SOCKET_ERRNOS:
            return ErrorKind.SOCKET
        if exc.errno in _NETWORK_ERRNOS:
            return ErrorKind.NETWORK
    if isinstance(exc, ConnectionError):
        return ErrorKind.SOCKET
    return _kind_from_fields(None, str(exc), None)
