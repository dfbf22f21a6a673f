from __future__ import annotations

"""
HTTP JSON-RPC client (async, httpx).

- Every request goes through the classified retry policy (utils.retry).
- Transport failures and HTTP / JSON-RPC errors are raised as `RpcError` with
  an `ErrorKind` fixed at construction, so the policy never has to guess.

Example:
    from ethstorage_sdk.rpc.http import RpcClient
    async with RpcClient("http://localhost:8545") as rpc:
        block = await rpc.request("eth_blockNumber")
"""

import json
import logging
import time
from dataclasses import dataclass, field
from itertools import count
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import httpx

from ..errors import ErrorKind, RpcError
from ..utils.retry import DEFAULT_POLICY, RetryPolicy, aretry_call
from ..version import __version__ as SDK_VERSION

JSON = Union[dict, list, str, int, float, bool, None]
Params = Union[Sequence[Any], Mapping[str, Any], None]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _transport_kind(exc: httpx.TransportError) -> ErrorKind:
    if isinstance(exc, httpx.TimeoutException):
        return ErrorKind.TIMEOUT
    if isinstance(exc, (httpx.ConnectError, httpx.RemoteProtocolError)):
        return ErrorKind.SOCKET
    if isinstance(exc, httpx.NetworkError):
        return ErrorKind.NETWORK
    return ErrorKind.UNKNOWN


@dataclass
class RpcClient:
    """Asynchronous JSON-RPC 2.0 client over HTTP."""

    url: str
    timeout: float = 30.0
    headers: Optional[Mapping[str, str]] = None
    policy: RetryPolicy = DEFAULT_POLICY
    transport: Optional[httpx.AsyncBaseTransport] = None
    logger: Optional[logging.Logger] = None
    _id_counter: Iterator[int] = field(default_factory=lambda: count(start=_now_ms()))
    _client: Optional[httpx.AsyncClient] = field(init=False, default=None)

    def __post_init__(self) -> None:
        merged_headers: Dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": f"ethstorage-sdk-py/{SDK_VERSION}",
        }
        if self.headers:
            merged_headers.update(dict(self.headers))
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            headers=merged_headers,
            transport=self.transport,
        )
        if self.logger is None:
            self.logger = logging.getLogger("ethstorage_sdk.rpc")

    # --- context manager -------------------------------------------------

    async def __aenter__(self) -> "RpcClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.close()

    async def close(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()

    # --- public API ------------------------------------------------------

    async def request(self, method: str, params: Params = None) -> JSON:
        """Perform a single JSON-RPC request and return `result` or raise RpcError."""

        async def _once() -> JSON:
            payload = self._make_payload(method, params)
            resp = await self._send_once(payload, method)
            return self._unwrap(resp, method)

        _once.__name__ = method
        return await aretry_call(_once, policy=self.policy)

    async def batch(self, calls: Sequence[Tuple[str, Params]]) -> List[JSON]:
        """Perform a JSON-RPC batch; returns results in the same order as `calls`."""

        async def _once() -> List[JSON]:
            payload = [self._make_payload(m, p) for m, p in calls]
            resp = await self._send_once(payload, "batch")
            if not isinstance(resp, list):
                raise RpcError("invalid batch response (not a list)", method="batch", code=-32603, data=resp)
            by_id: Dict[Any, Any] = {}
            for item in resp:
                if not isinstance(item, dict) or "id" not in item:
                    raise RpcError("malformed item in batch response", method="batch", code=-32603, data=item)
                by_id[item["id"]] = item
            out: List[JSON] = []
            for p in payload:
                item = by_id.get(p["id"])
                if item is None:
                    raise RpcError(f"missing result for id {p['id']}", method=p["method"], code=-32603)
                out.append(self._unwrap(item, p["method"]))
            return out

        _once.__name__ = "batch"
        return await aretry_call(_once, policy=self.policy)

    # --- internals -------------------------------------------------------

    def _make_payload(self, method: str, params: Params) -> Dict[str, Any]:
        if params is None:
            params = []
        elif isinstance(params, Mapping):
            params = dict(params)
        elif isinstance(params, Sequence) and not isinstance(params, (str, bytes, bytearray)):
            params = list(params)
        else:
            params = [params]  # type: ignore[list-item]
        return {"jsonrpc": "2.0", "id": next(self._id_counter), "method": method, "params": params}

    async def _send_once(self, payload: Union[Dict[str, Any], List[Dict[str, Any]]], method: str) -> JSON:
        if self._client is None:
            raise RuntimeError("RpcClient is closed")
        body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
        try:
            r = await self._client.post(self.url, content=body)
        except httpx.TransportError as e:
            raise RpcError(f"transport error: {e}", method=method, kind=_transport_kind(e)) from e

        if r.status_code >= 400:
            raise RpcError(
                f"HTTP {r.status_code}: {r.text[:256]}",
                method=method,
                http_status=r.status_code,
            )
        try:
            return r.json()
        except ValueError as e:
            raise RpcError(
                "non-JSON response from RPC",
                method=method,
                code=-32603,
                data=f"HTTP {r.status_code}: {r.text[:256]}",
            ) from e

    @staticmethod
    def _unwrap(resp: JSON, method: str) -> JSON:
        if not isinstance(resp, dict):
            raise RpcError("invalid JSON-RPC response type", method=method, code=-32603, data=type(resp).__name__)
        if resp.get("error") is not None:
            err = resp["error"] or {}
            raise RpcError(
                err.get("message", "Unknown error"),
                method=method,
                code=err.get("code"),
                data=err.get("data"),
            )
        if "result" not in resp:
            raise RpcError("malformed JSON-RPC response", method=method, code=-32603, data=resp)
        return resp["result"]


__all__ = ["RpcClient"]
