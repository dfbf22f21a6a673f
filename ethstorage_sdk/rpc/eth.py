"""
Execution-layer reads and writes over JSON-RPC (eth_* namespace).

Thin, typed wrappers around `RpcClient.request`: quantities come back as
ints, data as bytes. Receipt polling follows the same shape as a blocking
`wait_for_receipt` (poll, back off, give up at a deadline) but suspends on
`asyncio.sleep` instead of blocking.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..constants import DEFAULT_PRIORITY_FEE
from ..errors import RpcError
from ..utils.bytes import from_hex, hex_to_int, int_to_hex, to_hex
from .http import RpcClient

__all__ = ["FeeData", "EthRpc"]


@dataclass(frozen=True)
class FeeData:
    """EIP-1559 fee suggestion (wei)."""

    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    gas_price: int


class EthRpc:
    def __init__(self, client: RpcClient, *, logger: Optional[logging.Logger] = None) -> None:
        self.client = client
        self.log = logger or logging.getLogger("ethstorage_sdk.rpc")

    @classmethod
    def from_url(cls, url: str, *, timeout: float = 30.0, **kw: Any) -> "EthRpc":
        return cls(RpcClient(url, timeout=timeout, **kw))

    async def close(self) -> None:
        await self.client.close()

    # ------------------------------- reads -----------------------------------

    async def chain_id(self) -> int:
        return hex_to_int(await self.client.request("eth_chainId"))

    async def block_number(self) -> int:
        return hex_to_int(await self.client.request("eth_blockNumber"))

    async def get_block(self, tag: str = "latest") -> Dict[str, Any]:
        block = await self.client.request("eth_getBlockByNumber", [tag, False])
        if not isinstance(block, dict):
            raise RpcError(f"block {tag} not found", method="eth_getBlockByNumber", code=-32000)
        return block

    async def get_transaction_count(self, address: str, tag: str = "pending") -> int:
        return hex_to_int(await self.client.request("eth_getTransactionCount", [address, tag]))

    async def gas_price(self) -> int:
        return hex_to_int(await self.client.request("eth_gasPrice"))

    async def max_priority_fee(self) -> int:
        """eth_maxPriorityFeePerGas, falling back to 1 gwei on nodes without it."""
        try:
            return hex_to_int(await self.client.request("eth_maxPriorityFeePerGas"))
        except Exception as e:  # noqa: BLE001
            self.log.debug("eth_maxPriorityFeePerGas unavailable (%s); using default", e)
            return DEFAULT_PRIORITY_FEE

    async def fee_data(self) -> FeeData:
        """maxFee = 2 * baseFee + priority, as wallets usually suggest."""
        block, priority, price = await asyncio.gather(
            self.get_block("latest"), self.max_priority_fee(), self.gas_price()
        )
        base_fee = hex_to_int(block.get("baseFeePerGas"))
        return FeeData(
            max_fee_per_gas=base_fee * 2 + priority,
            max_priority_fee_per_gas=priority,
            gas_price=price,
        )

    async def excess_blob_gas(self) -> int:
        block = await self.get_block("latest")
        raw = block.get("excessBlobGas")
        if raw is None:
            raise RpcError("block has no excessBlobGas", method="eth_getBlockByNumber")
        return hex_to_int(raw)

    async def estimate_gas(self, tx: Dict[str, Any]) -> int:
        return hex_to_int(await self.client.request("eth_estimateGas", [_rpc_tx(tx)]))

    async def call(self, to: str, data: bytes, *, sender: Optional[str] = None, tag: str = "latest") -> bytes:
        req: Dict[str, Any] = {"to": to, "data": to_hex(data)}
        if sender:
            req["from"] = sender
        out = await self.client.request("eth_call", [req, tag])
        return from_hex(out or "0x")

    # ------------------------------- writes ----------------------------------

    async def send_raw_transaction(self, raw: bytes) -> str:
        res = await self.client.request("eth_sendRawTransaction", [to_hex(raw)])
        if not isinstance(res, str):
            raise RpcError(f"unexpected eth_sendRawTransaction result: {res!r}", method="eth_sendRawTransaction")
        return res if res.startswith("0x") else "0x" + res

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        res = await self.client.request("eth_getTransactionReceipt", [tx_hash])
        if res in (None, False, ""):
            return None
        if not isinstance(res, dict):
            raise RpcError(f"unexpected receipt payload: {type(res)!r}", method="eth_getTransactionReceipt")
        return res

    async def wait_for_receipt(
        self,
        tx_hash: str,
        *,
        timeout_s: float = 300.0,
        poll_interval_s: float = 1.0,
        max_interval_s: float = 6.0,
        backoff: float = 1.5,
    ) -> Dict[str, Any]:
        """
        Poll for a receipt until it arrives or timeout is reached.

        Raises:
            asyncio.TimeoutError on timeout
        """
        deadline = time.monotonic() + float(timeout_s)
        interval = float(poll_interval_s)

        while True:
            rec = await self.get_transaction_receipt(tx_hash)
            if rec is not None:
                return rec
            if time.monotonic() >= deadline:
                raise asyncio.TimeoutError(
                    f"timeout waiting for receipt (tx={tx_hash}, timeout_s={timeout_s})"
                )
            await asyncio.sleep(interval)
            interval = min(interval * float(backoff), float(max_interval_s))


def _rpc_tx(tx: Dict[str, Any]) -> Dict[str, Any]:
    """Wallet-style tx dict -> JSON-RPC call object (hex quantities, hex data)."""
    out: Dict[str, Any] = {}
    for k, v in tx.items():
        if k in ("blobs",):
            continue
        if isinstance(v, bool):
            out[k] = v
        elif isinstance(v, int):
            out[k] = int_to_hex(v)
        elif isinstance(v, (bytes, bytearray)):
            out[k] = to_hex(v)
        elif isinstance(v, (list, tuple)):
            out[k] = [to_hex(x) if isinstance(x, (bytes, bytearray)) else x for x in v]
        else:
            out[k] = v
    return out
