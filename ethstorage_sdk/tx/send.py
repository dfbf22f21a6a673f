"""
ethstorage_sdk.tx.send
======================

Nonce-safe submission of prepared transactions and receipt settlement.

Primary entry points
--------------------
- Uploader.send_tx(prepared) -> str
    Sign with the pending nonce and broadcast, no serialization.

- Uploader.send_tx_locked(prepared, confirm_nonce=True) -> str
    Nonce acquisition, signing and broadcast run as one critical section under
    an `asyncio.Lock`. With `confirm_nonce` the pending nonce is re-read from
    the chain inside the lock right before signing; otherwise a locally
    tracked counter (seeded once from the chain) hands out nonces.

- Uploader.get_transaction_result(tx_hash) -> TxResult
    Wait for the receipt; cost = gasUsed * effectiveGasPrice
    + blobGasUsed * blobGasPrice.

All RPC calls go through the classified retry policy of `RpcClient`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Sequence

from ..errors import RetryError, RpcError
from ..rpc.eth import EthRpc
from ..types import TxResult
from ..utils.bytes import hex_to_int
from ..wallet import SignedTx, Wallet
from .build import PreparedTx, TransactionBuilder

__all__ = ["Uploader", "receipt_cost"]

_ALREADY_KNOWN = ("already known", "known transaction", "already imported")


def _already_known(exc: BaseException) -> bool:
    cause = exc.last_exception if isinstance(exc, RetryError) else exc
    msg = str(getattr(cause, "message", cause)).lower()
    return any(m in msg for m in _ALREADY_KNOWN)


def receipt_cost(receipt: Dict[str, Any]) -> int:
    gas = hex_to_int(receipt.get("gasUsed")) * hex_to_int(receipt.get("effectiveGasPrice"))
    blob = hex_to_int(receipt.get("blobGasUsed")) * hex_to_int(receipt.get("blobGasPrice"))
    return gas + blob


class Uploader:
    def __init__(
        self,
        eth: EthRpc,
        wallet: Wallet,
        builder: TransactionBuilder,
        *,
        receipt_timeout_s: float = 300.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.eth = eth
        self.wallet = wallet
        self.builder = builder
        self.receipt_timeout_s = receipt_timeout_s
        self.log = logger or logging.getLogger("ethstorage_sdk.tx")
        self._lock = asyncio.Lock()
        self._next_nonce: Optional[int] = None

    @property
    def address(self) -> str:
        return self.wallet.address

    # -------------------------------- prepare --------------------------------

    async def prepare_tx(self, base_tx: Dict[str, Any], *, gas_inc_pct: int = 0) -> PreparedTx:
        return await self.builder.build_tx(base_tx, gas_inc_pct=gas_inc_pct)

    async def prepare_blob_tx(
        self,
        base_tx: Dict[str, Any],
        blobs: Sequence[bytes],
        commitments: Optional[Sequence[bytes]] = None,
        *,
        gas_inc_pct: int = 0,
    ) -> PreparedTx:
        return await self.builder.build_blob_tx(base_tx, blobs, commitments, gas_inc_pct=gas_inc_pct)

    # --------------------------------- send ----------------------------------

    def _sign(self, prepared: PreparedTx, nonce: int) -> SignedTx:
        tx = dict(prepared.tx)
        tx["nonce"] = nonce
        if prepared.is_blob_tx:
            return self.wallet.sign_blob_tx(tx, prepared.blobs, prepared.commitments, prepared.proofs)
        return self.wallet.sign(tx)

    async def _broadcast(self, signed: SignedTx) -> str:
        try:
            return await self.eth.send_raw_transaction(signed.raw)
        except (RpcError, RetryError) as e:
            # A retried broadcast may hit a node that already accepted the first attempt.
            if _already_known(e):
                self.log.debug("tx %s already known to the node", signed.tx_hash)
                return signed.tx_hash
            raise

    async def send_tx(self, prepared: PreparedTx) -> str:
        nonce = await self.eth.get_transaction_count(self.address, "pending")
        return await self._broadcast(self._sign(prepared, nonce))

    async def send_tx_locked(self, prepared: PreparedTx, *, confirm_nonce: bool = True) -> str:
        async with self._lock:
            if confirm_nonce or self._next_nonce is None:
                nonce = await self.eth.get_transaction_count(self.address, "pending")
            else:
                nonce = self._next_nonce
            signed = self._sign(prepared, nonce)
            try:
                tx_hash = await self._broadcast(signed)
            except Exception:
                self._next_nonce = None
                raise
            self._next_nonce = nonce + 1
            self.log.debug("sent tx %s (nonce=%d)", tx_hash, nonce)
            return tx_hash

    # -------------------------------- settle ---------------------------------

    async def get_transaction_result(self, tx_hash: str) -> TxResult:
        receipt = await self.eth.wait_for_receipt(tx_hash, timeout_s=self.receipt_timeout_s)
        success = hex_to_int(receipt.get("status")) == 1
        block = receipt.get("blockNumber")
        return TxResult(
            tx_hash=tx_hash,
            success=success,
            cost=receipt_cost(receipt),
            block_number=hex_to_int(block) if block is not None else None,
        )

    async def send_and_wait(
        self,
        prepared: PreparedTx,
        *,
        locked: bool = True,
        confirm_nonce: bool = True,
    ) -> TxResult:
        if locked:
            tx_hash = await self.send_tx_locked(prepared, confirm_nonce=confirm_nonce)
        else:
            tx_hash = await self.send_tx(prepared)
        return await self.get_transaction_result(tx_hash)

    async def submit(
        self,
        base_tx: Dict[str, Any],
        *,
        gas_inc_pct: int = 0,
        confirm_nonce: bool = True,
    ) -> TxResult:
        """Build, send under the lock and settle a plain (non-blob) call."""
        prepared = await self.prepare_tx(base_tx, gas_inc_pct=gas_inc_pct)
        return await self.send_and_wait(prepared, confirm_nonce=confirm_nonce)
