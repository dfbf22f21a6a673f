"""
ethstorage_sdk.tx.build
=======================

Turn an unsigned contract call ({"to", "data", "value"}) into a fully priced
transaction ready for signing.

Primary entry points
--------------------
- TransactionBuilder.build_tx(base_tx, gas_inc_pct=0) -> PreparedTx
    EIP-1559 (type 2): chain id, fees, gas limit.

- TransactionBuilder.build_blob_tx(base_tx, blobs, commitments=None, gas_inc_pct=0) -> PreparedTx
    EIP-4844 (type 3). Commitments are reused when supplied for every blob,
    otherwise computed; proofs are always computed. Versioned hashes are
    derived from the commitments and `maxFeePerBlobGas` comes from the blob
    fee curve unless already set.

Nonces are not assigned here; the `Uploader` sets them at send time, under its
lock when nonce confirmation is requested.

Gas increase
------------
With `gas_inc_pct > 0` fresh fee data (and blob gas price) is fetched and
`maxFeePerGas`, `maxPriorityFeePerGas`, `maxFeePerBlobGas` are all scaled by
(100 + pct) / 100.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..kzg.engine import CommitmentEngine, versioned_hash
from ..rpc.eth import EthRpc, FeeData
from ..utils.bytes import to_hex
from . import fees

__all__ = ["PreparedTx", "TransactionBuilder"]


@dataclass
class PreparedTx:
    tx: Dict[str, Any]
    blobs: Tuple[bytes, ...] = ()
    commitments: Tuple[bytes, ...] = ()
    proofs: Tuple[bytes, ...] = ()
    versioned_hashes: Tuple[bytes, ...] = ()

    @property
    def is_blob_tx(self) -> bool:
        return bool(self.blobs)


class TransactionBuilder:
    def __init__(
        self,
        eth: EthRpc,
        engine: CommitmentEngine,
        *,
        sender: Optional[str] = None,
        chain_id: Optional[int] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.eth = eth
        self.engine = engine
        self.sender = sender
        self.log = logger or logging.getLogger("ethstorage_sdk.tx")
        self._chain_id: Optional[int] = chain_id

    async def chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = await self.eth.chain_id()
        return self._chain_id

    # ------------------------------ fee helpers ------------------------------

    async def get_blob_gas_price(self) -> int:
        """Blob fee curve at the latest block's excess blob gas, plus 10%."""
        return fees.blob_gas_price(await self.eth.excess_blob_gas())

    async def get_gas_price(self) -> FeeData:
        return await self.eth.fee_data()

    async def _apply_fees(self, tx: Dict[str, Any], gas_inc_pct: int, *, blob: bool) -> None:
        if gas_inc_pct > 0:
            if blob:
                fee, blob_price = await asyncio.gather(self.eth.fee_data(), self.get_blob_gas_price())
                tx["maxFeePerBlobGas"] = fees.bump(blob_price, gas_inc_pct)
            else:
                fee = await self.eth.fee_data()
            tx["maxFeePerGas"] = fees.bump(fee.max_fee_per_gas, gas_inc_pct)
            tx["maxPriorityFeePerGas"] = fees.bump(fee.max_priority_fee_per_gas, gas_inc_pct)
            return

        if "maxFeePerGas" not in tx or "maxPriorityFeePerGas" not in tx:
            fee = await self.eth.fee_data()
            tx.setdefault("maxFeePerGas", fee.max_fee_per_gas)
            tx.setdefault("maxPriorityFeePerGas", fee.max_priority_fee_per_gas)
        if blob and tx.get("maxFeePerBlobGas") is None:
            tx["maxFeePerBlobGas"] = await self.get_blob_gas_price()

    async def _apply_gas_limit(self, tx: Dict[str, Any]) -> None:
        if tx.get("gas"):
            return
        req = dict(tx)
        if self.sender:
            req.setdefault("from", self.sender)
        tx["gas"] = fees.with_gas_margin(await self.eth.estimate_gas(req))

    def _base(self, base_tx: Dict[str, Any], chain_id: int, tx_type: int) -> Dict[str, Any]:
        tx = dict(base_tx)
        tx.setdefault("value", 0)
        tx.setdefault("data", b"")
        tx["chainId"] = chain_id
        tx["type"] = tx_type
        if isinstance(tx["data"], (bytes, bytearray)):
            tx["data"] = to_hex(tx["data"])
        return tx

    # -------------------------------- builders -------------------------------

    async def build_tx(self, base_tx: Dict[str, Any], *, gas_inc_pct: int = 0) -> PreparedTx:
        tx = self._base(base_tx, await self.chain_id(), 2)
        await self._apply_fees(tx, gas_inc_pct, blob=False)
        await self._apply_gas_limit(tx)
        return PreparedTx(tx=tx)

    async def build_blob_tx(
        self,
        base_tx: Dict[str, Any],
        blobs: Sequence[bytes],
        commitments: Optional[Sequence[bytes]] = None,
        *,
        gas_inc_pct: int = 0,
    ) -> PreparedTx:
        blob_list: List[bytes] = [bytes(b) for b in blobs]
        if not blob_list:
            raise ValueError("build_blob_tx needs at least one blob")
        if commitments is None or len(commitments) != len(blob_list):
            commitments = await self.engine.commit_many(blob_list)
        commitment_list = [bytes(c) for c in commitments]
        proofs = await self.engine.prove_many(blob_list, commitment_list)
        hashes = [versioned_hash(c) for c in commitment_list]

        tx = self._base(base_tx, await self.chain_id(), 3)
        tx["blobVersionedHashes"] = [to_hex(h) for h in hashes]
        await self._apply_fees(tx, gas_inc_pct, blob=True)
        await self._apply_gas_limit(tx)
        return PreparedTx(
            tx=tx,
            blobs=tuple(blob_list),
            commitments=tuple(commitment_list),
            proofs=tuple(proofs),
            versioned_hashes=tuple(hashes),
        )
