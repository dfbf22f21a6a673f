"""
Upload cost estimation.

Walks the same plan and change detection as an upload without sending
anything:

    blob:      storage = costPerChunk * blobs        per changed batch
               gas     = (maxFee + priorityFee) * gasLimit + maxFeePerBlobGas * BLOB_SIZE
    calldata:  storage = calldata storage fee        per changed chunk
               gas     = (maxFee + priorityFee) * gasLimit

The blob gas limit is estimated once, for the first changed batch. The
calldata gas limit is estimated for the first changed chunk and again for the
last chunk, which is usually shorter. `gas_inc_pct` percent is added to the
gas total.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from ..blobs.codec import encode_op_blobs
from ..constants import BLOB_SIZE, MAX_CALLDATA_CHUNK_SIZE, UploadType
from ..content import ContentSource, as_content
from ..contracts.flat_directory import FlatDirectoryContract
from ..errors import CapabilityError, ValidationError
from ..kzg.engine import storage_hash, versioned_hash
from ..tx.build import TransactionBuilder
from ..tx.fees import calldata_storage_fee
from ..types import CostEstimate, EstimateRequest
from ..utils.bytes import to_hex
from .diff import DiffEngine, batch_unchanged, calldata_chunk_unchanged
from .planner import plan_blob_upload, plan_calldata_upload

__all__ = ["CostEstimator"]


class CostEstimator:
    def __init__(
        self,
        contract: FlatDirectoryContract,
        builder: TransactionBuilder,
        diff: Optional[DiffEngine] = None,
        *,
        support_blob: bool = True,
        calldata_chunk_size: int = MAX_CALLDATA_CHUNK_SIZE,
        gas_inc_pct: int = 0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.contract = contract
        self.builder = builder
        self.log = logger or logging.getLogger("ethstorage_sdk.upload")
        self.diff = diff or DiffEngine(contract, logger=self.log)
        self.support_blob = support_blob
        self.calldata_chunk_size = calldata_chunk_size
        self.gas_inc_pct = gas_inc_pct

    async def estimate(self, request: EstimateRequest) -> CostEstimate:
        if not request.key:
            raise ValidationError("upload key must be a non-empty string")
        content = as_content(request.content)
        pct = self.gas_inc_pct if request.gas_inc_pct is None else int(request.gas_inc_pct)
        mode = UploadType(request.mode)
        if mode is UploadType.BLOB:
            return await self._estimate_blob(request, content, pct)
        if mode is UploadType.CALLDATA:
            return await self._estimate_calldata(request, content, pct)
        raise ValidationError(f"unsupported upload mode: {mode!r}")

    async def _estimate_gas(self, tx: Dict[str, Any]) -> int:
        req = dict(tx)
        if self.builder.sender:
            req.setdefault("from", self.builder.sender)
        return await self.builder.eth.estimate_gas(req)

    async def _estimate_blob(self, request: EstimateRequest, content: ContentSource, pct: int) -> CostEstimate:
        if not self.support_blob:
            raise CapabilityError("the contract does not support blob upload")

        plan = plan_blob_upload(content.size)
        info, blob_gas_price, fee = await asyncio.gather(
            self.contract.get_upload_info(request.key),
            self.builder.get_blob_gas_price(),
            self.builder.get_gas_price(),
        )
        if info.mode not in (UploadType.BLOB, UploadType.UNDEFINED):
            raise CapabilityError("this file does not support blob upload")
        remote = await self.diff.remote_state(request.key, info.chunk_count, request.chunk_hashes)

        storage_cost = gas_cost = 0
        gas_limit = 0
        for batch in plan.batches:
            first, last = batch.chunks[0], batch.chunks[-1]
            blobs = encode_op_blobs(content.read(first.offset, last.offset + last.size))
            commitments = await self.builder.engine.commit_many(blobs)
            if batch_unchanged(batch.first_id, [storage_hash(c) for c in commitments], remote.hashes):
                continue

            value = info.cost * len(blobs)
            storage_cost += value
            if gas_limit == 0:
                tx = self.contract.write_chunks_by_blobs(
                    request.key, batch.chunk_ids, batch.sizes, value=value
                )
                tx["type"] = 3
                tx["maxFeePerBlobGas"] = blob_gas_price
                tx["blobVersionedHashes"] = [to_hex(versioned_hash(c)) for c in commitments]
                gas_limit = await self._estimate_gas(tx)
            gas_cost += (fee.max_fee_per_gas + fee.max_priority_fee_per_gas) * gas_limit
            gas_cost += blob_gas_price * BLOB_SIZE

        gas_cost += gas_cost * pct // 100
        return CostEstimate(storage_cost=storage_cost, gas_cost=gas_cost)

    async def _estimate_calldata(self, request: EstimateRequest, content: ContentSource, pct: int) -> CostEstimate:
        plan = plan_calldata_upload(content.size, self.calldata_chunk_size)
        info, fee = await asyncio.gather(
            self.contract.get_upload_info(request.key),
            self.builder.get_gas_price(),
        )
        if info.mode not in (UploadType.CALLDATA, UploadType.UNDEFINED):
            raise CapabilityError("this file does not support calldata upload")
        remote = await self.diff.remote_state(request.key, info.chunk_count, request.chunk_hashes)

        storage_cost = gas_cost = 0
        gas_limit = 0
        last_id = plan.chunk_count - 1
        for chunk in plan.chunks:
            data = content.read(chunk.offset, chunk.offset + chunk.size)
            if calldata_chunk_unchanged(chunk.chunk_id, data, remote.hashes):
                continue

            value = calldata_storage_fee(len(data), MAX_CALLDATA_CHUNK_SIZE)
            if gas_limit == 0 or chunk.chunk_id == last_id:
                # chunk id 0 always passes the contract's contiguity check
                tx = self.contract.write_chunk_by_calldata(request.key, 0, data, value=value)
                gas_limit = await self._estimate_gas(tx)
            storage_cost += value
            gas_cost += (fee.max_fee_per_gas + fee.max_priority_fee_per_gas) * gas_limit

        gas_cost += gas_cost * pct // 100
        return CostEstimate(storage_cost=storage_cost, gas_cost=gas_cost)
