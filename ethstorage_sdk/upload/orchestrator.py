"""
ethstorage_sdk.upload.orchestrator
==================================

Drive one upload of `content` under `key` to a FlatDirectory contract.

Primary entry points
--------------------
- UploadOrchestrator.stream(request) -> AsyncIterator[UploadEvent]
    Ordered progress events, then a terminal `UploadFinished` (preceded by
    `UploadFailed` when the upload stopped early). Never raises for upload
    failures; they surface as `UploadFailed`.

- UploadOrchestrator.run(request) -> UploadResult
    Drains `stream()` into the request's `UploadCallback`; without a callback
    a failure is raised instead of reported.

Blob mode
---------
1. the contract must support blobs and the key must be stored in blob mode
   (or not stored at all)
2. when the new content needs fewer chunks than are stored, one `truncate`
   transaction is mined before anything is written
3. batches of up to MAX_BLOB_COUNT chunks are prepared ahead of submission
   (read, encode, commit) by at most `concurrency` tasks
4. a batch whose storage hashes all match the remote ones is skipped
5. changed batches are submitted in batch order:

   - confirm_nonce=True: one batch in flight; the pending nonce is re-read
     right before each send and the next batch is sent only after the
     previous one settled
   - confirm_nonce=False: up to `concurrency` batches in flight with locally
     tracked nonces; the gas limit estimated for the first submitted batch is
     reused for the rest, since later chunk ids cannot be estimated until
     earlier ones land

Progress always fires in ascending batch order. After a failure no further
batch is dispatched; batches already in flight still settle and count toward
the totals, but their progress is withheld.

Calldata mode
-------------
Strictly sequential, one chunk per transaction, keccak256 change detection
and a size-proportional storage fee above the free calldata size.

Totals: `total_cost` is the storage value paid plus the gas spent by the
settled write transactions.
"""

from __future__ import annotations

import asyncio
import collections
import itertools
import logging
import os
from dataclasses import dataclass
from typing import (
    AsyncIterator,
    Awaitable,
    Callable,
    Deque,
    Iterable,
    List,
    Optional,
    Set,
    Tuple,
    TypeVar,
)

from ..blobs.codec import encode_op_blobs
from ..constants import MAX_CALLDATA_CHUNK_SIZE, UPLOAD_FANOUT, UploadType
from ..content import ContentSource, as_content
from ..contracts.flat_directory import FlatDirectoryContract
from ..errors import CapabilityError, EthStorageError, TxError, ValidationError
from ..kzg.engine import CommitmentEngine, storage_hash
from ..tx.fees import calldata_storage_fee
from ..tx.send import Uploader
from ..types import (
    Chunk,
    ChunkBatch,
    RemoteChunkState,
    TxResult,
    UploadEvent,
    UploadFailed,
    UploadFinished,
    UploadProgress,
    UploadRequest,
    UploadResult,
)
from .diff import DiffEngine, batch_unchanged, calldata_chunk_unchanged, needs_truncate
from .ordering import OrderedBuffer
from .planner import plan_blob_upload, plan_calldata_upload

__all__ = ["UploadOrchestrator", "default_upload_concurrency", "prefetch"]

T = TypeVar("T")
R = TypeVar("R")


def default_upload_concurrency() -> int:
    return max(1, min(UPLOAD_FANOUT, os.cpu_count() or 1))


async def prefetch(
    items: Iterable[T], prepare: Callable[[T], Awaitable[R]], window: int
) -> AsyncIterator[R]:
    """
    Yield `prepare(item)` results in input order while keeping up to `window`
    preparations running ahead of the consumer.
    """
    it = iter(items)
    running: Deque["asyncio.Future[R]"] = collections.deque(
        asyncio.ensure_future(prepare(x)) for x in itertools.islice(it, max(1, window))
    )
    try:
        while running:
            result = await running.popleft()
            for x in itertools.islice(it, 1):
                running.append(asyncio.ensure_future(prepare(x)))
            yield result
    finally:
        for fut in running:
            fut.cancel()
        if running:
            await asyncio.gather(*running, return_exceptions=True)


@dataclass
class _Totals:
    chunks: int = 0
    size: int = 0
    cost: int = 0

    def add(self, chunks: int, size: int, cost: int) -> None:
        self.chunks += chunks
        self.size += size
        self.cost += cost

    def finished(self) -> UploadFinished:
        return UploadFinished(self.chunks, self.size, self.cost)


@dataclass
class _PreparedBatch:
    batch: ChunkBatch
    blobs: List[bytes]
    commitments: List[bytes]
    unchanged: bool


@dataclass
class _Settled:
    batch: ChunkBatch
    value: int
    result: TxResult


def _check_mode(stored: UploadType, wanted: UploadType) -> None:
    if stored not in (wanted, UploadType.UNDEFINED):
        raise CapabilityError(
            f"this file is stored in {stored.name.lower()} mode and does not support {wanted.name.lower()} upload"
        )


class UploadOrchestrator:
    def __init__(
        self,
        contract: FlatDirectoryContract,
        uploader: Uploader,
        engine: CommitmentEngine,
        diff: Optional[DiffEngine] = None,
        *,
        support_blob: bool = True,
        concurrency: Optional[int] = None,
        calldata_chunk_size: int = MAX_CALLDATA_CHUNK_SIZE,
        gas_inc_pct: int = 0,
        confirm_nonce: bool = True,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.contract = contract
        self.uploader = uploader
        self.engine = engine
        self.log = logger or logging.getLogger("ethstorage_sdk.upload")
        self.diff = diff or DiffEngine(contract, logger=self.log)
        self.support_blob = support_blob
        self.concurrency = max(1, concurrency or default_upload_concurrency())
        self.calldata_chunk_size = calldata_chunk_size
        self.gas_inc_pct = gas_inc_pct
        self.confirm_nonce = confirm_nonce

    # ------------------------------- public API ------------------------------

    async def run(self, request: UploadRequest) -> UploadResult:
        """
        Drain `stream()`. With a callback, failures go to `on_fail` and the
        partial totals are returned; without one, the failure is raised.
        """
        finished = UploadFinished(0, 0, 0)
        failure: Optional[BaseException] = None
        async for event in self.stream(request):
            if request.callback is not None:
                request.callback.dispatch(event)
            elif isinstance(event, UploadFailed):
                failure = event.error
            if isinstance(event, UploadFinished):
                finished = event
        if failure is not None:
            raise failure
        return finished.result

    async def stream(self, request: UploadRequest) -> AsyncIterator[UploadEvent]:
        totals = _Totals()
        try:
            if not request.key:
                raise ValidationError("upload key must be a non-empty string")
            mode = UploadType(request.mode)
            content = as_content(request.content)
            if mode is UploadType.BLOB:
                events = self._blob_events(request, content, totals)
            elif mode is UploadType.CALLDATA:
                events = self._calldata_events(request, content, totals)
            else:
                raise ValidationError(f"unsupported upload mode: {mode!r}")
            async for event in events:
                yield event
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.log.error("upload of %r failed: %s", request.key, e)
            yield UploadFailed(e)
        yield totals.finished()

    # -------------------------------- helpers --------------------------------

    def _options(self, request: UploadRequest) -> Tuple[int, bool]:
        pct = self.gas_inc_pct if request.gas_inc_pct is None else request.gas_inc_pct
        confirm = self.confirm_nonce if request.confirm_nonce is None else request.confirm_nonce
        return int(pct), bool(confirm)

    async def _truncate(self, key: str, old_count: int, new_count: int, gas_inc_pct: int) -> None:
        """Mine `truncate(key, new_count)` when fewer chunks are needed; failure aborts the upload."""
        if not needs_truncate(old_count, new_count):
            return
        try:
            prepared = await self.uploader.prepare_tx(
                self.contract.truncate(key, new_count), gas_inc_pct=gas_inc_pct
            )
            tx_hash = await self.uploader.send_tx_locked(prepared, confirm_nonce=True)
            self.log.info("Truncate tx hash is %s", tx_hash)
            result = await self.uploader.get_transaction_result(tx_hash)
        except Exception as e:
            raise EthStorageError(f"Failed to truncate old data: {e}") from e
        if not result.success:
            raise TxError("Failed to truncate old data", tx_hash=result.tx_hash)

    # ------------------------------- blob mode -------------------------------

    async def _prepare_batch(
        self, content: ContentSource, batch: ChunkBatch, remote: RemoteChunkState
    ) -> _PreparedBatch:
        first, last = batch.chunks[0], batch.chunks[-1]
        data = content.read(first.offset, last.offset + last.size)
        blobs = await asyncio.to_thread(encode_op_blobs, data)
        commitments = await self.engine.commit_many(blobs)
        local = [storage_hash(c) for c in commitments]
        return _PreparedBatch(
            batch=batch,
            blobs=blobs,
            commitments=commitments,
            unchanged=batch_unchanged(batch.first_id, local, remote.hashes),
        )

    async def _settle(self, key: str, batch: ChunkBatch, tx_hash: str, value: int) -> _Settled:
        result = await self.uploader.get_transaction_result(tx_hash)
        if not result.success:
            raise TxError(f"write of chunks {batch.chunk_ids} failed", tx_hash=tx_hash)
        return _Settled(batch=batch, value=value, result=result)

    async def _blob_events(
        self, request: UploadRequest, content: ContentSource, totals: _Totals
    ) -> AsyncIterator[UploadEvent]:
        key = request.key
        gas_inc_pct, confirm_nonce = self._options(request)
        if not self.support_blob:
            raise CapabilityError("the contract does not support blob upload")

        plan = plan_blob_upload(content.size)
        info = await self.contract.get_upload_info(key)
        _check_mode(info.mode, UploadType.BLOB)
        await self._truncate(key, info.chunk_count, plan.chunk_count, gas_inc_pct)
        remote = await self.diff.remote_state(
            key, min(info.chunk_count, plan.chunk_count), request.chunk_hashes
        )

        total = plan.chunk_count
        in_flight_limit = 1 if confirm_nonce else self.concurrency
        slots = asyncio.Semaphore(in_flight_limit)
        in_flight: Set["asyncio.Task[_Settled]"] = set()
        order: OrderedBuffer[UploadProgress] = OrderedBuffer()
        failure: Optional[BaseException] = None
        gas_limit: Optional[int] = None

        def harvest() -> List[UploadProgress]:
            nonlocal failure
            released: List[UploadProgress] = []
            for task in [t for t in in_flight if t.done()]:
                in_flight.discard(task)
                try:
                    settled = task.result()
                except Exception as e:
                    failure = failure or e
                    continue
                b = settled.batch
                totals.add(len(b), b.total_size, settled.value + settled.result.cost)
                released.extend(order.put(b.index, UploadProgress(b.last_id, total, True)))
            return released

        async def prepare(batch: ChunkBatch) -> _PreparedBatch:
            return await self._prepare_batch(content, batch, remote)

        prepared_batches = prefetch(plan.batches, prepare, self.concurrency)
        try:
            try:
                async for prep in prepared_batches:
                    batch = prep.batch
                    if prep.unchanged:
                        for ev in order.put(batch.index, UploadProgress(batch.last_id, total, False)):
                            yield ev
                        continue

                    await slots.acquire()
                    for ev in harvest():
                        yield ev
                    if failure is not None:
                        slots.release()
                        break

                    value = info.cost * len(prep.blobs)
                    base_tx = self.contract.write_chunks_by_blobs(
                        key, batch.chunk_ids, batch.sizes, value=value
                    )
                    if gas_limit is not None:
                        base_tx["gas"] = gas_limit
                    try:
                        prepared = await self.uploader.prepare_blob_tx(
                            base_tx, prep.blobs, prep.commitments, gas_inc_pct=gas_inc_pct
                        )
                        tx_hash = await self.uploader.send_tx_locked(prepared, confirm_nonce=confirm_nonce)
                    except Exception as e:
                        slots.release()
                        failure = failure or e
                        break
                    if not confirm_nonce:
                        gas_limit = prepared.tx.get("gas")
                    self.log.info("The transaction hash for chunks %s is %s", batch.chunk_ids, tx_hash)

                    task = asyncio.ensure_future(self._settle(key, batch, tx_hash, value))
                    task.add_done_callback(lambda _t: slots.release())
                    in_flight.add(task)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                failure = failure or e
            finally:
                await prepared_batches.aclose()

            while in_flight:
                await asyncio.wait(in_flight)
                for ev in harvest():
                    yield ev
        finally:
            for task in in_flight:
                task.cancel()

        if failure is not None:
            raise failure

    # ----------------------------- calldata mode -----------------------------

    async def _calldata_events(
        self, request: UploadRequest, content: ContentSource, totals: _Totals
    ) -> AsyncIterator[UploadEvent]:
        key = request.key
        gas_inc_pct, confirm_nonce = self._options(request)

        plan = plan_calldata_upload(content.size, self.calldata_chunk_size)
        info = await self.contract.get_upload_info(key)
        _check_mode(info.mode, UploadType.CALLDATA)
        await self._truncate(key, info.chunk_count, plan.chunk_count, gas_inc_pct)
        remote = await self.diff.remote_state(
            key, min(info.chunk_count, plan.chunk_count), request.chunk_hashes
        )

        total = plan.chunk_count
        chunk: Chunk
        for chunk in plan.chunks:
            data = content.read(chunk.offset, chunk.offset + chunk.size)
            if calldata_chunk_unchanged(chunk.chunk_id, data, remote.hashes):
                yield UploadProgress(chunk.chunk_id, total, False)
                continue

            value = calldata_storage_fee(len(data), MAX_CALLDATA_CHUNK_SIZE)
            prepared = await self.uploader.prepare_tx(
                self.contract.write_chunk_by_calldata(key, chunk.chunk_id, data, value=value),
                gas_inc_pct=gas_inc_pct,
            )
            tx_hash = await self.uploader.send_tx_locked(prepared, confirm_nonce=confirm_nonce)
            self.log.info("The transaction hash for chunk %d is %s", chunk.chunk_id, tx_hash)
            result = await self.uploader.get_transaction_result(tx_hash)
            if not result.success:
                raise TxError(f"write of chunk {chunk.chunk_id} failed", tx_hash=tx_hash)

            totals.add(1, len(data), value + result.cost)
            yield UploadProgress(chunk.chunk_id, total, True)
