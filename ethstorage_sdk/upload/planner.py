"""
ChunkPlanner: content length -> ordered chunks -> per-transaction batches.

    chunk_count     = ceil(L / U)
    last chunk size = L - U * (chunk_count - 1)

Blob mode uses U = OP_BLOB_DATA_SIZE and groups consecutive chunk ids into
batches of at most MAX_BLOB_COUNT. Calldata mode uses the calldata chunk size
and every chunk is its own batch; content smaller than one chunk (including
empty content) is stored as a single chunk.
"""

from __future__ import annotations

from typing import List, Sequence, Tuple

from ..constants import MAX_BLOB_COUNT, MAX_CALLDATA_CHUNK_SIZE, OP_BLOB_DATA_SIZE, UploadType
from ..errors import ValidationError
from ..types import Chunk, ChunkBatch, UploadPlan

__all__ = [
    "chunk_count",
    "split_chunks",
    "group_batches",
    "plan_blob_upload",
    "plan_calldata_upload",
    "plan_upload",
]


def chunk_count(length: int, unit: int) -> int:
    if unit <= 0:
        raise ValidationError("chunk unit must be > 0")
    if length < 0:
        raise ValidationError("content length must be >= 0")
    return -(-length // unit)


def split_chunks(length: int, unit: int) -> Tuple[Chunk, ...]:
    n = chunk_count(length, unit)
    return tuple(
        Chunk(chunk_id=i, offset=i * unit, size=min(unit, length - i * unit))
        for i in range(n)
    )


def group_batches(chunks: Sequence[Chunk], per_batch: int) -> Tuple[ChunkBatch, ...]:
    if per_batch < 1:
        raise ValidationError("batch size must be >= 1")
    out: List[ChunkBatch] = []
    for idx, start in enumerate(range(0, len(chunks), per_batch)):
        out.append(ChunkBatch(index=idx, chunks=tuple(chunks[start : start + per_batch])))
    return tuple(out)


def plan_blob_upload(length: int) -> UploadPlan:
    chunks = split_chunks(length, OP_BLOB_DATA_SIZE)
    return UploadPlan(
        mode=UploadType.BLOB,
        content_size=length,
        chunk_size=OP_BLOB_DATA_SIZE,
        chunks=chunks,
        batches=group_batches(chunks, MAX_BLOB_COUNT),
    )


def plan_calldata_upload(length: int, chunk_size: int = MAX_CALLDATA_CHUNK_SIZE) -> UploadPlan:
    if length <= chunk_size:
        chunks: Tuple[Chunk, ...] = (Chunk(chunk_id=0, offset=0, size=length),)
        unit = length
    else:
        chunks = split_chunks(length, chunk_size)
        unit = chunk_size
    return UploadPlan(
        mode=UploadType.CALLDATA,
        content_size=length,
        chunk_size=unit,
        chunks=chunks,
        batches=group_batches(chunks, 1),
    )


def plan_upload(mode: UploadType, length: int, *, calldata_chunk_size: int = MAX_CALLDATA_CHUNK_SIZE) -> UploadPlan:
    mode = UploadType(mode)
    if mode is UploadType.BLOB:
        return plan_blob_upload(length)
    if mode is UploadType.CALLDATA:
        return plan_calldata_upload(length, calldata_chunk_size)
    raise ValidationError(f"unsupported upload mode: {mode!r}")
