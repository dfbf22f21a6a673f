"""Chunk planning, change detection, cost estimation and upload orchestration."""

from .diff import (
    DiffEngine,
    batch_unchanged,
    calldata_chunk_unchanged,
    hash_pages,
    needs_truncate,
    normalize_hash,
)
from .estimate import CostEstimator
from .orchestrator import UploadOrchestrator, default_upload_concurrency, prefetch
from .ordering import OrderedBuffer
from .planner import (
    chunk_count,
    group_batches,
    plan_blob_upload,
    plan_calldata_upload,
    plan_upload,
    split_chunks,
)

__all__ = [
    "DiffEngine",
    "batch_unchanged",
    "calldata_chunk_unchanged",
    "hash_pages",
    "needs_truncate",
    "normalize_hash",
    "CostEstimator",
    "UploadOrchestrator",
    "default_upload_concurrency",
    "prefetch",
    "OrderedBuffer",
    "chunk_count",
    "group_batches",
    "plan_blob_upload",
    "plan_calldata_upload",
    "plan_upload",
    "split_chunks",
]
