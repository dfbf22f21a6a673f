"""
Data model shared by planners, orchestrators and facades.

Plain dataclasses; results and events are frozen. Progress reporting is an
ordered stream of events:

    UploadProgress*  (ascending index)  then exactly one of
    UploadFailed -> UploadFinished      or      UploadFinished

    DownloadChunk*   (ascending index)  then  DownloadFinished | DownloadFailed

The callback objects below are adapters that dispatch those events to
optional user functions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple, Union

from .constants import UploadType

__all__ = [
    "Chunk",
    "ChunkBatch",
    "UploadPlan",
    "UploadInfo",
    "RemoteChunkState",
    "CostEstimate",
    "UploadResult",
    "TxResult",
    "UploadRequest",
    "EstimateRequest",
    "DownloadRequest",
    "UploadProgress",
    "UploadFailed",
    "UploadFinished",
    "UploadEvent",
    "DownloadChunk",
    "DownloadFailed",
    "DownloadFinished",
    "DownloadEvent",
    "UploadCallback",
    "DownloadCallback",
]


# --------------------------------- planning ----------------------------------


@dataclass(frozen=True)
class Chunk:
    """Byte range [offset, offset+size) of the content, stored as chunk `chunk_id`."""

    chunk_id: int
    offset: int
    size: int


@dataclass(frozen=True)
class ChunkBatch:
    """1..3 contiguous chunks submitted in one transaction."""

    index: int
    chunks: Tuple[Chunk, ...]

    @property
    def chunk_ids(self) -> List[int]:
        return [c.chunk_id for c in self.chunks]

    @property
    def sizes(self) -> List[int]:
        return [c.size for c in self.chunks]

    @property
    def first_id(self) -> int:
        return self.chunks[0].chunk_id

    @property
    def last_id(self) -> int:
        return self.chunks[-1].chunk_id

    @property
    def total_size(self) -> int:
        return sum(c.size for c in self.chunks)

    def __len__(self) -> int:
        return len(self.chunks)


@dataclass(frozen=True)
class UploadPlan:
    mode: UploadType
    content_size: int
    chunk_size: int
    chunks: Tuple[Chunk, ...]
    batches: Tuple[ChunkBatch, ...]

    @property
    def chunk_count(self) -> int:
        return len(self.chunks)


# ------------------------------- remote state --------------------------------


@dataclass(frozen=True)
class UploadInfo:
    """`getUploadInfo` result: stored mode, stored chunk count and cost per chunk (wei)."""

    mode: UploadType
    chunk_count: int
    cost: int


@dataclass(frozen=True)
class RemoteChunkState:
    key: str
    hashes: Tuple[bytes, ...] = ()

    @property
    def chunk_count(self) -> int:
        return len(self.hashes)


# ---------------------------------- results ----------------------------------


@dataclass(frozen=True)
class CostEstimate:
    storage_cost: int
    gas_cost: int

    @property
    def total(self) -> int:
        return self.storage_cost + self.gas_cost


@dataclass(frozen=True)
class UploadResult:
    total_chunks: int
    total_bytes: int
    total_cost: int


@dataclass(frozen=True)
class TxResult:
    tx_hash: str
    success: bool
    cost: int
    block_number: Optional[int] = None


# --------------------------------- requests ----------------------------------


@dataclass
class EstimateRequest:
    key: str
    content: object
    mode: UploadType = UploadType.BLOB
    gas_inc_pct: Optional[int] = None
    chunk_hashes: Optional[Sequence[bytes]] = None


@dataclass
class UploadRequest(EstimateRequest):
    confirm_nonce: Optional[bool] = None
    callback: Optional["UploadCallback"] = None


@dataclass
class DownloadRequest:
    key: str
    callback: Optional["DownloadCallback"] = None


# ---------------------------------- events -----------------------------------


@dataclass(frozen=True)
class UploadProgress:
    """`index` is the last chunk id of the unit (batch or chunk) just settled."""

    index: int
    total: int
    written: bool


@dataclass(frozen=True)
class UploadFailed:
    error: BaseException


@dataclass(frozen=True)
class UploadFinished:
    total_chunks: int
    total_bytes: int
    total_cost: int

    @property
    def result(self) -> UploadResult:
        return UploadResult(self.total_chunks, self.total_bytes, self.total_cost)


UploadEvent = Union[UploadProgress, UploadFailed, UploadFinished]


@dataclass(frozen=True)
class DownloadChunk:
    index: int
    total: int
    data: bytes


@dataclass(frozen=True)
class DownloadFailed:
    error: BaseException


@dataclass(frozen=True)
class DownloadFinished:
    total: int


DownloadEvent = Union[DownloadChunk, DownloadFailed, DownloadFinished]


# --------------------------------- callbacks ---------------------------------


@dataclass
class UploadCallback:
    on_progress: Optional[Callable[[int, int, bool], None]] = None
    on_fail: Optional[Callable[[BaseException], None]] = None
    on_finish: Optional[Callable[[int, int, int], None]] = None

    def dispatch(self, event: UploadEvent) -> None:
        if isinstance(event, UploadProgress):
            if self.on_progress:
                self.on_progress(event.index, event.total, event.written)
        elif isinstance(event, UploadFailed):
            if self.on_fail:
                self.on_fail(event.error)
        elif isinstance(event, UploadFinished):
            if self.on_finish:
                self.on_finish(event.total_chunks, event.total_bytes, event.total_cost)
        else:  # pragma: no cover - closed union
            raise TypeError(f"unknown upload event {event!r}")


@dataclass
class DownloadCallback:
    on_progress: Optional[Callable[[int, int, bytes], None]] = None
    on_fail: Optional[Callable[[BaseException], None]] = None
    on_finish: Optional[Callable[[], None]] = None

    def dispatch(self, event: DownloadEvent) -> None:
        if isinstance(event, DownloadChunk):
            if self.on_progress:
                self.on_progress(event.index, event.total, event.data)
        elif isinstance(event, DownloadFailed):
            if self.on_fail:
                self.on_fail(event.error)
        elif isinstance(event, DownloadFinished):
            if self.on_finish:
                self.on_finish()
        else:  # pragma: no cover - closed union
            raise TypeError(f"unknown download event {event!r}")
