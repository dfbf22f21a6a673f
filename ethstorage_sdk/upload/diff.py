"""
DiffEngine: remote chunk hashes vs. locally computed ones.

Remote hashes are bytes32. Blob chunks are recorded as their 24-byte storage
hash, zero-padded to 32 bytes; calldata chunks as keccak256 of the chunk.
Remote state is fetched fresh on every call and never cached.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from ..constants import HASH_FETCH_CONCURRENCY, MAX_CHUNKS
from ..contracts.flat_directory import FlatDirectoryContract
from ..types import RemoteChunkState
from ..utils.bytes import pad_right
from ..utils.hash import keccak256

__all__ = [
    "normalize_hash",
    "batch_unchanged",
    "calldata_chunk_unchanged",
    "hash_pages",
    "needs_truncate",
    "DiffEngine",
]

FileChunks = List[Tuple[str, List[int]]]


def normalize_hash(h: bytes) -> bytes:
    """Storage hashes are compared as bytes32."""
    return pad_right(bytes(h), 32)


def batch_unchanged(first_id: int, local: Sequence[bytes], remote: Sequence[bytes]) -> bool:
    """
    A batch starting at `first_id` is unchanged only when every one of its
    chunks exists remotely and all hashes match.
    """
    if first_id + len(local) > len(remote):
        return False
    window = remote[first_id : first_id + len(local)]
    return all(normalize_hash(a) == normalize_hash(b) for a, b in zip(local, window))


def calldata_chunk_unchanged(chunk_id: int, data: bytes, remote: Sequence[bytes]) -> bool:
    if chunk_id >= len(remote):
        return False
    return keccak256(data) == normalize_hash(remote[chunk_id])


def needs_truncate(old_count: int, new_count: int) -> bool:
    return old_count > new_count


def hash_pages(counts: Mapping[str, int], page_size: int = MAX_CHUNKS) -> List[FileChunks]:
    """
    Spread (key, chunk id) lookups over pages of at most `page_size` ids.
    A key's ids may straddle two pages.
    """
    pages: List[FileChunks] = []
    current: Dict[str, List[int]] = {}
    filled = 0
    for key, n in counts.items():
        for i in range(n):
            current.setdefault(key, []).append(i)
            filled += 1
            if filled == page_size:
                pages.append(list(current.items()))
                current, filled = {}, 0
    if current:
        pages.append(list(current.items()))
    return pages


class DiffEngine:
    def __init__(
        self,
        contract: FlatDirectoryContract,
        *,
        concurrency: int = HASH_FETCH_CONCURRENCY,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.contract = contract
        self.concurrency = max(1, concurrency)
        self.log = logger or logging.getLogger("ethstorage_sdk.upload")

    async def fetch_hashes_for_counts(self, counts: Mapping[str, int]) -> Dict[str, List[bytes]]:
        result: Dict[str, List[bytes]] = {k: [b""] * n for k, n in counts.items()}
        pages = hash_pages(counts)
        if not pages:
            return result

        sem = asyncio.Semaphore(self.concurrency)

        async def _page(page: FileChunks) -> Tuple[FileChunks, List[bytes]]:
            async with sem:
                return page, await self.contract.get_chunk_hashes_batch(page)

        for page, hashes in await asyncio.gather(*(_page(p) for p in pages)):
            it = iter(hashes)
            for key, ids in page:
                for i in ids:
                    result[key][i] = next(it)
        self.log.debug("fetched %d hash pages for %d keys", len(pages), len(counts))
        return result

    async def fetch_hashes(self, keys: Sequence[str]) -> Dict[str, List[bytes]]:
        """Chunk counts for all keys in one call, then hashes in pages."""
        keys = list(dict.fromkeys(keys))
        if not keys:
            return {}
        counts = await self.contract.get_chunk_counts_batch(keys)
        return await self.fetch_hashes_for_counts(dict(zip(keys, counts)))

    async def remote_state(
        self, key: str, chunk_count: int, known: Optional[Sequence[bytes]] = None
    ) -> RemoteChunkState:
        """Use caller-supplied hashes when given, else fetch `chunk_count` of them."""
        if known is not None:
            return RemoteChunkState(key=key, hashes=tuple(bytes(h) for h in known))
        hashes = await self.fetch_hashes_for_counts({key: chunk_count})
        return RemoteChunkState(key=key, hashes=tuple(hashes[key]))
