"""
DownloadOrchestrator: fetch every chunk of a key, delivered in index order.

Chunk reads run as at most `concurrency` concurrent `readChunk` calls;
results are buffered by index and released as the longest contiguous run
starting at the next expected index. Any unrecoverable read cancels the
remaining work and ends the stream with `DownloadFailed`.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import AsyncIterator, Optional, Set

from .constants import DOWNLOAD_CONCURRENCY_MAX, DOWNLOAD_CONCURRENCY_MIN
from .contracts.flat_directory import FlatDirectoryContract
from .errors import ValidationError
from .types import (
    DownloadChunk,
    DownloadEvent,
    DownloadFailed,
    DownloadFinished,
    DownloadRequest,
)
from .upload.ordering import OrderedBuffer

__all__ = ["DownloadOrchestrator", "default_download_concurrency"]


def default_download_concurrency() -> int:
    n = os.cpu_count() or DOWNLOAD_CONCURRENCY_MIN
    return max(DOWNLOAD_CONCURRENCY_MIN, min(DOWNLOAD_CONCURRENCY_MAX, n))


class DownloadOrchestrator:
    def __init__(
        self,
        contract: FlatDirectoryContract,
        *,
        concurrency: Optional[int] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.contract = contract
        self.concurrency = max(1, concurrency or default_download_concurrency())
        self.log = logger or logging.getLogger("ethstorage_sdk.download")

    async def run(self, request: DownloadRequest) -> bool:
        """Feed the stream to `request.callback`; True when every chunk arrived."""
        ok = False
        async for event in self.stream(request.key):
            if request.callback is not None:
                request.callback.dispatch(event)
            ok = isinstance(event, DownloadFinished)
        return ok

    async def stream(self, key: str) -> AsyncIterator[DownloadEvent]:
        tasks: Set["asyncio.Task[DownloadChunk]"] = set()
        try:
            if not key:
                raise ValidationError("download key must be a non-empty string")
            total = await self.contract.count_chunks(key)
            self.log.debug("downloading %r: %d chunks", key, total)

            sem = asyncio.Semaphore(self.concurrency)
            order: OrderedBuffer[DownloadChunk] = OrderedBuffer()

            async def fetch(i: int) -> DownloadChunk:
                async with sem:
                    return DownloadChunk(i, total, await self.contract.read_chunk(key, i))

            tasks = {asyncio.ensure_future(fetch(i)) for i in range(total)}
            pending = set(tasks)
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    chunk = task.result()
                    for ready in order.put(chunk.index, chunk):
                        yield ready
        except asyncio.CancelledError:
            raise
        except Exception as e:
            for task in tasks:
                task.cancel()
            self.log.error("download of %r failed: %s", key, e)
            yield DownloadFailed(e)
            return
        finally:
            for task in tasks:
                task.cancel()
        yield DownloadFinished(total)
