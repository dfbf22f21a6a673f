"""
CommitmentEngine: lazy, closable owner of a KZG compute backend.

The backend (trusted setup load, optional process pool) is created on first
use. Concurrent first callers await the same in-flight initialization; a
failed initialization is forgotten so the next call retries it.

Hash forms derived from a commitment:

    versioned_hash = 0x01 || sha256(commitment)[1:32]
    storage_hash   = versioned_hash[0:24]
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence

from ..errors import EthStorageError
from ..utils.hash import sha256
from .backend import CkzgBackend, KzgBackend, ProcessPoolBackend

__all__ = [
    "VERSIONED_HASH_VERSION_KZG",
    "STORAGE_HASH_SIZE",
    "versioned_hash",
    "storage_hash",
    "CommitmentEngine",
]

VERSIONED_HASH_VERSION_KZG = 0x01
STORAGE_HASH_SIZE = 24

BackendFactory = Callable[[], Awaitable[KzgBackend]]


def versioned_hash(commitment: bytes) -> bytes:
    return bytes([VERSIONED_HASH_VERSION_KZG]) + sha256(commitment)[1:]


def storage_hash(commitment: bytes) -> bytes:
    return versioned_hash(commitment)[:STORAGE_HASH_SIZE]


class CommitmentEngine:
    """
    Example:
        engine = CommitmentEngine.from_settings(workers=0)
        commitments = await engine.commit_many(blobs)
        proofs = await engine.prove_many(blobs, commitments)
        await engine.close()
    """

    def __init__(
        self,
        factory: BackendFactory,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._factory = factory
        self._init: Optional[asyncio.Future] = None
        self._backend: Optional[KzgBackend] = None
        self._closed = False
        self.log = logger or logging.getLogger("ethstorage_sdk.kzg")

    @classmethod
    def from_settings(
        cls,
        *,
        workers: int = 0,
        trusted_setup: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ) -> "CommitmentEngine":
        """workers == 0 -> in-process ckzg; workers > 0 -> process pool."""

        async def factory() -> KzgBackend:
            if workers > 0:
                return ProcessPoolBackend(workers, trusted_setup)
            return await CkzgBackend.open(trusted_setup)

        return cls(factory, logger=logger)

    @property
    def initialized(self) -> bool:
        return self._backend is not None

    async def _create(self) -> KzgBackend:
        backend = await self._factory()
        self._backend = backend
        self.log.debug("commitment backend ready: %s", type(backend).__name__)
        return backend

    async def backend(self) -> KzgBackend:
        """Get-or-init the backend; concurrent first callers share one init."""
        if self._closed:
            raise EthStorageError("commitment engine is closed")
        if self._backend is not None:
            return self._backend
        if self._init is None:
            self._init = asyncio.ensure_future(self._create())
        fut = self._init
        try:
            return await asyncio.shield(fut)
        except asyncio.CancelledError:
            raise
        except Exception:
            if self._init is fut:
                self._init = None
            raise

    # ------------------------------ operations -------------------------------

    async def commit(self, blob: bytes) -> bytes:
        return (await self.commit_many([blob]))[0]

    async def prove(self, blob: bytes, commitment: bytes) -> bytes:
        return (await self.prove_many([blob], [commitment]))[0]

    async def verify(self, blob: bytes, commitment: bytes, proof: bytes) -> bool:
        return await self.verify_many([blob], [commitment], [proof])

    async def commit_many(self, blobs: Sequence[bytes]) -> List[bytes]:
        if not blobs:
            return []
        return await (await self.backend()).commitments(blobs)

    async def prove_many(
        self, blobs: Sequence[bytes], commitments: Sequence[bytes]
    ) -> List[bytes]:
        if len(blobs) != len(commitments):
            raise ValueError("blobs and commitments must have the same length")
        if not blobs:
            return []
        return await (await self.backend()).proofs(blobs, commitments)

    async def verify_many(
        self,
        blobs: Sequence[bytes],
        commitments: Sequence[bytes],
        proofs: Sequence[bytes],
    ) -> bool:
        return await (await self.backend()).verify(blobs, commitments, proofs)

    async def storage_hashes(self, blobs: Sequence[bytes]) -> List[bytes]:
        """Commit to `blobs` and return their 24-byte storage hashes."""
        return [storage_hash(c) for c in await self.commit_many(blobs)]

    # ------------------------------- lifecycle -------------------------------

    async def close(self) -> None:
        """Release the backend. Idempotent; a no-op if never initialized."""
        if self._closed:
            return
        self._closed = True
        fut, self._init = self._init, None
        backend, self._backend = self._backend, None
        if backend is None and fut is not None:
            try:
                backend = await fut
            except Exception as e:  # noqa: BLE001
                self.log.debug("commitment backend init failed before close: %s", e)
                backend = None
        if backend is not None:
            await backend.close()

    async def __aenter__(self) -> "CommitmentEngine":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    versioned_hash = staticmethod(versioned_hash)
    storage_hash = staticmethod(storage_hash)
