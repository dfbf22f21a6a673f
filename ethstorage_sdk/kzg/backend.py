"""
Compute backends for KZG commitments and proofs (EIP-4844, via ckzg).

Commitment and proof computation is CPU-bound, so both backends keep it off
the event loop:

- CkzgBackend        : in-process; each call runs in a worker thread
                       (`asyncio.to_thread`). ckzg releases the GIL.
- ProcessPoolBackend : a `ProcessPoolExecutor` whose workers each load the
                       trusted setup once in their initializer.

Backends are interchangeable behind the `KzgBackend` interface; the
`CommitmentEngine` never assumes which one is active.
"""

from __future__ import annotations

import asyncio
import logging
import os
from concurrent.futures import ProcessPoolExecutor
from importlib import resources
from typing import Any, List, Optional, Protocol, Sequence, runtime_checkable

import ckzg

from ..errors import ConfigError

__all__ = [
    "KzgBackend",
    "CkzgBackend",
    "ProcessPoolBackend",
    "default_trusted_setup_path",
]

log = logging.getLogger("ethstorage_sdk.kzg")

# eth-account ships the mainnet ceremony output next to its blob transaction code.
_SETUP_PACKAGE = "eth_account.typed_transactions.blob_transactions"
_SETUP_FILE = "kzg_trusted_setup.txt"


def default_trusted_setup_path() -> str:
    """Locate the trusted setup bundled with eth-account."""
    try:
        path = resources.files(_SETUP_PACKAGE).joinpath(_SETUP_FILE)
    except ModuleNotFoundError as e:
        raise ConfigError(
            "no trusted setup configured and eth-account does not provide one"
        ) from e
    if not path.is_file():
        raise ConfigError(
            f"trusted setup not found at {path}; set ETHSTORAGE_TRUSTED_SETUP"
        )
    return str(path)


def _resolve_setup(path: Optional[str]) -> str:
    if path is None:
        return default_trusted_setup_path()
    if not os.path.isfile(path):
        raise ConfigError(f"trusted setup file does not exist: {path}")
    return path


@runtime_checkable
class KzgBackend(Protocol):
    async def commitments(self, blobs: Sequence[bytes]) -> List[bytes]: ...
    async def proofs(
        self, blobs: Sequence[bytes], commitments: Sequence[bytes]
    ) -> List[bytes]: ...
    async def verify(
        self,
        blobs: Sequence[bytes],
        commitments: Sequence[bytes],
        proofs: Sequence[bytes],
    ) -> bool: ...
    async def close(self) -> None: ...


# ------------------------------ pure functions -------------------------------
# Module-level so they pickle into pool workers.


def _commit_all(settings: Any, blobs: Sequence[bytes]) -> List[bytes]:
    return [bytes(ckzg.blob_to_kzg_commitment(b, settings)) for b in blobs]


def _prove_all(
    settings: Any, blobs: Sequence[bytes], commitments: Sequence[bytes]
) -> List[bytes]:
    return [
        bytes(ckzg.compute_blob_kzg_proof(b, c, settings))
        for b, c in zip(blobs, commitments)
    ]


def _verify_all(
    settings: Any,
    blobs: Sequence[bytes],
    commitments: Sequence[bytes],
    proofs: Sequence[bytes],
) -> bool:
    if not (len(blobs) == len(commitments) == len(proofs)):
        return False
    if len(blobs) == 1:
        return bool(ckzg.verify_blob_kzg_proof(blobs[0], commitments[0], proofs[0], settings))
    return bool(
        ckzg.verify_blob_kzg_proof_batch(
            b"".join(blobs), b"".join(commitments), b"".join(proofs), settings
        )
    )


# -------------------------------- in-process ---------------------------------


class CkzgBackend:
    """ckzg in the current process; calls are dispatched to worker threads."""

    def __init__(self, settings: Any) -> None:
        self._settings = settings

    @classmethod
    async def open(cls, trusted_setup: Optional[str] = None) -> "CkzgBackend":
        path = _resolve_setup(trusted_setup)
        log.debug("loading trusted setup from %s", path)
        settings = await asyncio.to_thread(ckzg.load_trusted_setup, path, 0)
        return cls(settings)

    async def commitments(self, blobs: Sequence[bytes]) -> List[bytes]:
        return await asyncio.to_thread(_commit_all, self._settings, list(blobs))

    async def proofs(
        self, blobs: Sequence[bytes], commitments: Sequence[bytes]
    ) -> List[bytes]:
        return await asyncio.to_thread(
            _prove_all, self._settings, list(blobs), list(commitments)
        )

    async def verify(
        self,
        blobs: Sequence[bytes],
        commitments: Sequence[bytes],
        proofs: Sequence[bytes],
    ) -> bool:
        return await asyncio.to_thread(
            _verify_all, self._settings, list(blobs), list(commitments), list(proofs)
        )

    async def close(self) -> None:
        self._settings = None


# ------------------------------- process pool --------------------------------

_WORKER_SETTINGS: Any = None


def _worker_init(path: str) -> None:
    global _WORKER_SETTINGS
    _WORKER_SETTINGS = ckzg.load_trusted_setup(path, 0)


def _worker_commit(blobs: List[bytes]) -> List[bytes]:
    return _commit_all(_WORKER_SETTINGS, blobs)


def _worker_prove(blobs: List[bytes], commitments: List[bytes]) -> List[bytes]:
    return _prove_all(_WORKER_SETTINGS, blobs, commitments)


def _worker_verify(
    blobs: List[bytes], commitments: List[bytes], proofs: List[bytes]
) -> bool:
    return _verify_all(_WORKER_SETTINGS, blobs, commitments, proofs)


class ProcessPoolBackend:
    """
    Multi-process backend. Blobs of one call are fanned out one per task so a
    batch of three blobs uses up to three workers.
    """

    def __init__(self, workers: int, trusted_setup: Optional[str] = None) -> None:
        if workers < 1:
            raise ConfigError("workers must be >= 1")
        path = _resolve_setup(trusted_setup)
        self._pool: Optional[ProcessPoolExecutor] = ProcessPoolExecutor(
            max_workers=workers, initializer=_worker_init, initargs=(path,)
        )
        log.debug("started kzg process pool (workers=%d)", workers)

    def _executor(self) -> ProcessPoolExecutor:
        if self._pool is None:
            raise RuntimeError("process pool backend is closed")
        return self._pool

    async def _run(self, fn: Any, *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor(), fn, *args)

    async def commitments(self, blobs: Sequence[bytes]) -> List[bytes]:
        parts = await asyncio.gather(*(self._run(_worker_commit, [b]) for b in blobs))
        return [p[0] for p in parts]

    async def proofs(
        self, blobs: Sequence[bytes], commitments: Sequence[bytes]
    ) -> List[bytes]:
        parts = await asyncio.gather(
            *(self._run(_worker_prove, [b], [c]) for b, c in zip(blobs, commitments))
        )
        return [p[0] for p in parts]

    async def verify(
        self,
        blobs: Sequence[bytes],
        commitments: Sequence[bytes],
        proofs: Sequence[bytes],
    ) -> bool:
        return await self._run(_worker_verify, list(blobs), list(commitments), list(proofs))

    async def close(self) -> None:
        pool, self._pool = self._pool, None
        if pool is not None:
            await asyncio.to_thread(pool.shutdown, True)
            log.debug("kzg process pool shut down")
