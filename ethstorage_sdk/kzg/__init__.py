from .backend import CkzgBackend, KzgBackend, ProcessPoolBackend, default_trusted_setup_path
from .engine import CommitmentEngine, storage_hash, versioned_hash

__all__ = [
    "KzgBackend",
    "CkzgBackend",
    "ProcessPoolBackend",
    "default_trusted_setup_path",
    "CommitmentEngine",
    "versioned_hash",
    "storage_hash",
]
