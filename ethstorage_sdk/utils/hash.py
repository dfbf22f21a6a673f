from __future__ import annotations

import hashlib

from eth_utils import keccak

from .bytes import BytesLike, ensure_bytes, to_hex

# --- Keccak-256 (Ethereum-style) ----------------------------------------------
# hashlib ships NIST SHA3 only; Ethereum's Keccak padding comes from eth_utils.


def keccak256(data: BytesLike) -> bytes:
    """Return Keccak-256 digest of *data* (bytes)."""
    return keccak(ensure_bytes(data))


def keccak256_hex(data: BytesLike, *, prefix: bool = True) -> str:
    """Return hex string of Keccak-256 digest (0x-prefixed by default)."""
    return to_hex(keccak256(data), prefix=prefix)


def key_hash(key: str) -> bytes:
    """Storage key of a UTF-8 string key: keccak256(utf8(key))."""
    return keccak256(key.encode("utf-8"))


# --- SHA-256 ------------------------------------------------------------------


def sha256(data: BytesLike) -> bytes:
    """Return SHA-256 digest of *data*."""
    return hashlib.sha256(ensure_bytes(data)).digest()


def sha256_hex(data: BytesLike, *, prefix: bool = True) -> str:
    return to_hex(sha256(data), prefix=prefix)


__all__ = [
    "keccak256",
    "keccak256_hex",
    "key_hash",
    "sha256",
    "sha256_hex",
]
