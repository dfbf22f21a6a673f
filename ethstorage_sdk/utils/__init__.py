"""
Small dependency-light helpers shared across the SDK: hex/bytes conversion,
hashing and the classified retry policy.
"""

from .bytes import BytesLike, ensure_bytes, from_hex, hex_to_int, int_to_hex, to_hex
from .hash import keccak256, keccak256_hex, key_hash, sha256
from .retry import RetryPolicy, aretry_call, aretryable, backoff_delay

__all__ = [
    "BytesLike",
    "ensure_bytes",
    "from_hex",
    "hex_to_int",
    "int_to_hex",
    "to_hex",
    "keccak256",
    "keccak256_hex",
    "key_hash",
    "sha256",
    "RetryPolicy",
    "aretry_call",
    "aretryable",
    "backoff_delay",
]
