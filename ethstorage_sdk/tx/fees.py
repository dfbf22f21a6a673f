"""
Fee arithmetic (pure functions, integers only).

Blob base fee (EIP-4844):

    price = fake_exponential(MIN_BLOB_GASPRICE, excess_blob_gas, BLOB_GASPRICE_UPDATE_FRACTION)

`blob_gas_price` adds a 10% safety margin on top, and `bump` applies the
caller's gas-increase percentage as `value * (100 + pct) // 100`.
"""

from __future__ import annotations

from ..constants import (
    BLOB_GASPRICE_UPDATE_FRACTION,
    CALLDATA_OVERHEAD,
    MIN_BLOB_GASPRICE,
    WEI_PER_ETHER,
)

__all__ = [
    "fake_exponential",
    "blob_gas_price",
    "bump",
    "with_gas_margin",
    "calldata_storage_fee",
]


def fake_exponential(factor: int, numerator: int, denominator: int) -> int:
    """Integer approximation of factor * e ** (numerator / denominator)."""
    if denominator <= 0:
        raise ValueError("denominator must be > 0")
    i = 1
    output = 0
    acc = factor * denominator
    while acc > 0:
        output += acc
        acc = (acc * numerator) // (denominator * i)
        i += 1
    return output // denominator


def blob_gas_price(excess_blob_gas: int) -> int:
    """Blob base fee for `excess_blob_gas`, plus 10%."""
    base = fake_exponential(MIN_BLOB_GASPRICE, int(excess_blob_gas), BLOB_GASPRICE_UPDATE_FRACTION)
    return base * 11 // 10


def bump(value: int, pct: int) -> int:
    return int(value) * (100 + int(pct)) // 100


def with_gas_margin(gas: int) -> int:
    """Estimated gas limit plus 10% headroom."""
    return int(gas) * 11 // 10


def calldata_storage_fee(length: int, free_size: int) -> int:
    """
    Storage fee (wei) for one calldata chunk of `length` bytes.

    Chunks up to `free_size` are free; larger ones cost
    floor((length + overhead) / 24 KiB) ether.
    """
    if length <= free_size:
        return 0
    return ((length + CALLDATA_OVERHEAD) // (24 * 1024)) * WEI_PER_ETHER
