from __future__ import annotations

from typing import Union

BytesLike = Union[bytes, bytearray, memoryview]


def ensure_bytes(data: Union[BytesLike, str]) -> bytes:
    """
    Ensure input is bytes.

    Accepts:
      - bytes / bytearray / memoryview  -> bytes(data)
      - str: treated as hex; optional '0x' prefix; even-length enforced

    Raises:
      ValueError on invalid hex strings.
    """
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data)
    if isinstance(data, str):
        return from_hex(data)
    raise TypeError(f"Unsupported type for ensure_bytes: {type(data)!r}")


def to_hex(b: BytesLike, prefix: bool = True) -> str:
    """
    Bytes -> hex string (lowercase). Prefix with '0x' by default.
    """
    s = bytes(b).hex()
    return f"0x{s}" if prefix else s


def from_hex(s: str) -> bytes:
    """
    Hex string (optionally '0x' prefixed) -> bytes.

    Enforces even-length (nibbles must pair to bytes) and is case agnostic.
    """
    if not isinstance(s, str):
        raise TypeError("from_hex expects a string")
    if s.startswith(("0x", "0X")):
        s = s[2:]
    if len(s) % 2 != 0:
        raise ValueError("hex string must have even length")
    try:
        return bytes.fromhex(s)
    except ValueError as e:
        raise ValueError(f"invalid hex string: {e}") from e


def hex_to_int(value: Union[str, int, None], default: int = 0) -> int:
    """
    JSON-RPC quantity -> int. Accepts 0x-hex strings, decimal strings and ints.
    `None` / "" / "0x" map to `default`.
    """
    if value is None:
        return default
    if isinstance(value, int):
        return value
    s = str(value).strip()
    if s in ("", "0x", "0X"):
        return default
    if s.startswith(("0x", "0X")):
        return int(s, 16)
    return int(s, 10)


def int_to_hex(n: int) -> str:
    """int -> JSON-RPC quantity (minimal 0x-hex)."""
    if n < 0:
        raise ValueError("quantities must be non-negative")
    return hex(n)


def pad_right(b: BytesLike, size: int) -> bytes:
    """Zero-extend `b` on the right up to `size` bytes (no truncation)."""
    raw = bytes(b)
    if len(raw) >= size:
        return raw
    return raw + b"\x00" * (size - len(raw))


__all__ = [
    "BytesLike",
    "ensure_bytes",
    "to_hex",
    "from_hex",
    "hex_to_int",
    "int_to_hex",
    "pad_right",
]
