"""
Blob encodings.

Two incompatible layouts pack raw bytes into fixed 131,072-byte blobs
(4096 field elements x 32 bytes):

Legacy (padded)
    Each field element carries 31 payload bytes at offset 1; byte 0 stays zero
    so the element is below the BLS12-381 modulus. Decoding cannot tell genuine
    trailing zero bytes from padding, so it trims them.

Compact (OP-style)
    1024 rounds of 4 field elements. Each round reads four 31-byte segments
    plus three extra bytes x, y, z, and spreads those 24 bits as four 6-bit
    tags written to byte 0 of each element:

        A = x & 0x3F
        B = (y & 0x0F) | ((x & 0xC0) >> 2)
        C = z & 0x3F
        D = ((z & 0xC0) >> 2) | ((y & 0xF0) >> 4)

    Round 0 starts with version byte 0 and a big-endian uint24 length, so
    decoding returns exactly the encoded bytes.
"""

from __future__ import annotations

from typing import List, Sequence, Union

from ..constants import (
    BLOB_SIZE,
    BYTES_PER_FIELD_ELEMENT,
    COMPACT_ENCODING_VERSION,
    COMPACT_ROUNDS,
    FIELD_ELEMENTS_PER_BLOB,
    LEGACY_BLOB_DATA_SIZE,
    LEGACY_BYTES_PER_FIELD_ELEMENT,
    OP_BLOB_DATA_SIZE,
)
from ..errors import CodecError
from ..utils.bytes import BytesLike, pad_right

__all__ = [
    "encode_blobs",
    "decode_blob",
    "decode_blobs",
    "encode_op_blob",
    "encode_op_blobs",
    "decode_op_blob",
    "decode_op_blobs",
    "split_blobs",
]

_TAG_MASK = 0b1100_0000
_SEGMENT = BYTES_PER_FIELD_ELEMENT - 1  # 31


def split_blobs(blobs: Union[BytesLike, Sequence[BytesLike]]) -> List[bytes]:
    """Accept a list of blobs or their concatenation; return a list of blob-sized slices."""
    if isinstance(blobs, (bytes, bytearray, memoryview)):
        raw = bytes(blobs)
        if not raw:
            raise CodecError("invalid blobs: empty input")
        return [raw[i : i + BLOB_SIZE] for i in range(0, len(raw), BLOB_SIZE)]
    out = [bytes(b) for b in blobs]
    if not out:
        raise CodecError("invalid blobs: empty input")
    return out


# --------------------------------- legacy ------------------------------------


def encode_blobs(data: BytesLike) -> List[bytes]:
    """Pack `data` into legacy blobs, 31 bytes per field element."""
    raw = bytes(data)
    if not raw:
        raise CodecError("invalid blob data: empty input")

    blobs: List[bytes] = []
    for start in range(0, len(raw), LEGACY_BLOB_DATA_SIZE):
        piece = raw[start : start + LEGACY_BLOB_DATA_SIZE]
        blob = bytearray(BLOB_SIZE)
        for field_index, i in enumerate(range(0, len(piece), LEGACY_BYTES_PER_FIELD_ELEMENT)):
            seg = piece[i : i + LEGACY_BYTES_PER_FIELD_ELEMENT]
            off = field_index * BYTES_PER_FIELD_ELEMENT + 1
            blob[off : off + len(seg)] = seg
        blobs.append(bytes(blob))
    return blobs


def decode_blob(blob: BytesLike) -> bytes:
    """
    Reverse the legacy layout of one blob.

    Short input is zero-extended to a full blob first. Trailing zero bytes are
    trimmed, so payloads ending in 0x00 do not survive a round trip.
    """
    raw = bytes(blob)
    if not raw:
        raise CodecError("invalid blob data: empty input")
    if len(raw) > BLOB_SIZE:
        raise CodecError(f"blob too large: {len(raw)} > {BLOB_SIZE}")
    raw = pad_right(raw, BLOB_SIZE)

    out = b"".join(
        raw[j + 1 : j + BYTES_PER_FIELD_ELEMENT]
        for j in range(0, FIELD_ELEMENTS_PER_BLOB * BYTES_PER_FIELD_ELEMENT, BYTES_PER_FIELD_ELEMENT)
    )
    return out.rstrip(b"\x00")


def decode_blobs(blobs: Union[BytesLike, Sequence[BytesLike]]) -> bytes:
    """Decode and concatenate legacy blobs (list, or one concatenated buffer)."""
    return b"".join(decode_blob(b) for b in split_blobs(blobs))


# --------------------------------- compact -----------------------------------


class _CompactWriter:
    """Byte-exact writer enforcing the tag / segment offset discipline."""

    __slots__ = ("blob", "offset")

    def __init__(self) -> None:
        self.blob = bytearray(BLOB_SIZE)
        self.offset = 0

    def write1(self, v: int) -> None:
        if self.offset % BYTES_PER_FIELD_ELEMENT != 0:
            raise CodecError(f"blob encoding: invalid byte write offset: {self.offset}")
        if v & _TAG_MASK:
            raise CodecError(f"blob encoding: invalid 6 bit value: {v:#010b}")
        self.blob[self.offset] = v
        self.offset += 1

    def write31(self, seg: bytes) -> None:
        if self.offset % BYTES_PER_FIELD_ELEMENT != 1:
            raise CodecError(f"blob encoding: invalid bytes31 write offset: {self.offset}")
        self.blob[self.offset : self.offset + _SEGMENT] = seg
        self.offset += _SEGMENT


class _Reader:
    __slots__ = ("data", "offset")

    def __init__(self, data: bytes) -> None:
        self.data = data
        self.offset = 0

    @property
    def exhausted(self) -> bool:
        return self.offset >= len(self.data)

    def read1(self) -> int:
        if self.exhausted:
            return 0
        v = self.data[self.offset]
        self.offset += 1
        return v

    def read31(self) -> bytes:
        seg = self.data[self.offset : self.offset + _SEGMENT]
        self.offset += len(seg)
        return pad_right(seg, _SEGMENT)


def encode_op_blob(data: BytesLike) -> bytes:
    """Encode at most OP_BLOB_DATA_SIZE bytes into one compact blob."""
    raw = bytes(data)
    if len(raw) > OP_BLOB_DATA_SIZE:
        raise CodecError(f"too much data to encode in one blob, len={len(raw)}")

    r = _Reader(raw)
    w = _CompactWriter()

    for rnd in range(COMPACT_ROUNDS):
        if r.exhausted:
            break
        if rnd == 0:
            head = raw[: _SEGMENT - 4]
            r.offset = len(head)
            seg = pad_right(
                bytes([COMPACT_ENCODING_VERSION]) + len(raw).to_bytes(3, "big") + head,
                _SEGMENT,
            )
        else:
            seg = r.read31()

        x = r.read1()
        w.write1(x & 0x3F)
        w.write31(seg)

        seg = r.read31()
        y = r.read1()
        w.write1((y & 0x0F) | ((x & 0xC0) >> 2))
        w.write31(seg)

        seg = r.read31()
        z = r.read1()
        w.write1(z & 0x3F)
        w.write31(seg)

        seg = r.read31()
        w.write1(((z & 0xC0) >> 2) | ((y & 0xF0) >> 4))
        w.write31(seg)

    if not r.exhausted:
        raise CodecError(
            f"expected to fit data but failed, read offset: {r.offset}, len: {len(raw)}"
        )
    return bytes(w.blob)


def encode_op_blobs(data: BytesLike) -> List[bytes]:
    """Split `data` into OP_BLOB_DATA_SIZE pieces and encode each as a compact blob."""
    raw = bytes(data)
    if not raw:
        raise CodecError("invalid blob data: empty input")
    return [
        encode_op_blob(raw[i : i + OP_BLOB_DATA_SIZE])
        for i in range(0, len(raw), OP_BLOB_DATA_SIZE)
    ]


def decode_op_blob(blob: BytesLike) -> bytes:
    """Invert `encode_op_blob`; the embedded length decides how many bytes come back."""
    b = bytes(blob)
    if len(b) != BLOB_SIZE:
        raise CodecError(f"invalid blob size: {len(b)} != {BLOB_SIZE}")
    if b[1] != COMPACT_ENCODING_VERSION:
        raise CodecError(f"invalid encoding version: expected {COMPACT_ENCODING_VERSION}, got {b[1]}")
    length = int.from_bytes(b[2:5], "big")
    if length > OP_BLOB_DATA_SIZE:
        raise CodecError(f"invalid length for blob: {length}")

    # Every round yields 4 x 31 segment bytes plus 3 reassembled bytes.
    out = bytearray()
    ipos = 0
    for rnd in range(COMPACT_ROUNDS):
        if rnd > 0 and len(out) >= length:
            break
        tags = []
        segs = []
        for _ in range(4):
            tag = b[ipos]
            if tag & _TAG_MASK:
                raise CodecError(f"invalid field element at offset {ipos}: tag {tag:#04x}")
            tags.append(tag)
            segs.append(b[ipos + 1 : ipos + BYTES_PER_FIELD_ELEMENT])
            ipos += BYTES_PER_FIELD_ELEMENT

        x = (tags[0] & 0x3F) | ((tags[1] & 0x30) << 2)
        y = (tags[1] & 0x0F) | ((tags[3] & 0x0F) << 4)
        z = (tags[2] & 0x3F) | ((tags[3] & 0x30) << 2)

        first = segs[0][4:] if rnd == 0 else segs[0]
        out += first
        out.append(x)
        out += segs[1]
        out.append(y)
        out += segs[2]
        out.append(z)
        out += segs[3]

    if any(out[length:]):
        raise CodecError("blob decoding: unexpected non-zero byte after payload")
    if any(b[ipos:]):
        raise CodecError(f"blob decoding: unexpected non-zero byte after offset {ipos}")
    return bytes(out[:length])


def decode_op_blobs(blobs: Union[BytesLike, Sequence[BytesLike]]) -> bytes:
    """Decode and concatenate compact blobs."""
    return b"".join(decode_op_blob(b) for b in split_blobs(blobs))
