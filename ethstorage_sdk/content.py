"""
Byte sources for uploads.

Uploads never need the whole content in memory at once: planners work from
`size` and orchestrators pull `[start, end)` ranges as batches are prepared.
"""

from __future__ import annotations

import os
from typing import Protocol, Union, runtime_checkable

from .errors import ValidationError

__all__ = ["ContentSource", "BytesContent", "FileContent", "as_content"]


@runtime_checkable
class ContentSource(Protocol):
    @property
    def size(self) -> int: ...

    def read(self, start: int, end: int) -> bytes: ...


class BytesContent:
    def __init__(self, data: Union[bytes, bytearray, memoryview]) -> None:
        self._data = bytes(data)

    @property
    def size(self) -> int:
        return len(self._data)

    def read(self, start: int, end: int) -> bytes:
        return self._data[start:end]


class FileContent:
    """A local file; size is taken once at construction."""

    def __init__(self, path: Union[str, "os.PathLike[str]"]) -> None:
        self.path = os.fspath(path)
        if not os.path.isfile(self.path):
            raise ValidationError(f"not a file: {self.path}")
        self._size = os.path.getsize(self.path)

    @property
    def size(self) -> int:
        return self._size

    def read(self, start: int, end: int) -> bytes:
        end = min(end, self._size)
        if start >= end:
            return b""
        with open(self.path, "rb") as f:
            f.seek(start)
            return f.read(end - start)


def as_content(obj: object) -> ContentSource:
    """bytes-like -> BytesContent, os.PathLike -> FileContent, sources pass through."""
    if isinstance(obj, (bytes, bytearray, memoryview)):
        return BytesContent(obj)
    if isinstance(obj, os.PathLike):
        return FileContent(obj)
    if isinstance(obj, ContentSource):
        return obj
    raise ValidationError(
        f"invalid upload content of type {type(obj).__name__}; pass bytes, a path or a ContentSource"
    )
