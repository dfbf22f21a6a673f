from __future__ import annotations

from typing import Dict, Generic, List, TypeVar

__all__ = ["OrderedBuffer"]

T = TypeVar("T")


class OrderedBuffer(Generic[T]):
    """
    Index-keyed reorder buffer.

    Items arrive in any order; `put` returns the longest contiguous run that
    became releasable, starting at the next expected index.

        buf = OrderedBuffer()
        buf.put(2, "c")  -> []
        buf.put(0, "a")  -> ["a"]
        buf.put(1, "b")  -> ["b", "c"]
    """

    def __init__(self, start: int = 0) -> None:
        self._next = start
        self._pending: Dict[int, T] = {}

    @property
    def next_index(self) -> int:
        return self._next

    @property
    def pending(self) -> int:
        return len(self._pending)

    def put(self, index: int, item: T) -> List[T]:
        if index < self._next or index in self._pending:
            raise ValueError(f"index {index} already delivered or buffered")
        self._pending[index] = item
        out: List[T] = []
        while self._next in self._pending:
            out.append(self._pending.pop(self._next))
            self._next += 1
        return out
