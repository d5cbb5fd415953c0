"""
Fixed-capacity circular buffer.

Holds the most recent samples; pushing onto a full buffer evicts the oldest.
"""

from collections import deque
from typing import Generic, Iterator, List, Optional, TypeVar

T = TypeVar("T")


class CircularBuffer(Generic[T]):
    """FIFO ring of at most `capacity` samples."""

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._capacity = capacity
        self._items: deque = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._capacity

    def push(self, item: T) -> Optional[T]:
        """
        Append a sample.

        Returns:
            The evicted oldest sample if the buffer was full, else None
        """
        evicted = self._items[0] if self.is_full() else None
        self._items.append(item)
        return evicted

    def oldest(self) -> Optional[T]:
        """Oldest sample currently held, or None when empty."""
        return self._items[0] if self._items else None

    def newest(self) -> Optional[T]:
        """Most recently pushed sample, or None when empty."""
        return self._items[-1] if self._items else None

    def is_full(self) -> bool:
        return len(self._items) == self._capacity

    def clear(self) -> None:
        self._items.clear()

    def to_list(self) -> List[T]:
        """Samples from oldest to newest."""
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)

    def __repr__(self) -> str:
        return f"CircularBuffer(capacity={self._capacity}, items={list(self._items)!r})"
