"""
Fixed-capacity ring buffer for parsed events.
"""

from typing import Generic, Iterator, TypeVar

from logwatch.monitoring.errors import BufferOverflow
from logwatch.monitoring.schemas import OverflowPolicy

T = TypeVar("T")


class CircularBuffer(Generic[T]):
    """Ring store with O(1) push and oldest-first eviction.

    Under ``OverflowPolicy.RAISE`` a push into a full buffer raises
    ``BufferOverflow`` and leaves the contents untouched.
    """

    def __init__(self, capacity: int, overflow_policy: OverflowPolicy = OverflowPolicy.DISCARD_OLDEST):
        if not isinstance(capacity, int) or isinstance(capacity, bool) or capacity <= 0:
            raise ValueError(f"Capacity must be a positive integer, got: {capacity!r}")

        self._capacity = capacity
        self._policy = OverflowPolicy(overflow_policy)
        self._items: list[T | None] = [None] * capacity
        self._head = 0
        self._size = 0

    @property
    def max_size(self) -> int:
        return self._capacity

    @property
    def size(self) -> int:
        return self._size

    @property
    def overflow_policy(self) -> OverflowPolicy:
        return self._policy

    def __len__(self) -> int:
        return self._size

    def __iter__(self) -> Iterator[T]:
        for i in range(self._size):
            yield self._items[(self._head + i) % self._capacity]  # type: ignore[misc]

    def is_full(self) -> bool:
        return self._size == self._capacity

    def is_empty(self) -> bool:
        return self._size == 0

    def push(self, item: T) -> T | None:
        """Append an item.

        Returns:
            The evicted item when the buffer was full, else None
        """
        displaced = None
        if self.is_full():
            if self._policy is OverflowPolicy.RAISE:
                raise BufferOverflow(self._capacity)
            displaced = self._items[self._head]
            self._items[self._head] = item
            self._head = (self._head + 1) % self._capacity
            return displaced

        self._items[(self._head + self._size) % self._capacity] = item
        self._size += 1
        return displaced

    def pop(self) -> T | None:
        """Remove and return the oldest item (None when empty)."""
        if self._size == 0:
            return None
        item = self._items[self._head]
        self._items[self._head] = None
        self._head = (self._head + 1) % self._capacity
        self._size -= 1
        return item

    def get(self, index: int) -> T | None:
        """Item at logical position ``index`` (0 = oldest), or None."""
        if index < 0 or index >= self._size:
            return None
        return self._items[(self._head + index) % self._capacity]

    def get_all(self) -> list[T]:
        """Snapshot from oldest to newest."""
        return list(self)

    def slice(self, start: int = 0, end: int | None = None) -> list[T]:
        """Snapshot of logical positions ``[start, end)``."""
        end = self._size if end is None else min(end, self._size)
        return [self._items[(self._head + i) % self._capacity] for i in range(max(start, 0), end)]  # type: ignore[misc]

    def clear(self) -> None:
        self._items = [None] * self._capacity
        self._head = 0
        self._size = 0
