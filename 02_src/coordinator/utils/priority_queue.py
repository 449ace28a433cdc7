"""Max-priority queue, FIFO among equal priorities."""

import heapq
import itertools
from typing import Generic, TypeVar

T = TypeVar("T")


class PriorityQueue(Generic[T]):
    """Non-blocking priority queue. Higher priority dequeues first."""

    def __init__(self):
        self._heap: list[tuple[int, int, T]] = []
        self._counter = itertools.count()

    def enqueue(self, item: T, priority: int) -> None:
        # Insertion counter breaks ties so equal priorities stay FIFO
        heapq.heappush(self._heap, (-int(priority), next(self._counter), item))

    def dequeue(self) -> T | None:
        """Pop the most urgent item, or None when empty."""
        if not self._heap:
            return None
        return heapq.heappop(self._heap)[2]

    def peek(self) -> T | None:
        if not self._heap:
            return None
        return self._heap[0][2]

    def size(self) -> int:
        return len(self._heap)

    def is_empty(self) -> bool:
        return not self._heap

    def clear(self) -> None:
        self._heap.clear()

    def __len__(self) -> int:
        return len(self._heap)
