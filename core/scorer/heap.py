"""
Bounded top-K structure ordered by (score desc, id asc).
"""

import heapq
from typing import Any, Generic, List, Optional, TypeVar

T = TypeVar('T')


class _Entry(Generic[T]):
    __slots__ = ('score', 'item_id', 'item')

    def __init__(self, score: float, item_id: Any, item: T):
        self.score = score
        self.item_id = item_id
        self.item = item

    def __lt__(self, other: "_Entry") -> bool:
        # "Less" means ranks worse, so the heap root is the entry to evict next
        if self.score != other.score:
            return self.score < other.score
        return self.item_id > other.item_id


class TopKHeap(Generic[T]):
    """
    Keeps the k best items seen so far.

    Ties on score are broken by ascending id, so the kept set matches a full
    sort of every pushed item by (-score, id) truncated to k.
    """

    def __init__(self, capacity: int):
        self.capacity = max(0, capacity)
        self._heap: List[_Entry[T]] = []

    def __len__(self) -> int:
        return len(self._heap)

    @property
    def is_full(self) -> bool:
        return len(self._heap) >= self.capacity

    @property
    def threshold(self) -> Optional[float]:
        """Score of the worst kept item once full; None while there is room."""
        if not self.capacity or not self.is_full:
            return None
        return self._heap[0].score

    def push(self, score: float, item_id: Any, item: T) -> bool:
        """Offer an item. Returns True if it was kept."""
        if self.capacity == 0:
            return False
        entry = _Entry(score, item_id, item)
        if len(self._heap) < self.capacity:
            heapq.heappush(self._heap, entry)
            return True
        if self._heap[0] < entry:
            heapq.heapreplace(self._heap, entry)
            return True
        return False

    def sorted_items(self) -> List[T]:
        ordered = sorted(self._heap, key=lambda e: (-e.score, e.item_id))
        return [e.item for e in ordered]
