"""Tests for PriorityQueue."""

from coordinator.utils import PriorityQueue


class TestPriorityQueue:
    def test_highest_priority_first(self):
        """Equal priorities keep insertion order."""
        queue = PriorityQueue()
        for label, priority in [("a", 1), ("b", 5), ("c", 3), ("d", 5), ("e", 2)]:
            queue.enqueue(label, priority)

        out = [queue.dequeue() for _ in range(5)]
        assert out == ["b", "d", "c", "e", "a"]

    def test_empty_queue(self):
        queue = PriorityQueue()
        assert queue.is_empty()
        assert queue.dequeue() is None
        assert queue.peek() is None
        assert len(queue) == 0

    def test_peek_does_not_remove(self):
        queue = PriorityQueue()
        queue.enqueue("x", 2)
        queue.enqueue("y", 4)

        assert queue.peek() == "y"
        assert queue.size() == 2

    def test_clear(self):
        queue = PriorityQueue()
        queue.enqueue("x", 2)
        queue.clear()
        assert queue.is_empty()
