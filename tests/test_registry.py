"""
Tests for the stream id allocator and the stream registry.
"""

import threading
from unittest.mock import Mock

from exchange.registry import StreamHandle, StreamIdAllocator, StreamRegistry


class TestStreamIdAllocator:

    def test_starts_at_one_and_increases(self):
        ids = StreamIdAllocator()
        assert [ids.next() for _ in range(5)] == [1, 2, 3, 4, 5]

    def test_concurrent_allocation_is_unique(self):
        ids = StreamIdAllocator()
        results = []
        lock = threading.Lock()

        def worker():
            mine = [ids.next() for _ in range(500)]
            with lock:
                results.extend(mine)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 4000
        assert sorted(results) == list(range(1, 4001))


class TestStreamRegistry:

    def _handle(self, stream_id, user_stream=False):
        return StreamHandle(stream_id=stream_id, connection=Mock(), user_stream=user_stream)

    def test_find_by_id(self):
        registry = StreamRegistry()
        first, second = self._handle(1), self._handle(2)
        registry.add(first)
        registry.add(second)

        assert registry.find_by_id(2) is second
        assert registry.find_by_id(3) is None

    def test_find_user_stream(self):
        registry = StreamRegistry()
        registry.add(self._handle(1))
        assert registry.find_user_stream() is None

        user = self._handle(2, user_stream=True)
        registry.add(user)
        assert registry.find_user_stream() is user

    def test_detach_user_stream_keeps_handle_registered(self):
        registry = StreamRegistry()
        user = self._handle(1, user_stream=True)
        registry.add(user)

        assert registry.detach_user_stream() is user
        assert registry.find_user_stream() is None
        assert registry.find_by_id(1) is user
        assert registry.detach_user_stream() is None

    def test_remove_by_connection_is_idempotent(self):
        registry = StreamRegistry()
        handle = self._handle(1)
        other = self._handle(2)
        registry.add(handle)
        registry.add(other)

        assert registry.remove_by_connection(handle.connection) is True
        assert registry.remove_by_connection(handle.connection) is False
        assert len(registry) == 1
        assert registry.find_by_id(2) is other

    def test_remove_unknown_connection(self):
        registry = StreamRegistry()
        registry.add(self._handle(1))
        assert registry.remove_by_connection(Mock()) is False
        assert len(registry) == 1

    def test_close_all_closes_without_removing(self):
        registry = StreamRegistry()
        handles = [self._handle(i) for i in range(1, 4)]
        for h in handles:
            registry.add(h)

        registry.close_all()

        for h in handles:
            h.connection.close.assert_called_once_with()
        assert len(registry) == 3

    def test_close_all_tolerates_removal_during_close(self):
        """Close callbacks removing entries must not disturb the iteration."""
        registry = StreamRegistry()
        handles = [self._handle(i) for i in range(1, 4)]
        for h in handles:
            h.connection.close.side_effect = (
                lambda conn=h.connection: registry.remove_by_connection(conn)
            )
            registry.add(h)

        registry.close_all()

        assert len(registry) == 0
        for h in handles:
            h.connection.close.assert_called_once_with()

    def test_close_all_on_empty_registry(self):
        StreamRegistry().close_all()
