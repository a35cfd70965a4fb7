"""
Tests for the thread-safe batch buffer.
"""

import threading

from logrelay.core.buffer import BatchBuffer


class TestBatchBuffer:
    """Test append/drain semantics."""
    
    def test_append_returns_size(self, make_record) -> None:
        buffer = BatchBuffer()
        assert buffer.append(make_record("a")) == 1
        assert buffer.append(make_record("b")) == 2
        assert len(buffer) == 2
    
    def test_drain_returns_arrival_order_and_clears(self, make_record) -> None:
        buffer = BatchBuffer()
        for message in ("first", "second", "third"):
            buffer.append(make_record(message))
        
        drained = buffer.drain_all()
        
        assert [record.message for record in drained] == ["first", "second", "third"]
        assert len(buffer) == 0
        assert buffer.drain_all() == []
    
    def test_drain_empty_buffer(self) -> None:
        assert BatchBuffer().drain_all() == []
    
    def test_concurrent_appends_never_lose_records(self, make_record) -> None:
        """Test N concurrent appends drain as exactly N records."""
        buffer = BatchBuffer()
        threads_count = 8
        per_thread = 250
        start = threading.Barrier(threads_count)
        
        def producer(index: int) -> None:
            start.wait()
            for i in range(per_thread):
                buffer.append(make_record(f"{index}:{i}"))
        
        threads = [threading.Thread(target=producer, args=(n,)) for n in range(threads_count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        
        drained = buffer.drain_all()
        
        assert len(drained) == threads_count * per_thread
        
        # Per-producer order is preserved
        seen = {n: [] for n in range(threads_count)}
        for record in drained:
            index, i = record.message.split(":")
            seen[int(index)].append(int(i))
        for sequence in seen.values():
            assert sequence == list(range(per_thread))
