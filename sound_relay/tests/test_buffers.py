"""
Tests for the buffer pool and transfer queue.
"""

import threading
import time

import pytest

from sound_relay.buffers import BufferPool, TransferInterrupted, TransferQueue


class TestBufferPool:
    """Tests for BufferPool."""

    def test_prefill(self):
        pool = BufferPool(buffer_size=16, initial_count=4)
        assert len(pool) == 4
        buffer = pool.try_acquire()
        assert buffer == bytearray(16)
        assert len(pool) == 3

    def test_try_acquire_empty_returns_none(self):
        pool = BufferPool(buffer_size=8)
        assert pool.try_acquire() is None

    def test_acquire_allocates_on_miss(self):
        pool = BufferPool(buffer_size=8, initial_count=1)
        first = pool.acquire()
        second = pool.acquire()
        assert len(second) == 8
        assert first is not second
        assert pool.stats.allocations == 1

    def test_release_grows_pool(self):
        pool = BufferPool(buffer_size=8, initial_count=1)
        buffers = [pool.acquire() for _ in range(3)]
        for buffer in buffers:
            pool.release(buffer)
        assert len(pool) == 3

    def test_fifo_reuse(self):
        pool = BufferPool(buffer_size=4)
        a, b = bytearray(4), bytearray(4)
        pool.release(a)
        pool.release(b)
        assert pool.acquire() is a
        assert pool.acquire() is b

    def test_release_wrong_size_raises(self):
        pool = BufferPool(buffer_size=8)
        with pytest.raises(ValueError):
            pool.release(bytearray(4))

    def test_get_waits_for_release_without_allocating(self):
        pool = BufferPool(buffer_size=8, initial_count=1)
        held = pool.get()
        received = []

        thread = threading.Thread(target=lambda: received.append(pool.get()))
        thread.start()
        time.sleep(0.05)
        assert received == []

        pool.release(held)
        thread.join(timeout=2.0)
        assert received == [held]
        assert pool.stats.allocations == 0

    def test_interrupt_wakes_blocked_get(self):
        pool = BufferPool(buffer_size=8)
        errors = []

        def taker():
            try:
                pool.get()
            except TransferInterrupted as e:
                errors.append(e)

        thread = threading.Thread(target=taker)
        thread.start()
        time.sleep(0.05)
        pool.interrupt()
        thread.join(timeout=2.0)

        assert not thread.is_alive()
        assert len(errors) == 1

    def test_invalid_sizes(self):
        with pytest.raises(ValueError):
            BufferPool(buffer_size=0)
        with pytest.raises(ValueError):
            BufferPool(buffer_size=8, initial_count=-1)


class TestTransferQueue:
    """Tests for TransferQueue."""

    def test_fifo_order(self):
        queue = TransferQueue()
        items = [bytearray([i]) for i in range(5)]
        for item in items:
            queue.put(item)
        assert [queue.get() for _ in range(5)] == items
        assert queue.get_nowait() is None

    def test_stats(self):
        queue = TransferQueue()
        for i in range(3):
            queue.put(bytearray([i]))
        queue.get()
        stats = queue.stats
        assert stats.puts == 3
        assert stats.gets == 1
        assert stats.high_water == 3
        assert stats.current_fill == 2

    def test_get_blocks_until_put(self):
        queue = TransferQueue()
        received = []

        def consumer():
            received.append(queue.get())

        thread = threading.Thread(target=consumer)
        thread.start()
        time.sleep(0.05)
        assert received == []

        item = bytearray(b"x")
        queue.put(item)
        thread.join(timeout=2.0)
        assert received == [item]

    def test_interrupt_wakes_blocked_get(self):
        queue = TransferQueue()
        errors = []

        def consumer():
            try:
                queue.get()
            except TransferInterrupted as e:
                errors.append(e)

        thread = threading.Thread(target=consumer)
        thread.start()
        time.sleep(0.05)
        queue.interrupt()
        thread.join(timeout=2.0)

        assert not thread.is_alive()
        assert len(errors) == 1
        assert queue.stats.interruptions == 1

    def test_interrupt_wakes_blocked_put(self):
        queue = TransferQueue(maxsize=1)
        queue.put(bytearray(b"a"))
        errors = []

        def producer():
            try:
                queue.put(bytearray(b"b"))
            except TransferInterrupted as e:
                errors.append(e)

        thread = threading.Thread(target=producer)
        thread.start()
        time.sleep(0.05)
        queue.interrupt()
        thread.join(timeout=2.0)

        assert len(errors) == 1
        # The interrupted item was never added
        assert len(queue) == 1

    def test_bounded_put_resumes_after_get(self):
        queue = TransferQueue(maxsize=1)
        queue.put(bytearray(b"a"))

        thread = threading.Thread(target=queue.put, args=(bytearray(b"b"),))
        thread.start()
        time.sleep(0.05)
        assert thread.is_alive()
        assert queue.get() == bytearray(b"a")
        thread.join(timeout=2.0)
        assert queue.get() == bytearray(b"b")

    def test_interrupt_does_not_affect_later_calls(self):
        queue = TransferQueue()
        queue.interrupt()
        item = bytearray(b"z")
        queue.put(item)
        assert queue.get() is item

    def test_retry_after_interrupt_loses_nothing(self):
        """A consumer that retries after interruption still sees every item once."""
        queue = TransferQueue()
        received = []
        stop = threading.Event()

        def consumer():
            while len(received) < 50:
                try:
                    received.append(queue.get())
                except TransferInterrupted:
                    if stop.is_set():
                        return

        thread = threading.Thread(target=consumer)
        thread.start()
        items = [bytearray([i]) for i in range(50)]
        for i, item in enumerate(items):
            queue.put(item)
            if i % 10 == 0:
                queue.interrupt()
        thread.join(timeout=5.0)

        assert received == items

    def test_drain_to_pool(self):
        pool = BufferPool(buffer_size=2)
        queue = TransferQueue()
        for _ in range(3):
            queue.put(bytearray(2))
        assert queue.drain_to(pool) == 3
        assert len(queue) == 0
        assert len(pool) == 3

    def test_clear(self):
        queue = TransferQueue()
        queue.put(bytearray(1))
        queue.put(bytearray(1))
        assert queue.clear() == 2
        assert queue.qsize() == 0
