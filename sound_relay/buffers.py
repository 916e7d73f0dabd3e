"""
Buffer pool and transfer queue for the capture/playback pipeline.

Both collections hold fixed-size bytearrays and hand them between threads.
Ownership moves with the buffer: whoever took it out of a pool or queue is
the only one allowed to touch it until it is put back somewhere.

Usage:
    pool = BufferPool(buffer_size=2048, initial_count=50)
    queue = TransferQueue()

    # Producer thread
    buffer = pool.acquire()
    source.read(buffer, 0, len(buffer))
    queue.put(buffer)

    # Consumer thread
    buffer = queue.get()
    sink.write(buffer, 0, len(buffer))
    pool.release(buffer)

Blocking calls can be woken with interrupt(), which makes every blocked
caller raise TransferInterrupted. Callers are expected to re-check their
own stop flag and retry when they were not asked to stop.
"""

import threading
from collections import deque
from dataclasses import dataclass
from typing import Deque, Optional


class TransferInterrupted(Exception):
    """A blocking pool or queue operation was interrupted."""


@dataclass
class BufferStats:
    """Counters for pool and queue operations."""

    puts: int = 0
    gets: int = 0
    interruptions: int = 0  # Blocked calls woken by interrupt()
    allocations: int = 0  # Buffers created on pool miss
    high_water: int = 0  # Largest length seen
    current_fill: int = 0


class _BlockingFifo:
    """Thread-safe FIFO with interruptible blocking put/get."""

    def __init__(self, maxsize: int = 0):
        """
        Args:
            maxsize: Maximum number of items, 0 for unbounded
        """
        if maxsize < 0:
            raise ValueError(f"maxsize must be >= 0, got {maxsize}")
        self.maxsize = maxsize
        self._items: Deque[bytearray] = deque()
        self._lock = threading.Lock()
        self._not_empty = threading.Condition(self._lock)
        self._not_full = threading.Condition(self._lock)
        # Bumped on every interrupt(); a waiter that sees it change gives up
        self._interrupt_epoch = 0
        self._stats = BufferStats()

    def _full(self) -> bool:
        return 0 < self.maxsize <= len(self._items)

    def _append(self, item: bytearray):
        self._items.append(item)
        self._stats.puts += 1
        if len(self._items) > self._stats.high_water:
            self._stats.high_water = len(self._items)
        self._not_empty.notify()

    def _popleft(self) -> bytearray:
        item = self._items.popleft()
        self._stats.gets += 1
        self._not_full.notify()
        return item

    def put(self, item: bytearray):
        """
        Append an item, blocking while the FIFO is full.

        Raises:
            TransferInterrupted: if interrupt() was called while blocked
        """
        with self._lock:
            epoch = self._interrupt_epoch
            while self._full():
                self._not_full.wait()
                if self._interrupt_epoch != epoch:
                    self._stats.interruptions += 1
                    raise TransferInterrupted("put interrupted")
            self._append(item)

    def get(self) -> bytearray:
        """
        Remove and return the oldest item, blocking while empty.

        Raises:
            TransferInterrupted: if interrupt() was called while blocked
        """
        with self._lock:
            epoch = self._interrupt_epoch
            while not self._items:
                self._not_empty.wait()
                if self._interrupt_epoch != epoch:
                    self._stats.interruptions += 1
                    raise TransferInterrupted("get interrupted")
            return self._popleft()

    def get_nowait(self) -> Optional[bytearray]:
        """Remove and return the oldest item, or None if empty."""
        with self._lock:
            if not self._items:
                return None
            return self._popleft()

    def interrupt(self):
        """Wake every blocked put/get; each raises TransferInterrupted."""
        with self._lock:
            self._interrupt_epoch += 1
            self._not_empty.notify_all()
            self._not_full.notify_all()

    def qsize(self) -> int:
        with self._lock:
            return len(self._items)

    def __len__(self) -> int:
        return self.qsize()

    def clear(self) -> int:
        """Drop all items. Returns the number dropped."""
        with self._lock:
            dropped = len(self._items)
            self._items.clear()
            self._not_full.notify_all()
            return dropped

    @property
    def stats(self) -> BufferStats:
        with self._lock:
            self._stats.current_fill = len(self._items)
            return self._stats


class TransferQueue(_BlockingFifo):
    """
    Strict FIFO of filled buffers waiting for the consumer.

    Unbounded by default, so the producer never waits on the pipeline
    itself. Pass maxsize to make put() block when that many are waiting.
    """

    def drain_to(self, pool: "BufferPool") -> int:
        """Move every waiting buffer back into a pool. Returns the count."""
        moved = 0
        while True:
            buffer = self.get_nowait()
            if buffer is None:
                return moved
            pool.release(buffer)
            moved += 1


class BufferPool(_BlockingFifo):
    """
    Reusable empty buffers of one fixed size.

    acquire() never makes a caller wait: it hands out a recycled buffer when
    one is free and allocates a zero-filled one otherwise. Buffers allocated
    on a miss are released back like any other, so the pool can grow past
    its initial fill but never shrinks. get() instead blocks until a buffer
    is released (or interrupt() is called), which caps the buffers in flight
    at the initial fill.
    """

    def __init__(self, buffer_size: int, initial_count: int = 0):
        """
        Args:
            buffer_size: Length in bytes of every buffer in the pool
            initial_count: Number of buffers to allocate up front
        """
        super().__init__(maxsize=0)
        if buffer_size <= 0:
            raise ValueError(f"buffer_size must be positive, got {buffer_size}")
        if initial_count < 0:
            raise ValueError(f"initial_count must be >= 0, got {initial_count}")
        self.buffer_size = buffer_size
        self.initial_count = initial_count
        for _ in range(initial_count):
            self._items.append(bytearray(buffer_size))
        self._stats.high_water = initial_count

    def try_acquire(self) -> Optional[bytearray]:
        """Take a free buffer without blocking. Returns None on a miss."""
        return self.get_nowait()

    def allocate(self) -> bytearray:
        """Create a new zero-filled buffer of the pool's size."""
        with self._lock:
            self._stats.allocations += 1
        return bytearray(self.buffer_size)

    def acquire(self) -> bytearray:
        """Take a free buffer, allocating a new one if the pool is empty."""
        buffer = self.try_acquire()
        if buffer is None:
            buffer = self.allocate()
        return buffer

    def release(self, buffer: bytearray):
        """
        Return a buffer to the pool. Never blocks.

        Raises:
            ValueError: if the buffer is not the pool's size
        """
        if len(buffer) != self.buffer_size:
            raise ValueError(
                f"Buffer of {len(buffer)} bytes released to pool of {self.buffer_size}-byte buffers"
            )
        self.put(buffer)
