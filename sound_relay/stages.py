"""
Capture and playback stages.

Each stage runs one worker thread. The capture stage fills buffers from a
source and queues them; the playback stage writes queued buffers to a sink
and returns them to the pool.

    IDLE -> RUNNING -> DRAINING -> STOPPED
      \\-> STOPPED (activation failed)
"""

import logging
import threading
import time
from enum import Enum
from typing import Optional

from .buffers import BufferPool, TransferInterrupted, TransferQueue
from .config import AudioFormat
from .devices import SampleSink, SampleSource
from .sample_codec import decode_samples
from .stats import StatsTracker

logger = logging.getLogger(__name__)

# How often stop() re-interrupts the pool and queue while waiting for the worker
STOP_POLL_INTERVAL = 0.05


class StageState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"


class StageSetupError(RuntimeError):
    """A stage could not activate its source or sink."""


class TransferStage:
    """Worker thread skeleton shared by capture and playback."""

    name = "stage"

    def __init__(
        self,
        pool: BufferPool,
        queue: TransferQueue,
        stats: StatsTracker,
        fmt: Optional[AudioFormat] = None,
    ):
        self.pool = pool
        self.queue = queue
        self.stats = stats
        self.fmt = fmt
        self.error: Optional[BaseException] = None

        self._state = StageState.IDLE
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._activated = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # === LIFECYCLE ===

    @property
    def state(self) -> StageState:
        with self._state_lock:
            return self._state

    def _set_state(self, state: StageState):
        with self._state_lock:
            self._state = state
        logger.debug(f"[{self.name}] {state.value}")

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def start(self):
        """Start the worker thread. A stage can only be started once."""
        if self._thread is not None or self.state != StageState.IDLE:
            raise RuntimeError(f"{self.name} stage has already been started")
        self._thread = threading.Thread(target=self._run, name=f"sound-relay-{self.name}", daemon=True)
        self._thread.start()

    def wait_activated(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until activation has finished, successfully or not.

        Returns:
            True if the stage is running, False if activation failed or
            the wait timed out
        """
        self._activated.wait(timeout)
        return self._activated.is_set() and self.error is None

    def stop(self):
        """
        Ask the worker to finish and wait for it.

        The pool and queue are interrupted repeatedly until the worker exits,
        so a worker that blocked just after checking its stop flag still wakes.
        """
        self._stop_event.set()
        if self._thread is None:
            self._set_state(StageState.STOPPED)
            return
        while self._thread.is_alive():
            self.pool.interrupt()
            self.queue.interrupt()
            self._thread.join(STOP_POLL_INTERVAL)

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self):
        try:
            self._activate()
        except Exception as e:
            self.error = e
            logger.error(f"[{self.name}] Activation failed: {e}")
            self._set_state(StageState.STOPPED)
            self._activated.set()
            return

        self._set_state(StageState.RUNNING)
        self._activated.set()

        try:
            while not self._stop_event.is_set():
                self._transfer_once()
                time.sleep(0)  # Yield to the other stage
        except Exception as e:
            self.error = e
            logger.exception(f"[{self.name}] Transfer failed: {e}")
        finally:
            self._set_state(StageState.DRAINING)
            try:
                self._deactivate()
            except Exception as e:
                if self.error is None:
                    self.error = e
                logger.error(f"[{self.name}] Deactivation failed: {e}")
            self._set_state(StageState.STOPPED)

    # === HOOKS ===

    def _activate(self):
        raise NotImplementedError

    def _transfer_once(self):
        raise NotImplementedError

    def _deactivate(self):
        raise NotImplementedError

    def _mean_sample(self, buffer, count: int) -> float:
        if self.fmt is None or count < self.fmt.sample_width:
            return 0.0
        samples = decode_samples(
            buffer[:count], self.fmt.sample_width, self.fmt.signed, self.fmt.big_endian
        )
        return float(samples.mean())

    def _update_stats(self, mean_sample: float):
        self.stats.update(mean_sample, len(self.queue), len(self.pool))


class CaptureStage(TransferStage):
    """Producer: source -> buffer -> transfer queue."""

    name = "capture"

    def __init__(
        self,
        source: SampleSource,
        pool: BufferPool,
        queue: TransferQueue,
        stats: StatsTracker,
        fmt: Optional[AudioFormat] = None,
        wait_for_pool: bool = False,
    ):
        """
        Args:
            wait_for_pool: Block until playback returns a buffer instead of
                allocating on a pool miss. Use with sources that never block
                (synthesized audio), so capture stays at most the initial
                pool size ahead of playback.
        """
        super().__init__(pool, queue, stats, fmt)
        if wait_for_pool and pool.initial_count < 1:
            raise ValueError("wait_for_pool needs a pool with at least one buffer")
        self.source = source
        self.wait_for_pool = wait_for_pool

    def _activate(self):
        self.source.activate()

    def _deactivate(self):
        self.source.deactivate()

    def _acquire(self) -> Optional[bytearray]:
        """Take an empty buffer. None if stopped while waiting on the pool."""
        if not self.wait_for_pool:
            return self.pool.acquire()
        while not self._stop_event.is_set():
            try:
                return self.pool.get()
            except TransferInterrupted:
                self.stats.record_interruption()
        return None

    def _enqueue(self, buffer: bytearray) -> bool:
        """Queue a buffer, retrying after interruptions. False if stopped first."""
        while not self._stop_event.is_set():
            try:
                self.queue.put(buffer)
                return True
            except TransferInterrupted:
                self.stats.record_interruption()
        return False

    def _transfer_once(self):
        buffer = self._acquire()
        if buffer is None:
            return
        count = self.source.read(buffer, 0, len(buffer))
        if count < len(buffer):
            self.stats.record_short_transfer()
        # Read the buffer before handing it over
        mean_sample = self._mean_sample(buffer, count)

        if not self._enqueue(buffer):
            self.stats.record_dropped_buffer()
            self.pool.release(buffer)
            logger.debug(f"[{self.name}] Dropped {count} captured bytes on stop")
            return
        self._update_stats(mean_sample)


class PlaybackStage(TransferStage):
    """Consumer: transfer queue -> sink -> buffer pool."""

    name = "playback"

    def __init__(
        self,
        sink: SampleSink,
        pool: BufferPool,
        queue: TransferQueue,
        stats: StatsTracker,
        fmt: Optional[AudioFormat] = None,
    ):
        super().__init__(pool, queue, stats, fmt)
        self.sink = sink

    def _activate(self):
        self.sink.activate()

    def _deactivate(self):
        self.sink.deactivate()

    def _dequeue(self) -> Optional[bytearray]:
        """Take the next buffer, retrying after interruptions. None if stopped first."""
        while not self._stop_event.is_set():
            try:
                return self.queue.get()
            except TransferInterrupted:
                self.stats.record_interruption()
        return None

    def _transfer_once(self):
        buffer = self._dequeue()
        if buffer is None:
            return
        # A dequeued buffer is always written and returned, even if stop
        # was requested meanwhile
        try:
            count = self.sink.write(buffer, 0, len(buffer))
            if count < len(buffer):
                self.stats.record_short_transfer()
            self._update_stats(self._mean_sample(buffer, len(buffer)))
        finally:
            self.pool.release(buffer)
