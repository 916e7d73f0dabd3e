"""
Transfer pipeline: one capture stage and one playback stage sharing a
buffer pool and a transfer queue.

Usage:
    config = PipelineConfig()
    with TransferPipeline(source, sink, config) as pipeline:
        pipeline.wait_activated()
        time.sleep(10)
"""

import logging
import time
from typing import Optional

from .buffers import BufferPool, TransferQueue
from .config import PipelineConfig
from .devices import SampleSink, SampleSource
from .stages import CaptureStage, PlaybackStage, StageSetupError, StageState
from .stats import StatsTracker

logger = logging.getLogger(__name__)

DRAIN_POLL_INTERVAL = 0.01


class TransferPipeline:
    """
    Owns the pool, queue, stages and statistics for one run.

    Stages start capture first and stop capture first. A pipeline runs
    once; create a new one to run again.
    """

    def __init__(
        self,
        source: SampleSource,
        sink: SampleSink,
        config: Optional[PipelineConfig] = None,
        queue_maxsize: int = 0,
        wait_for_pool: bool = False,
    ):
        """
        Args:
            source: Where captured samples come from
            sink: Where samples are played
            config: Format, buffer sizing and statistics settings
            queue_maxsize: Bound on queued buffers (0 = unbounded)
            wait_for_pool: Capture waits for a free buffer instead of
                allocating, for sources that never block
        """
        self.config = config or PipelineConfig()
        fmt = self.config.audio_format
        settings = self.config.buffers

        self.buffer_size = self.config.buffer_size
        self.pool = BufferPool(self.buffer_size, settings.initial_pool_size)
        self.queue = TransferQueue(maxsize=queue_maxsize)

        def tracker(stage: str) -> StatsTracker:
            return StatsTracker.from_timing(
                self.config.report_seconds,
                fmt.sample_rate,
                self.config.transfer_frames,
                interval_decay=self.config.interval_decay,
                initial_pool_size=settings.initial_pool_size,
                stage=stage,
            )

        self.capture = CaptureStage(
            source, self.pool, self.queue, tracker("capture"), fmt, wait_for_pool=wait_for_pool
        )
        self.playback = PlaybackStage(sink, self.pool, self.queue, tracker("playback"), fmt)
        self._started = False
        self._stopped = False

        logger.info(
            f"Pipeline: {fmt.sample_rate:.0f}Hz {fmt.bits}-bit "
            f"{'signed' if fmt.signed else 'unsigned'} {'big' if fmt.big_endian else 'little'}-endian, "
            f"{self.config.transfer_frames} frames/buffer ({self.buffer_size} bytes), "
            f"pool={settings.initial_pool_size}"
        )

    @property
    def running(self) -> bool:
        return self._started and not self._stopped

    def start(self, timeout: Optional[float] = None):
        """
        Start capture, then playback, waiting for each to activate.

        Raises:
            StageSetupError: if either stage failed to activate; anything
                already started is stopped first
        """
        if self._started:
            raise RuntimeError("Pipeline has already been started")
        self._started = True

        for stage in (self.capture, self.playback):
            stage.start()
            if not stage.wait_activated(timeout):
                cause = stage.error
                self.stop(drain=False)
                if cause is None:
                    raise StageSetupError(f"{stage.name} stage did not activate within {timeout}s")
                raise StageSetupError(f"{stage.name} stage failed to activate: {cause}") from cause

        logger.info("Pipeline running")

    def wait_activated(self, timeout: Optional[float] = None) -> bool:
        """True once both stages are running."""
        return self.capture.wait_activated(timeout) and self.playback.wait_activated(timeout)

    def stop(self, drain: bool = True):
        """
        Stop capture, let playback empty the queue, then stop playback.

        Buffers still queued after playback stops go back to the pool.

        Args:
            drain: Wait for playback to write everything already captured
        """
        if self._stopped:
            return
        self._stopped = True

        self.capture.stop()

        if drain:
            while len(self.queue) > 0 and self.playback.state == StageState.RUNNING:
                time.sleep(DRAIN_POLL_INTERVAL)

        self.playback.stop()

        returned = self.queue.drain_to(self.pool)
        if returned:
            logger.debug(f"Returned {returned} queued buffers to the pool")

        for stage in (self.capture, self.playback):
            if stage.error is not None:
                logger.warning(f"{stage.name} stage stopped with error: {stage.error}")

        logger.info(
            f"Pipeline stopped: captured={self.capture.stats.passes} played={self.playback.stats.passes} "
            f"dropped={self.capture.stats.dropped_buffers} "
            f"pool={len(self.pool)} allocations={self.pool.stats.allocations}"
        )

    def __enter__(self) -> "TransferPipeline":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop(drain=exc_type is None)
        return False
