"""
Running statistics for the transfer stages.

Each stage keeps exponential moving averages of the mean sample value,
the transfer queue length and the buffer pool length, and emits a report
roughly every ``report_seconds`` of audio.
"""

import logging
import math
from dataclasses import dataclass, asdict
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_REPORT_SECONDS = 2.0
DEFAULT_INTERVAL_DECAY = 0.25


@dataclass
class StatsReport:
    """Snapshot emitted once per reporting interval."""

    stage: str
    passes: int
    short_transfers: int
    interruptions: int
    dropped_buffers: int
    average_sample: float
    average_queue_length: float
    average_pool_length: float

    def to_dict(self) -> dict:
        return asdict(self)


class StatsTracker:
    """
    Exponential moving averages plus counters for one stage.

    avg = alpha * avg + (1 - alpha) * x, with alpha chosen so that a value
    decays to ``interval_decay`` of its weight over one reporting interval.
    """

    def __init__(
        self,
        interval: int,
        interval_decay: float = DEFAULT_INTERVAL_DECAY,
        initial_pool_size: int = 0,
        stage: str = "stage",
    ):
        """
        Args:
            interval: Passes between reports (K)
            interval_decay: Weight left of a sample after K passes (0 < D < 1)
            initial_pool_size: Starting value of the pool length average
            stage: Name used in reports and log lines
        """
        if interval < 1:
            raise ValueError(f"interval must be at least 1, got {interval}")
        if not 0.0 < interval_decay < 1.0:
            raise ValueError(f"interval_decay must be in (0, 1), got {interval_decay}")

        self.interval = interval
        self.interval_decay = interval_decay
        self.alpha = math.exp(math.log(interval_decay) / interval)
        self.stage = stage

        self.average_sample = 0.0
        self.average_queue_length = 0.0
        self.average_pool_length = float(initial_pool_size)

        self.passes = 0
        self.short_transfers = 0
        self.interruptions = 0
        self.dropped_buffers = 0  # Captured but never queued because of a stop
        self._counter = 0

    @classmethod
    def from_timing(
        cls,
        report_seconds: float,
        sample_rate: float,
        buffer_frames: int,
        interval_decay: float = DEFAULT_INTERVAL_DECAY,
        initial_pool_size: int = 0,
        stage: str = "stage",
    ) -> "StatsTracker":
        """Build a tracker whose interval covers ``report_seconds`` of audio."""
        if buffer_frames < 1:
            raise ValueError(f"buffer_frames must be at least 1, got {buffer_frames}")
        interval = max(1, math.ceil(sample_rate * report_seconds / buffer_frames))
        return cls(
            interval,
            interval_decay=interval_decay,
            initial_pool_size=initial_pool_size,
            stage=stage,
        )

    def _smooth(self, average: float, value: float) -> float:
        return self.alpha * average + (1.0 - self.alpha) * value

    def record_short_transfer(self):
        self.short_transfers += 1

    def record_interruption(self):
        self.interruptions += 1

    def record_dropped_buffer(self):
        self.dropped_buffers += 1

    def update(self, mean_sample: float, queue_length: int, pool_length: int) -> Optional[StatsReport]:
        """
        Fold one pass into the averages.

        Returns:
            A StatsReport every ``interval`` passes, otherwise None
        """
        self.passes += 1
        self.average_sample = self._smooth(self.average_sample, mean_sample)
        self.average_queue_length = self._smooth(self.average_queue_length, queue_length)
        self.average_pool_length = self._smooth(self.average_pool_length, pool_length)

        self._counter += 1
        if self._counter < self.interval:
            return None

        self._counter = 0
        report = self.report()
        logger.debug(
            f"[{self.stage}] passes={report.passes} short={report.short_transfers} "
            f"interrupted={report.interruptions} dropped={report.dropped_buffers} "
            f"avg_sample={report.average_sample:.2f} "
            f"avg_queue={report.average_queue_length:.2f} avg_pool={report.average_pool_length:.2f}",
            extra={
                "stage": report.stage,
                "passes": report.passes,
                "short_transfers": report.short_transfers,
                "interruptions": report.interruptions,
                "dropped_buffers": report.dropped_buffers,
            },
        )
        return report

    def report(self) -> StatsReport:
        """Current snapshot, regardless of the interval counter."""
        return StatsReport(
            stage=self.stage,
            passes=self.passes,
            short_transfers=self.short_transfers,
            interruptions=self.interruptions,
            dropped_buffers=self.dropped_buffers,
            average_sample=self.average_sample,
            average_queue_length=self.average_queue_length,
            average_pool_length=self.average_pool_length,
        )
