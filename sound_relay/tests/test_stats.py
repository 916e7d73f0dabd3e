"""
Tests for the stage statistics tracker.
"""

import logging
import math

import pytest

from sound_relay.stats import StatsTracker


class TestStatsTracker:
    """Tests for StatsTracker."""

    def test_interval_from_timing(self):
        tracker = StatsTracker.from_timing(2.0, 16000, 1024)
        assert tracker.interval == 32  # ceil(16000 * 2 / 1024)

    def test_interval_at_least_one(self):
        tracker = StatsTracker.from_timing(0.001, 8000, 4096)
        assert tracker.interval == 1

    def test_alpha_decays_to_target_over_interval(self):
        tracker = StatsTracker(interval=10, interval_decay=0.25)
        assert tracker.alpha ** 10 == pytest.approx(0.25)
        assert tracker.alpha == pytest.approx(math.exp(math.log(0.25) / 10))

    def test_constant_input_reaches_three_quarters(self):
        tracker = StatsTracker(interval=20)
        for _ in range(20):
            tracker.update(100.0, 4, 0)
        assert tracker.average_sample == pytest.approx(75.0)
        assert tracker.average_queue_length == pytest.approx(3.0)

    def test_report_every_interval(self):
        tracker = StatsTracker(interval=5, stage="capture")
        reports = [tracker.update(0.0, 0, 0) for _ in range(15)]
        emitted = [i + 1 for i, r in enumerate(reports) if r is not None]
        assert emitted == [5, 10, 15]
        assert reports[4].stage == "capture"
        assert reports[4].passes == 5

    def test_pool_average_starts_at_initial_size(self):
        tracker = StatsTracker(interval=4, initial_pool_size=50)
        assert tracker.average_pool_length == 50.0
        tracker.update(0.0, 0, 50)
        assert tracker.average_pool_length == pytest.approx(50.0)

    def test_counters_in_report(self):
        tracker = StatsTracker(interval=3)
        tracker.record_short_transfer()
        tracker.record_interruption()
        tracker.record_interruption()
        report = tracker.report()
        assert report.short_transfers == 1
        assert report.interruptions == 2
        assert report.to_dict()["interruptions"] == 2

    def test_dropped_buffers_in_report(self):
        tracker = StatsTracker(interval=3)
        assert tracker.report().dropped_buffers == 0
        tracker.record_dropped_buffer()
        report = tracker.report()
        assert report.dropped_buffers == 1
        assert report.to_dict()["dropped_buffers"] == 1
        assert report.passes == 0

    def test_report_logged_at_debug(self, caplog):
        tracker = StatsTracker(interval=2, stage="playback")
        with caplog.at_level(logging.DEBUG, logger="sound_relay.stats"):
            tracker.update(1.0, 0, 0)
            tracker.update(1.0, 0, 0)
        assert any("[playback]" in r.getMessage() for r in caplog.records)

    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            StatsTracker(interval=0)
        with pytest.raises(ValueError):
            StatsTracker(interval=4, interval_decay=1.5)
        with pytest.raises(ValueError):
            StatsTracker.from_timing(2.0, 8000, 0)
