"""Unit tests for progress, speed and ETA computation."""

import math

import pytest

from uploader.progress import (
    ProgressReporter,
    SpeedTracker,
    calculate_eta,
    calculate_progress,
)


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


class TestCalculateProgress:
    """Test percent computation."""

    @pytest.mark.parametrize('transferred,total,expected', [
        (0, 100, 0),
        (50, 100, 50),
        (100, 100, 100),
        (1, 3, 33),
        (2, 3, 67),
        (1, 200, 1),  # 0.5 rounds half up
        (0, 0, 0),
    ])
    def test_percent(self, transferred, total, expected):
        assert calculate_progress(transferred, total) == expected


class TestCalculateEta:
    """Test ETA computation."""

    def test_remaining_over_speed(self):
        assert calculate_eta(50, 100, 10) == 5

    def test_rounds_to_whole_seconds(self):
        assert calculate_eta(0, 25, 10) == 3

    def test_finished_is_zero(self):
        assert calculate_eta(100, 100, 0) == 0

    def test_zero_speed_is_unknown(self):
        assert math.isinf(calculate_eta(10, 100, 0))


class TestSpeedTracker:
    """Test sliding-window throughput."""

    def test_needs_two_samples(self):
        tracker = SpeedTracker(clock=FakeClock())
        tracker.record(100, at=0.0)
        assert tracker.speed == 0.0

    def test_speed_over_window(self):
        tracker = SpeedTracker(window_seconds=10, clock=FakeClock())
        tracker.record(0, at=0.0)
        tracker.record(1000, at=2.0)
        assert tracker.speed == 500.0

    def test_old_samples_fall_out_of_window(self):
        tracker = SpeedTracker(window_seconds=5, clock=FakeClock())
        tracker.record(0, at=0.0)
        tracker.record(100, at=1.0)
        tracker.record(200, at=10.0)
        tracker.record(1200, at=11.0)

        assert tracker.speed == pytest.approx(1000.0)

    def test_reset_clears_samples(self):
        tracker = SpeedTracker(clock=FakeClock())
        tracker.record(0, at=0.0)
        tracker.record(10, at=1.0)
        tracker.reset()
        assert tracker.speed == 0.0


class TestProgressReporter:
    """Test throttled progress notification."""

    def test_first_update_always_emitted(self):
        calls = []
        reporter = ProgressReporter(1000, on_progress=lambda p, e: calls.append((p, e)),
                                    min_interval=10, clock=FakeClock())
        reporter.start()

        assert reporter.update(100) is True
        assert calls[0][0] == 10

    def test_updates_within_interval_are_dropped(self):
        clock = FakeClock()
        calls = []
        reporter = ProgressReporter(1000, on_progress=lambda p, e: calls.append(p),
                                    min_interval=0.5, clock=clock)
        reporter.start()

        reporter.update(100)
        clock.now = 0.1
        assert reporter.update(200) is False
        clock.now = 0.7
        assert reporter.update(300) is True

        assert calls == [10, 30]

    def test_completion_bypasses_throttle(self):
        clock = FakeClock()
        calls = []
        reporter = ProgressReporter(1000, on_progress=lambda p, e: calls.append((p, e)),
                                    min_interval=5, clock=clock)
        reporter.start()

        reporter.update(500)
        clock.now = 0.1
        reporter.update(1000)

        assert calls[-1] == (100, 0)

    def test_percent_never_goes_backwards(self):
        clock = FakeClock()
        calls = []
        reporter = ProgressReporter(1000, on_progress=lambda p, e: calls.append(p),
                                    min_interval=0, clock=clock)
        reporter.start()

        reporter.update(500)
        clock.now = 1
        assert reporter.update(400) is False
        assert calls == [50]

    def test_eta_derived_from_speed(self):
        clock = FakeClock()
        calls = []
        reporter = ProgressReporter(1000, on_progress=lambda p, e: calls.append((p, e)),
                                    min_interval=0, clock=clock)
        reporter.start(0)

        clock.now = 1.0
        reporter.update(100)

        # 100 B/s, 900 bytes remaining
        assert calls == [(10, 9)]

    def test_start_offset_counts_toward_percent_not_speed(self):
        clock = FakeClock()
        reporter = ProgressReporter(1000, min_interval=0, clock=clock)
        reporter.start(600)

        snapshot = reporter.snapshot()
        assert snapshot.percent == 60
        assert snapshot.speed == 0.0
        assert math.isinf(snapshot.eta_seconds)

    def test_flush_delivers_latest(self):
        clock = FakeClock()
        calls = []
        reporter = ProgressReporter(1000, on_progress=lambda p, e: calls.append(p),
                                    min_interval=100, clock=clock)
        reporter.start()
        reporter.update(100)
        reporter.update(900)

        reporter.flush()

        assert calls == [10, 90]
