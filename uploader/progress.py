"""Progress percentage, throughput and ETA computation with throttled notification."""

import math
import time
from collections import deque
from typing import Callable, Deque, Optional, Tuple

from common.constants import PROGRESS_THROTTLE_SECONDS, SPEED_WINDOW_SECONDS
from common.types import ProgressSnapshot

ProgressCallback = Callable[[int, float], None]


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_progress(bytes_transferred: int, total_bytes: int) -> int:
    """
    Percent complete, rounded to the nearest integer.

    Args:
        bytes_transferred: Acknowledged bytes
        total_bytes: Declared total size

    Returns:
        Integer 0-100 (0 when total_bytes is 0)
    """
    if total_bytes <= 0:
        return 0
    return _round_half_up(bytes_transferred / total_bytes * 100)


def calculate_eta(bytes_transferred: int, total_bytes: int, speed: float) -> float:
    """
    Estimated seconds remaining.

    Args:
        bytes_transferred: Acknowledged bytes
        total_bytes: Declared total size
        speed: Observed throughput in bytes per second

    Returns:
        Seconds remaining; 0 when finished, math.inf when speed is unknown (0)
    """
    remaining = total_bytes - bytes_transferred
    if remaining <= 0:
        return 0
    if speed <= 0:
        return math.inf
    return _round_half_up(remaining / speed)


class SpeedTracker:
    """Sliding-window throughput estimate from (time, bytes) samples."""

    def __init__(
        self,
        window_seconds: float = SPEED_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window_seconds = window_seconds
        self.clock = clock
        self._samples: Deque[Tuple[float, int]] = deque()

    def record(self, bytes_transferred: int, at: Optional[float] = None) -> None:
        now = self.clock() if at is None else at
        self._samples.append((now, bytes_transferred))
        while len(self._samples) > 2 and now - self._samples[0][0] > self.window_seconds:
            self._samples.popleft()

    def reset(self) -> None:
        self._samples.clear()

    @property
    def speed(self) -> float:
        """Bytes per second over the window (0 with fewer than two samples)."""
        if len(self._samples) < 2:
            return 0.0
        first_time, first_bytes = self._samples[0]
        last_time, last_bytes = self._samples[-1]
        elapsed = last_time - first_time
        if elapsed <= 0:
            return 0.0
        return max(last_bytes - first_bytes, 0) / elapsed


class ProgressReporter:
    """
    Derives percent and ETA from acknowledged bytes and pushes them to a
    callback at most once per min_interval.

    The first update and the 100 percent update are always delivered, and a
    lower percent than one already delivered is never emitted.
    """

    def __init__(
        self,
        total_bytes: int,
        on_progress: Optional[ProgressCallback] = None,
        min_interval: float = PROGRESS_THROTTLE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        speed_tracker: Optional[SpeedTracker] = None,
    ):
        """
        Initialize progress reporter.

        Args:
            total_bytes: Declared total size of the upload
            on_progress: Callback receiving (percent, eta_seconds)
            min_interval: Minimum seconds between callback invocations
            clock: Monotonic clock (injectable for tests)
            speed_tracker: Optional tracker sharing the same clock
        """
        self.total_bytes = total_bytes
        self.on_progress = on_progress
        self.min_interval = min_interval
        self.clock = clock
        self.speed_tracker = speed_tracker or SpeedTracker(clock=clock)
        self._bytes_transferred = 0
        self._last_emit_at: Optional[float] = None
        self._last_percent = -1

    def start(self, offset: int = 0) -> None:
        """Reset telemetry for a (re)started transfer at offset."""
        self.speed_tracker.reset()
        self._bytes_transferred = offset
        self.speed_tracker.record(offset)

    def snapshot(self) -> ProgressSnapshot:
        speed = self.speed_tracker.speed
        return ProgressSnapshot(
            percent=calculate_progress(self._bytes_transferred, self.total_bytes),
            eta_seconds=calculate_eta(self._bytes_transferred, self.total_bytes, speed),
            bytes_transferred=self._bytes_transferred,
            total_bytes=self.total_bytes,
            speed=speed,
        )

    def update(self, bytes_transferred: int) -> bool:
        """
        Record acknowledged bytes and notify if the throttle allows.

        Args:
            bytes_transferred: Total acknowledged bytes so far

        Returns:
            True if the callback was invoked
        """
        now = self.clock()
        self._bytes_transferred = bytes_transferred
        self.speed_tracker.record(bytes_transferred, at=now)

        snapshot = self.snapshot()
        if snapshot.percent <= self._last_percent:
            return False

        due = (
            self._last_emit_at is None
            or snapshot.percent >= 100
            or now - self._last_emit_at >= self.min_interval
        )
        if not due:
            return False

        self._emit(snapshot, now)
        return True

    def flush(self) -> None:
        """Deliver the latest snapshot regardless of the throttle."""
        snapshot = self.snapshot()
        if snapshot.percent > self._last_percent:
            self._emit(snapshot, self.clock())

    def _emit(self, snapshot: ProgressSnapshot, now: float) -> None:
        self._last_emit_at = now
        self._last_percent = snapshot.percent
        if self.on_progress is not None:
            self.on_progress(snapshot.percent, snapshot.eta_seconds)
