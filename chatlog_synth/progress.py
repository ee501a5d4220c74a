"""Throughput smoothing and remaining-time estimation for generation runs."""

from dataclasses import dataclass

from .constants import (
    ETA_BUFFER_FACTOR,
    ETA_MAX_SECONDS,
    ETA_MIN_SECONDS,
    RATE_SMOOTHING_KEEP,
    RATE_SMOOTHING_NEW,
    RECENT_PROGRESS_WINDOW,
)


@dataclass(frozen=True)
class ProgressSample:
    """Percent complete observed after ``elapsed`` seconds of active (unpaused) time."""

    elapsed: float
    percent: float


class ProgressEstimator:
    """Estimates how long a run has left from its progress samples.

    All times are effective elapsed seconds, i.e. wall-clock time since the run
    started minus time spent paused. The caller is responsible for that
    subtraction so the estimator never sees suspended time.

    Attributes:
        rate: Exponentially smoothed throughput in percent per second.
        samples: Every recorded sample, oldest first.
    """

    def __init__(self):
        self.rate = 0.0
        self.samples: list[ProgressSample] = []

    def reset(self) -> None:
        self.rate = 0.0
        self.samples = []

    def record(self, percent: float, elapsed: float) -> float:
        """Add a sample and update the smoothed rate.

        Args:
            percent: Percent complete, 0-100.
            elapsed: Effective elapsed seconds at the time of the sample.

        Returns:
            float: The updated smoothed rate.
        """
        if self.samples:
            previous = self.samples[-1]
            delta_time = elapsed - previous.elapsed
            if delta_time > 0:
                instant_rate = (percent - previous.percent) / delta_time
                self.rate = self.rate * RATE_SMOOTHING_KEEP + instant_rate * RATE_SMOOTHING_NEW
        self.samples.append(ProgressSample(elapsed=elapsed, percent=percent))
        return self.rate

    def _window_origin(self, percent: float) -> ProgressSample:
        # Latest sample at or below the start of the recent window; the run start otherwise
        window_start = max(0.0, percent - RECENT_PROGRESS_WINDOW)
        origin = ProgressSample(elapsed=0.0, percent=0.0)
        for sample in self.samples:
            if sample.percent <= window_start:
                origin = sample
        return origin

    def estimate_remaining(self, percent: float, elapsed: float) -> float | None:
        """Project the seconds left until 100%.

        Uses the rate over the last five percentage points plus a 10% buffer. If
        that projection is below one second or above two hours, the overall
        average rate since the start is used instead.

        Args:
            percent: Current percent complete.
            elapsed: Current effective elapsed seconds.

        Returns:
            float | None: Seconds remaining, or None before any measurable progress.
        """
        if percent <= 0 or elapsed <= 0:
            return None

        remaining_progress = max(0.0, 100.0 - percent)

        origin = self._window_origin(percent)
        covered = percent - origin.percent
        window_time = elapsed - origin.elapsed
        if covered > 0 and window_time > 0:
            recent_rate = covered / window_time
            buffered = remaining_progress / recent_rate * ETA_BUFFER_FACTOR
            if ETA_MIN_SECONDS <= buffered <= ETA_MAX_SECONDS:
                return buffered

        overall_rate = percent / elapsed
        return remaining_progress / overall_rate


def format_remaining(seconds: float | None) -> str | None:
    """Render seconds as ``~Xm Ys remaining``, dropping minutes when zero."""
    if seconds is None:
        return None
    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    if minutes > 0:
        return f"~{minutes}m {secs}s remaining"
    return f"~{secs}s remaining"
