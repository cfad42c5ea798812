import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from .utils import format_duration, get_logger

logger = get_logger("Progress")

PROGRESS_INTERVAL = 5.0

# Use the average speed factor of the last 5 minutes to calculate the ETA
ETA_CALC_WINDOW = int(300 / PROGRESS_INTERVAL)


class SampleCounter:
    """
    Number of samples handed to the recognizer so far.
    Only the producer thread calls add(); other threads just read value.
    """

    def __init__(self):
        self._value = 0

    def add(self, samples: int):
        self._value += samples

    @property
    def value(self) -> int:
        return self._value


@dataclass
class ProgressReport:
    processed: float                    # Seconds of audio processed
    total: Optional[float]              # Seconds, if known
    percent: Optional[float]            # Clamped to [0, 100]
    speed_factor: float                 # Audio seconds per wall second, since last tick
    avg_speed_factor: float             # Over the sliding window
    remaining: Optional[float]          # Wall seconds left
    eta: Optional[datetime]

    def describe(self) -> str:
        percent = f"{self.percent:05.2f}%" if self.percent is not None else "??%"
        eta = self.eta.strftime("%a %d %b %Y %H:%M:%S") if self.eta is not None else "??"
        return (
            f"Progress: {percent} @ {format_duration(self.processed)} of {format_duration(self.total)}"
            f"\tSpeed: {self.speed_factor:.2f}x"
            f"\tTime left: {format_duration(self.remaining)}"
            f"\tETA: {eta}"
        )


class ProgressEstimator:
    def __init__(self, sample_rate: int, total_duration: Optional[float],
                 window: int = ETA_CALC_WINDOW, start_time: Optional[datetime] = None):
        if window <= 0:
            raise ValueError("window must be positive")
        self.sample_rate = sample_rate
        self.total_duration = total_duration
        self.speed_factors = deque(maxlen=window)
        self.last_time = start_time or datetime.now()
        self.last_samples = 0

    def samples_to_seconds(self, samples: int) -> float:
        return samples / self.sample_rate

    def tick(self, now: datetime, samples: int) -> ProgressReport:
        time_delta = (now - self.last_time).total_seconds()
        processed = self.samples_to_seconds(samples)
        processed_delta = self.samples_to_seconds(samples - self.last_samples)

        speed_factor = processed_delta / time_delta if time_delta > 0 else 0.0
        self.speed_factors.append(speed_factor)
        avg_speed_factor = sum(self.speed_factors) / len(self.speed_factors)

        percent = None
        remaining = None
        eta = None
        if self.total_duration:
            percent = min(max(processed / self.total_duration * 100.0, 0.0), 100.0)
            if avg_speed_factor > 0:
                remaining = max(self.total_duration - processed, 0.0) / avg_speed_factor
                eta = now + timedelta(seconds=remaining)

        self.last_time = now
        self.last_samples = samples

        return ProgressReport(
            processed=processed,
            total=self.total_duration,
            percent=percent,
            speed_factor=speed_factor,
            avg_speed_factor=avg_speed_factor,
            remaining=remaining,
            eta=eta,
        )

    def run(self, counter: SampleCounter, stop_event: threading.Event,
            interval: float = PROGRESS_INTERVAL):
        """Logs a report every interval until stop_event is set."""
        while not stop_event.wait(interval):
            report = self.tick(datetime.now(), counter.value)
            logger.info(report.describe())
