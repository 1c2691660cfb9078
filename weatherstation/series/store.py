"""Bounded, thread-safe time-series storage for sensor samples."""

import logging
import threading
from collections import deque
from datetime import timedelta
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Tuple

from .models import Metric, Sample

SampleListener = Callable[[Metric, Sample], None]

DEFAULT_MAX_SAMPLES = 17280  # one day at a 5 second poll interval


class Series:
    """Chronological samples for one metric, bounded by count and optionally by age.

    Samples are kept in insertion order. Once the bound is exceeded the oldest
    samples are dropped first.
    """

    def __init__(self, metric: Metric, max_samples: int = DEFAULT_MAX_SAMPLES,
                 max_age: Optional[timedelta] = None) -> None:
        """Initialize an empty series.

        Args:
            metric: Metric this series belongs to
            max_samples: Maximum number of retained samples
            max_age: Optional retention window measured back from the newest sample
        """
        if max_samples < 1:
            raise ValueError(f"max_samples must be positive, got {max_samples}")

        self.metric = metric
        self.max_samples = max_samples
        self.max_age = max_age
        self.live = False
        self._samples: Deque[Sample] = deque(maxlen=max_samples)
        self._lock = threading.Lock()

    def append(self, sample: Sample) -> None:
        with self._lock:
            self._samples.append(sample)
            self._evict_expired(sample)

    def extend(self, samples: Iterable[Sample]) -> int:
        count = 0
        with self._lock:
            for sample in samples:
                self._samples.append(sample)
                count += 1
            if self._samples:
                self._evict_expired(self._samples[-1])
        return count

    def _evict_expired(self, newest: Sample) -> None:
        # Caller holds the lock
        if self.max_age is None:
            return
        cutoff = newest.timestamp - self.max_age
        while self._samples and self._samples[0].timestamp < cutoff:
            self._samples.popleft()

    def snapshot(self) -> Tuple[Sample, ...]:
        with self._lock:
            return tuple(self._samples)

    def latest(self) -> Optional[Sample]:
        with self._lock:
            return self._samples[-1] if self._samples else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)


class SeriesStore:
    """Holds one Series per Metric and notifies listeners of live appends."""

    def __init__(self, max_samples: int = DEFAULT_MAX_SAMPLES,
                 max_age_seconds: Optional[float] = None) -> None:
        """Create an empty series for every metric.

        Args:
            max_samples: Capacity of each series
            max_age_seconds: Optional retention window in seconds
        """
        max_age = timedelta(seconds=max_age_seconds) if max_age_seconds else None
        self.logger = logging.getLogger(__name__)
        self._series: Dict[Metric, Series] = {
            metric: Series(metric, max_samples, max_age) for metric in Metric
        }
        self._listeners: List[SampleListener] = []
        self._listeners_lock = threading.Lock()

    @classmethod
    def from_config(cls, series_config: Dict[str, Any]) -> "SeriesStore":
        return cls(
            max_samples=int(series_config.get('max_samples', DEFAULT_MAX_SAMPLES)),
            max_age_seconds=series_config.get('max_age_seconds'),
        )

    def append(self, metric: Metric, sample: Sample) -> None:
        """Append a live sample and notify listeners.

        Never fails: samples beyond capacity silently push out the oldest ones,
        and listener errors are logged without affecting the append.
        """
        series = self._series[metric]
        series.live = True
        series.append(sample)

        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(metric, sample)
            except Exception as e:
                self.logger.error(f"Sample listener failed for {metric.name}: {e}")

    def seed(self, metric: Metric, samples: Iterable[Sample]) -> int:
        """Bulk-load historical samples for a metric.

        Seeding is additive and only allowed before the first live append.

        Args:
            metric: Metric to seed
            samples: Samples in the order they should appear

        Returns:
            Number of samples added (0 if the metric already has live data)
        """
        series = self._series[metric]
        if series.live:
            self.logger.warning(f"Ignoring history for {metric.name}: live polling already started")
            return 0

        # Decode outside the series lock so readers never wait on file I/O
        samples = list(samples)
        return series.extend(samples)

    def snapshot(self, metric: Metric) -> Tuple[Sample, ...]:
        """Point-in-time copy of a metric's samples, oldest first."""
        return self._series[metric].snapshot()

    def latest(self, metric: Metric) -> Optional[Sample]:
        return self._series[metric].latest()

    def stats(self, metric: Metric) -> Dict[str, Any]:
        """Summarize a metric's series.

        Returns:
            Dictionary with capacity, count, utilization and the first/last timestamps
        """
        series = self._series[metric]
        samples = series.snapshot()
        return {
            "metric": metric.value,
            "capacity": series.max_samples,
            "count": len(samples),
            "utilization": len(samples) / series.max_samples,
            "first": samples[0].timestamp if samples else None,
            "last": samples[-1].timestamp if samples else None,
        }

    def subscribe(self, listener: SampleListener) -> None:
        with self._listeners_lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: SampleListener) -> None:
        with self._listeners_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)
