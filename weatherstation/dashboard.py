"""Core side of the chart dashboard: which chart is shown and what it reads."""

import logging
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from .series.models import Metric, Sample
from .series.store import SampleListener, SeriesStore

ViewListener = Callable[[Metric], None]
DateListener = Callable[[datetime], None]


class Direction(Enum):
    """Navigation direction between charts."""
    NEXT = 1
    PREVIOUS = -1


class DashboardNavigator:
    """Tracks the chart on screen and hands series data to the view layer.

    The view layer registers listeners for chart and clock changes and reads
    samples through snapshot()/subscribe(). Rendering is not done here.
    """

    def __init__(self, store: SeriesStore, metrics: Optional[Sequence[Metric]] = None) -> None:
        """Initialize the navigator.

        Args:
            store: Series store the charts are drawn from
            metrics: Rotation order (all metrics by default)
        """
        self.store = store
        self.metrics: Tuple[Metric, ...] = tuple(metrics) if metrics else tuple(Metric)
        self.logger = logging.getLogger(__name__)
        self._index = 0
        self._date: Optional[datetime] = None
        self._lock = threading.Lock()
        self._view_listeners: List[ViewListener] = []
        self._date_listeners: List[DateListener] = []

    @property
    def current(self) -> Metric:
        with self._lock:
            return self.metrics[self._index]

    @property
    def current_date(self) -> Optional[datetime]:
        return self._date

    def navigate(self, direction: Direction) -> Metric:
        """Move one chart forward or back, wrapping around at the ends."""
        with self._lock:
            self._index = (self._index + direction.value) % len(self.metrics)
            metric = self.metrics[self._index]

        self.logger.info(f"Showing {metric.label} chart")
        for listener in list(self._view_listeners):
            try:
                listener(metric)
            except Exception as e:
                self.logger.error(f"View listener failed: {e}")
        return metric

    def next(self) -> Metric:
        return self.navigate(Direction.NEXT)

    def previous(self) -> Metric:
        return self.navigate(Direction.PREVIOUS)

    def refresh_date(self, now: Optional[datetime] = None) -> datetime:
        """Update the clock shown on the dashboard."""
        self._date = now or datetime.now(timezone.utc)
        for listener in list(self._date_listeners):
            try:
                listener(self._date)
            except Exception as e:
                self.logger.error(f"Date listener failed: {e}")
        return self._date

    def on_view_change(self, listener: ViewListener) -> None:
        self._view_listeners.append(listener)

    def on_date_change(self, listener: DateListener) -> None:
        self._date_listeners.append(listener)

    def snapshot(self, metric: Optional[Metric] = None) -> Tuple[Sample, ...]:
        """Samples of the given metric, or of the chart currently shown."""
        return self.store.snapshot(metric or self.current)

    def subscribe(self, listener: SampleListener) -> None:
        """Receive every live sample as it is appended."""
        self.store.subscribe(listener)
