"""Metric and sample types shared by the store, loader and poller."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum


class Metric(Enum):
    """Measured quantities. Declaration order is the polling and rotation order."""

    TEMPERATURE = "temperature"
    HUMIDITY = "humidity"
    AMBIENT = "ambient"
    BAROMETER = "barometer"

    @property
    def label(self) -> str:
        return _LABELS[self][0]

    @property
    def unit(self) -> str:
        return _LABELS[self][1]

    @property
    def history_option(self) -> str:
        """Name of the command line option pointing at this metric's log file."""
        return f"{self.value}-csv"

    @classmethod
    def from_name(cls, name: str) -> "Metric":
        """Look up a metric by value or member name, case-insensitive.

        Raises:
            ValueError: If no metric matches
        """
        key = name.strip().lower()
        for metric in cls:
            if key in (metric.value, metric.name.lower()):
                return metric
        raise ValueError(f"Unknown metric: {name}")


_LABELS = {
    Metric.TEMPERATURE: ("Temperature", "°C"),
    Metric.HUMIDITY: ("Humidity", "%RH"),
    Metric.AMBIENT: ("Ambient Light", "lx"),
    Metric.BAROMETER: ("Air Pressure", "mbar"),
}


@dataclass(frozen=True)
class Sample:
    """A single timestamped reading. Immutable once constructed."""

    timestamp: datetime
    value: float

    @classmethod
    def from_epoch(cls, seconds: float, value: float) -> "Sample":
        return cls(datetime.fromtimestamp(seconds, tz=timezone.utc), float(value))

    @classmethod
    def now(cls, value: float) -> "Sample":
        return cls(datetime.now(timezone.utc), float(value))

    @property
    def epoch(self) -> float:
        return self.timestamp.timestamp()
