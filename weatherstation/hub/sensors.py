"""Per-metric sensor adapters on top of the shared hub connection."""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Protocol

from tinkerforge.bricklet_ambient_light import BrickletAmbientLight
from tinkerforge.bricklet_barometer import BrickletBarometer
from tinkerforge.bricklet_humidity import BrickletHumidity
from tinkerforge.bricklet_temperature import BrickletTemperature
from tinkerforge.ip_connection import Error

from ..series.models import Metric
from .connection import ConnectionManager, translate_error


class ValueReader(Protocol):
    """Anything that can read one scalar from a sensor."""

    metric: Metric

    def read_value(self) -> float:
        """Read one value. Raises SensorTimeoutError or NotConnectedError."""
        ...


@dataclass(frozen=True)
class SensorSpec:
    """How to talk to the bricklet behind one metric."""
    device_class: Callable[[str, Any], Any]
    getter: str
    divisor: float


# Bricklets report fixed-point integers; divisor converts to the metric's unit.
SENSOR_SPECS: Dict[Metric, SensorSpec] = {
    Metric.TEMPERATURE: SensorSpec(BrickletTemperature, 'get_temperature', 100.0),
    Metric.HUMIDITY: SensorSpec(BrickletHumidity, 'get_humidity', 10.0),
    Metric.AMBIENT: SensorSpec(BrickletAmbientLight, 'get_illuminance', 10.0),
    Metric.BAROMETER: SensorSpec(BrickletBarometer, 'get_air_pressure', 1000.0),
}


class SensorAdapter:
    """Reads a single metric from its bricklet.

    Holds only the device handle; the connection belongs to the
    ConnectionManager. Each call is exactly one attempt.
    """

    def __init__(self, metric: Metric, device: Any, spec: SensorSpec) -> None:
        self.metric = metric
        self.device = device
        self.spec = spec

    def read_value(self) -> float:
        """Query the bricklet once and convert to the metric's unit.

        Returns:
            Current reading

        Raises:
            SensorTimeoutError: If the bricklet does not answer in time
            NotConnectedError: If the hub connection is down
            HubError: For any other hub failure
        """
        try:
            raw = getattr(self.device, self.spec.getter)()
        except Error as e:
            raise translate_error(e, f"read {self.metric.name}")
        return raw / self.spec.divisor

    def __repr__(self) -> str:
        return f"SensorAdapter({self.metric.name})"


def create_adapter(metric: Metric, uid: str, connection: ConnectionManager) -> SensorAdapter:
    """Bind the bricklet for a metric to the shared connection."""
    spec = SENSOR_SPECS[metric]
    device = spec.device_class(uid, connection.ipcon)
    return SensorAdapter(metric, device, spec)


def create_adapters(connection: ConnectionManager, uids: Mapping[Metric, str]) -> Dict[Metric, SensorAdapter]:
    """Create adapters for every metric with a configured UID, in metric order."""
    return {
        metric: create_adapter(metric, uids[metric], connection)
        for metric in Metric if uids.get(metric)
    }
