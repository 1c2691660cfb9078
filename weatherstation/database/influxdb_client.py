"""InfluxDB forwarder for live weather samples."""

import logging
import queue
import threading
from typing import Dict, Any, Optional, Tuple

from influxdb_client import InfluxDBClient, Point, WritePrecision
from influxdb_client.client.write_api import SYNCHRONOUS
from influxdb_client.rest import ApiException

from ..series.models import Metric, Sample

MEASUREMENT = "weather"
DEFAULT_QUEUE_SIZE = 1000


class InfluxDBError(Exception):
    """Raised when InfluxDB operations fail."""
    pass


class InfluxDBManager:
    """Writes live samples to InfluxDB from a background worker.

    ``write_sample`` is a series store listener: it only queues the sample, so
    a slow or unreachable server never holds up sensor polling. When the queue
    is full new samples are dropped with a warning.
    """

    def __init__(self, influxdb_config: Dict[str, Any], retry_config: Optional[Dict[str, Any]] = None,
                 client: Optional[InfluxDBClient] = None) -> None:
        """Initialize InfluxDB manager and start the writer thread.

        Args:
            influxdb_config: url, token, org, bucket, station and queue_size
            retry_config: max_attempts, backoff_factor and initial_delay for writes
            client: Pre-built client (a new one is created from the config if None)
        """
        self.influxdb_config = influxdb_config
        self.retry_config = retry_config or {}
        self.station = influxdb_config.get('station', 'home')
        self.logger = logging.getLogger(__name__)
        self.client: Optional[InfluxDBClient] = client
        self.write_api = None

        self._queue: "queue.Queue[Optional[Tuple[Metric, Sample]]]" = queue.Queue(
            maxsize=int(influxdb_config.get('queue_size', DEFAULT_QUEUE_SIZE))
        )
        self._closing = threading.Event()
        self._worker: Optional[threading.Thread] = None

        self._initialize_client()

        self._worker = threading.Thread(target=self._drain, name="influxdb-writer", daemon=True)
        self._worker.start()

    def _initialize_client(self) -> None:
        """Create the client and check that the server is healthy."""
        try:
            if self.client is None:
                self.client = InfluxDBClient(
                    url=self.influxdb_config['url'],
                    token=self.influxdb_config['token'],
                    org=self.influxdb_config['org']
                )
            self.write_api = self.client.write_api(write_options=SYNCHRONOUS)

            health = self.client.health()
            if health.status == "pass":
                self.logger.info("InfluxDB connection established successfully")
            else:
                raise InfluxDBError(f"InfluxDB health check failed: {health.message}")

        except InfluxDBError:
            raise
        except Exception as e:
            self.logger.error(f"Failed to initialize InfluxDB client: {e}")
            raise InfluxDBError(f"InfluxDB initialization failed: {e}")

    def write_sample(self, metric: Metric, sample: Sample) -> bool:
        """Queue one sample for writing. Never blocks.

        Signature matches the series store's listener callback.

        Returns:
            True if the sample was queued, False if it was dropped
        """
        if self._closing.is_set():
            return False
        try:
            self._queue.put_nowait((metric, sample))
            return True
        except queue.Full:
            self.logger.warning(f"InfluxDB queue full, dropping {metric.name} sample")
            return False

    def _drain(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is None:
                    return
                self._write_with_retry(*item)
            finally:
                self._queue.task_done()

    def _write_with_retry(self, metric: Metric, sample: Sample) -> bool:
        """Write one sample, retrying with exponential backoff.

        Returns:
            True if the write was successful, False otherwise
        """
        if not self.write_api:
            self.logger.error("InfluxDB write API not initialized")
            return False

        max_attempts = max(1, int(self.retry_config.get('max_attempts', 3)))
        backoff_factor = float(self.retry_config.get('backoff_factor', 2))
        initial_delay = float(self.retry_config.get('initial_delay', 1.0))

        for attempt in range(max_attempts):
            try:
                self.write_api.write(
                    bucket=self.influxdb_config['bucket'],
                    org=self.influxdb_config['org'],
                    record=self._create_point(metric, sample)
                )
                self.logger.debug(f"Wrote {metric.name} sample to InfluxDB")
                return True

            except ApiException as e:
                self.logger.warning(f"InfluxDB API error on attempt {attempt + 1}: {e}")

            except Exception as e:
                self.logger.warning(f"Unexpected error writing to InfluxDB on attempt {attempt + 1}: {e}")

            if attempt < max_attempts - 1:
                delay = initial_delay * (backoff_factor ** attempt)
                self.logger.info(f"Retrying InfluxDB write in {delay:.1f} seconds...")
                if self._closing.wait(delay):
                    break

        self.logger.error(f"Failed to write {metric.name} sample to InfluxDB after {attempt + 1} attempt(s)")
        return False

    def _create_point(self, metric: Metric, sample: Sample) -> Point:
        return (
            Point(MEASUREMENT)
            .tag("station", self.station)
            .tag("metric", metric.value)
            .field("value", float(sample.value))
            .time(sample.timestamp, WritePrecision.S)
        )

    def close(self, timeout: float = 5.0) -> None:
        """Stop the writer thread and close the client connection.

        Samples still queued get one write attempt each, without retries.
        """
        if self._worker is not None:
            self._closing.set()
            try:
                self._queue.put(None, timeout=timeout)
            except queue.Full:
                self.logger.warning("InfluxDB queue still full, not waiting for pending writes")
            self._worker.join(timeout=timeout)
            if self._worker.is_alive():
                self.logger.warning(f"InfluxDB writer still busy after {timeout}s")
            self._worker = None

        try:
            if self.client:
                self.client.close()
                self.logger.info("InfluxDB connection closed")
        except Exception as e:
            self.logger.error(f"Error closing InfluxDB connection: {e}")
