"""Main application for the weather station dashboard."""

import sys
import logging
import signal
import threading
from typing import Dict, Optional

from weatherstation.config import ConfigManager
from weatherstation.dashboard import DashboardNavigator, Direction
from weatherstation.database import InfluxDBError, InfluxDBManager
from weatherstation.hub import ConnectionManager, HubError, create_adapters
from weatherstation.processing import HistoryLoader
from weatherstation.scheduling import (
    DisplayRotator,
    MonotonicClock,
    PeriodicScheduler,
    SensorPoller,
    schedule_date_refresh,
)
from weatherstation.series import Metric, SeriesStore


class WeatherStationApp:
    """Owns every component and their lifecycle: history, hub, jobs, shutdown."""

    def __init__(self, config_path: Optional[str] = None,
                 history_overrides: Optional[Dict[Metric, str]] = None,
                 connection: Optional[ConnectionManager] = None,
                 clock: Optional[MonotonicClock] = None) -> None:
        """Initialize the weather station application.

        Args:
            config_path: Path to configuration file (optional)
            history_overrides: History files that replace the configured ones
            connection: Pre-built hub connection (built from config if None)
            clock: Time source for the recurring jobs (real time if None)
        """
        self.config = ConfigManager(config_path)
        for metric, path in (history_overrides or {}).items():
            self.config.set_history_source(metric, path)

        self._setup_logging()
        self.logger = logging.getLogger(__name__)

        self.scheduler_config = self.config.get_scheduler_config()
        self.store = SeriesStore.from_config(self.config.get_series_config())
        self.history_loader = HistoryLoader(self.store)
        self.connection = connection or ConnectionManager.from_config(
            self.config.get_hub_config(), self.config.get_retry_config()
        )
        self.adapters = create_adapters(self.connection, self.config.get_sensor_uids())
        self.poller = SensorPoller(self.connection, self.adapters, self.store)
        self.navigator = DashboardNavigator(self.store)
        self.rotator = DisplayRotator(self.navigator)
        self.clock = clock
        self.scheduler: Optional[PeriodicScheduler] = None
        self.influxdb_manager: Optional[InfluxDBManager] = None
        self._stopped = threading.Event()

        self.logger.info("Weather station initialized")

    def _setup_logging(self) -> None:
        """Setup logging configuration."""
        log_config = self.config.get_logging_config()

        handlers = [logging.StreamHandler()]
        if log_config.get('file'):
            handlers.append(logging.FileHandler(log_config['file']))

        logging.basicConfig(
            level=getattr(logging, str(log_config.get('level', 'INFO')).upper(), logging.INFO),
            format=log_config.get('format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s'),
            handlers=handlers
        )

    def _setup_influxdb(self) -> None:
        influxdb_config = self.config.get_influxdb_config()
        if not influxdb_config.get('enabled'):
            return

        try:
            self.influxdb_manager = InfluxDBManager(influxdb_config, self.config.get_retry_config())
        except InfluxDBError as e:
            self.logger.error(f"InfluxDB forwarding disabled: {e}")
            return
        self.store.subscribe(self.influxdb_manager.write_sample)

    def load_history(self) -> Dict[Metric, int]:
        """Seed the series store from the configured history files."""
        return self.history_loader.load(self.config.get_history_sources())

    def connect(self) -> bool:
        """Connect to the hub. A failure is logged; auto-reconnect keeps trying."""
        hub_config = self.config.get_hub_config()
        try:
            self.connection.connect(hub_config['host'], hub_config['port'])
            return True
        except HubError as e:
            self.logger.error(f"Hub connection failed: {e}")
            return False

    def start(self) -> None:
        """Load history, connect and start the recurring jobs."""
        self.load_history()
        self._setup_influxdb()
        self.connect()

        self.scheduler = PeriodicScheduler(workers=int(self.scheduler_config['workers']), clock=self.clock)
        self.poller.start(self.scheduler, float(self.scheduler_config['poll_interval']))
        self.rotator.start(self.scheduler, float(self.scheduler_config['rotate_interval']))
        schedule_date_refresh(self.scheduler, self.navigator,
                              float(self.scheduler_config['date_refresh_interval']))
        self.navigator.refresh_date()
        self.logger.info("Weather station started")

    def run_single_cycle(self) -> int:
        """Load history, connect and poll the sensors once.

        Returns:
            Number of samples appended
        """
        self.load_history()
        if not self.connect():
            return 0
        return self.poller.poll_once()

    def navigate(self, direction: Direction) -> Metric:
        """Entry point for manual next/previous input from the view layer."""
        return self.rotator.on_manual_navigation(direction)

    def run_forever(self) -> None:
        """Start and block until SIGINT/SIGTERM or stop()."""
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        self.start()
        self._stopped.wait()

    def stop(self) -> None:
        self._stopped.set()

    def _signal_handler(self, signum, frame) -> None:
        """Handle shutdown signals."""
        self.logger.info(f"Received signal {signum}, shutting down gracefully...")
        self.stop()

    def shutdown(self) -> None:
        """Cancel all jobs and close connections. Never raises."""
        self.logger.info("Shutting down weather station")
        self.stop()

        if self.scheduler:
            self.scheduler.shutdown(timeout=float(self.scheduler_config['shutdown_timeout']))
            self.scheduler = None

        try:
            self.connection.disconnect()
        except HubError as e:
            self.logger.warning(f"Error during hub disconnect: {e}")

        if self.influxdb_manager:
            self.store.unsubscribe(self.influxdb_manager.write_sample)
            self.influxdb_manager.close()
            self.influxdb_manager = None

        self.logger.info("Weather station shutdown complete")

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.shutdown()


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description='Weather Station Dashboard')
    parser.add_argument('--config', '-c', help='Path to configuration file')
    parser.add_argument('--once', '-s', action='store_true',
                        help='Poll the sensors once and exit')
    parser.add_argument('--poll-interval', '-i', type=float,
                        help='Sensor poll interval in seconds (overrides config)')
    for metric in Metric:
        parser.add_argument(f'--{metric.history_option}', dest=f'{metric.value}_csv', metavar='PATH',
                            help=f'History file for {metric.label.lower()}')

    args = parser.parse_args()

    history_overrides = {
        metric: getattr(args, f'{metric.value}_csv')
        for metric in Metric if getattr(args, f'{metric.value}_csv')
    }

    try:
        with WeatherStationApp(args.config, history_overrides) as app:
            if args.poll_interval:
                app.scheduler_config['poll_interval'] = args.poll_interval
            if args.once:
                appended = app.run_single_cycle()
                sys.exit(0 if appended else 1)
            else:
                app.run_forever()

    except (FileNotFoundError, ValueError, RuntimeError) as e:
        print(f"Application failed: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
