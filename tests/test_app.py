"""Tests for the application context object."""

from unittest.mock import Mock, patch

import pytest
import yaml
from tinkerforge.ip_connection import IPConnection

from main import WeatherStationApp
from weatherstation.dashboard import Direction
from weatherstation.hub.connection import ConnectionManager, ConnectionState
from weatherstation.series.models import Metric

from tests.helpers import FakeClock, advance_ticks, wait_for


def make_adapter(metric, value):
    adapter = Mock()
    adapter.metric = metric
    adapter.read_value.return_value = value
    return adapter


@pytest.fixture
def history_file(tmp_path):
    path = tmp_path / "temperature.tsv"
    path.write_text("100\t5.0\nbad\n200\t6.0\n")
    return path


@pytest.fixture
def config_path(tmp_path, history_file):
    config_data = {
        'hub': {'host': 'hub.local', 'port': 4223},
        'sensors': {'temperature': 'dXC', 'humidity': 'hRd'},
        'history': {'temperature': str(history_file)},
        'scheduler': {'poll_interval': 5, 'rotate_interval': 15,
                      'date_refresh_interval': 60, 'shutdown_timeout': 1},
        'retry': {'initial_delay': 0.01},
        'logging': {'level': 'DEBUG'},
    }
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump(config_data))
    return str(path)


@pytest.fixture
def ipcon():
    ipcon = Mock()
    ipcon.get_connection_state.return_value = IPConnection.CONNECTION_STATE_CONNECTED
    return ipcon


@pytest.fixture
def adapters():
    return {
        Metric.TEMPERATURE: make_adapter(Metric.TEMPERATURE, 21.5),
        Metric.HUMIDITY: make_adapter(Metric.HUMIDITY, 45.0),
    }


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def app(config_path, ipcon, adapters, clock):
    with patch('main.create_adapters', return_value=adapters):
        app = WeatherStationApp(config_path, connection=ConnectionManager(ipcon), clock=clock)
    yield app
    app.shutdown()


class TestWeatherStationApp:
    """Test cases for WeatherStationApp."""

    def test_load_history(self, app):
        loaded = app.load_history()

        assert loaded == {Metric.TEMPERATURE: 2}
        assert [(s.epoch, s.value) for s in app.store.snapshot(Metric.TEMPERATURE)] == [(100, 5.0), (200, 6.0)]

    def test_history_override(self, config_path, ipcon, adapters, tmp_path):
        override = tmp_path / "humidity.tsv"
        override.write_text("300\t40.0\n")

        with patch('main.create_adapters', return_value=adapters):
            app = WeatherStationApp(config_path, {Metric.HUMIDITY: str(override)},
                                    connection=ConnectionManager(ipcon))
        try:
            app.load_history()
            assert [s.value for s in app.store.snapshot(Metric.HUMIDITY)] == [40.0]
        finally:
            app.shutdown()

    def test_run_single_cycle(self, app, ipcon):
        assert app.run_single_cycle() == 2

        ipcon.connect.assert_called_once_with('hub.local', 4223)
        assert [s.value for s in app.store.snapshot(Metric.TEMPERATURE)] == [5.0, 6.0, 21.5]

    def test_failed_connect_is_not_fatal(self, app, ipcon):
        ipcon.connect.side_effect = OSError("No route to host")
        ipcon.get_connection_state.return_value = IPConnection.CONNECTION_STATE_DISCONNECTED

        assert app.connect() is False
        assert app.connection.state() == ConnectionState.CONNECTING

    def test_start_polls_and_rotates(self, app, clock):
        app.start()
        poll = app.scheduler.jobs['poll-sensors']
        rotate = app.scheduler.jobs['rotate-display']

        advance_ticks(clock, poll, 3, interval=5.0)
        assert wait_for(lambda: rotate.runs == 1)

        assert [s.value for s in app.store.snapshot(Metric.HUMIDITY)] == [45.0, 45.0, 45.0]
        assert app.navigator.current == Metric.HUMIDITY
        assert app.navigator.current_date is not None
        assert set(app.scheduler.jobs) == {'poll-sensors', 'rotate-display', 'refresh-date'}

    def test_shutdown_stops_polling_and_disconnects(self, app, ipcon, clock):
        app.start()
        advance_ticks(clock, app.scheduler.jobs['poll-sensors'], 1, interval=5.0)

        app.shutdown()
        count = len(app.store.snapshot(Metric.TEMPERATURE))
        for _ in range(3):
            clock.advance(5.0)

        assert len(app.store.snapshot(Metric.TEMPERATURE)) == count == 3
        ipcon.disconnect.assert_called_once()
        assert app.connection.state() == ConnectionState.DISCONNECTED

    def test_shutdown_without_start(self, app, ipcon):
        app.shutdown()
        app.shutdown()
        ipcon.disconnect.assert_not_called()

    def test_manual_navigation(self, app):
        assert app.navigate(Direction.PREVIOUS) == Metric.BAROMETER

    def test_influxdb_forwarding(self, config_path, ipcon, adapters, clock):
        with open(config_path) as f:
            config_data = yaml.safe_load(f)
        config_data['influxdb'] = {'enabled': True, 'url': 'http://localhost:8086',
                                   'token': 'secret', 'org': 'home', 'bucket': 'weather'}
        with open(config_path, 'w') as f:
            yaml.dump(config_data, f)

        manager = Mock()
        with patch('main.create_adapters', return_value=adapters), \
                patch('main.InfluxDBManager', return_value=manager):
            app = WeatherStationApp(config_path, connection=ConnectionManager(ipcon), clock=clock)
            try:
                app.start()
                advance_ticks(clock, app.scheduler.jobs['poll-sensors'], 1, interval=5.0)
            finally:
                app.shutdown()

        assert manager.write_sample.call_count == 2
        manager.close.assert_called_once()
