"""Persistent connection to the Tinkerforge sensor hub."""

import logging
import threading
from enum import Enum
from typing import Any, Dict, Optional

from tinkerforge.ip_connection import Error, IPConnection


class HubError(Exception):
    """Raised when hub operations fail."""
    pass


class HubConnectionError(HubError):
    """Raised when the connection to the hub cannot be opened."""
    pass


class AlreadyConnectedError(HubError):
    """Raised by connect() while a connection is already established or pending."""
    pass


class NotConnectedError(HubError):
    """Raised when a sensor is queried without a hub connection."""
    pass


class SensorTimeoutError(HubError):
    """Raised when a sensor does not answer in time."""
    pass


class ConnectionState(Enum):
    """Hub connection states."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def translate_error(error: Error, context: str) -> HubError:
    """Map a Tinkerforge error onto the hub error hierarchy."""
    if error.value == Error.TIMEOUT:
        return SensorTimeoutError(f"{context}: {error.description}")
    if error.value == Error.NOT_CONNECTED:
        return NotConnectedError(f"{context}: {error.description}")
    if error.value == Error.ALREADY_CONNECTED:
        return AlreadyConnectedError(f"{context}: {error.description}")
    return HubError(f"{context}: {error.description}")


class ConnectionManager:
    """Owns the single hub connection shared by all sensor adapters.

    Link losses are healed by the hub library's auto-reconnect. A failed
    initial connect is retried in the background with exponential backoff
    until it succeeds or disconnect() is called.
    """

    def __init__(self, ipcon: Optional[IPConnection] = None, auto_reconnect: bool = True,
                 timeout: Optional[float] = None,
                 retry_config: Optional[Dict[str, Any]] = None) -> None:
        """Initialize the connection manager.

        Args:
            ipcon: Hub connection to manage (a new IPConnection if None)
            auto_reconnect: Whether dropped links and failed connects are retried
            timeout: Per-request response timeout in seconds
            retry_config: initial_delay, backoff_factor and max_delay for connect retries
        """
        self.ipcon = ipcon if ipcon is not None else IPConnection()
        self.auto_reconnect = auto_reconnect
        self.logger = logging.getLogger(__name__)

        retry_config = retry_config or {}
        self.initial_delay = float(retry_config.get('initial_delay', 1.0))
        self.backoff_factor = float(retry_config.get('backoff_factor', 2))
        self.max_delay = float(retry_config.get('max_delay', 30.0))

        self._lock = threading.Lock()
        self._requested = False
        self._host: Optional[str] = None
        self._port: Optional[int] = None
        self._retry_thread: Optional[threading.Thread] = None
        self._stop_retry = threading.Event()

        if timeout is not None:
            self.ipcon.set_timeout(timeout)
        self.ipcon.register_callback(IPConnection.CALLBACK_CONNECTED, self._on_connected)
        self.ipcon.register_callback(IPConnection.CALLBACK_DISCONNECTED, self._on_disconnected)

    @classmethod
    def from_config(cls, hub_config: Dict[str, Any],
                    retry_config: Optional[Dict[str, Any]] = None) -> "ConnectionManager":
        return cls(
            auto_reconnect=bool(hub_config.get('auto_reconnect', True)),
            timeout=hub_config.get('timeout'),
            retry_config=retry_config,
        )

    def connect(self, host: str, port: int) -> None:
        """Open the hub connection.

        Args:
            host: Hub host name or address
            port: Hub TCP port

        Raises:
            AlreadyConnectedError: If a connection is established or pending
            HubConnectionError: If the socket cannot be opened. With
                auto-reconnect enabled a background retry is already running
                when this is raised.
        """
        with self._lock:
            if self._requested:
                raise AlreadyConnectedError(f"Already connected or connecting to {self._host}:{self._port}")
            self._requested = True
            self._host, self._port = host, port
            self._stop_retry.clear()

        self.logger.info(f"Connecting to hub at {host}:{port}")
        self.ipcon.set_auto_reconnect(self.auto_reconnect)

        try:
            self.ipcon.connect(host, port)
        except Error as e:
            if e.value != Error.ALREADY_CONNECTED:
                self._reset()
            raise translate_error(e, f"connect to {host}:{port}")
        except OSError as e:
            if self.auto_reconnect:
                self._start_retry()
            else:
                self._reset()
            raise HubConnectionError(f"Failed to connect to hub at {host}:{port}: {e}")

    def _reset(self) -> None:
        with self._lock:
            self._requested = False

    def _start_retry(self) -> None:
        self._retry_thread = threading.Thread(
            target=self._retry_loop, name="hub-connect-retry", daemon=True
        )
        self._retry_thread.start()

    def _retry_loop(self) -> None:
        delay = self.initial_delay
        attempt = 0
        while not self._stop_retry.wait(delay):
            attempt += 1
            self.logger.info(f"Retrying hub connection to {self._host}:{self._port} (attempt {attempt})")
            try:
                self.ipcon.connect(self._host, self._port)
                return
            except Error as e:
                if e.value == Error.ALREADY_CONNECTED:
                    return
                self.logger.warning(f"Hub connection attempt {attempt} failed: {e.description}")
            except OSError as e:
                self.logger.warning(f"Hub connection attempt {attempt} failed: {e}")
            delay = min(delay * self.backoff_factor, self.max_delay)

    def state(self) -> ConnectionState:
        """Current connection state. Never blocks on the network."""
        if not self._requested:
            return ConnectionState.DISCONNECTED

        raw = self.ipcon.get_connection_state()
        if raw == IPConnection.CONNECTION_STATE_CONNECTED:
            return ConnectionState.CONNECTED
        if raw == IPConnection.CONNECTION_STATE_PENDING or self.auto_reconnect:
            return ConnectionState.CONNECTING
        return ConnectionState.DISCONNECTED

    def is_connected(self) -> bool:
        return self.state() == ConnectionState.CONNECTED

    def disconnect(self) -> None:
        """Close the connection and stop any retries. Safe to call repeatedly."""
        with self._lock:
            if not self._requested:
                return
            self._requested = False

        self._stop_retry.set()
        if self._retry_thread is not None:
            self._retry_thread.join(timeout=5.0)
            self._retry_thread = None

        try:
            self.ipcon.disconnect()
            self.logger.info("Hub connection closed")
        except Error as e:
            if e.value != Error.NOT_CONNECTED:
                self.logger.error(f"Error closing hub connection: {e.description}")

    def _on_connected(self, reason: int) -> None:
        if reason == IPConnection.CONNECT_REASON_AUTO_RECONNECT:
            self.logger.info("Hub connection re-established")
        else:
            self.logger.info("Hub connection established")

    def _on_disconnected(self, reason: int) -> None:
        if reason == IPConnection.DISCONNECT_REASON_REQUEST:
            return
        if self.auto_reconnect:
            self.logger.warning("Hub connection lost, reconnecting")
        else:
            self.logger.warning("Hub connection lost")
