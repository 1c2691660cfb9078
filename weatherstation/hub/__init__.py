from .connection import (
    AlreadyConnectedError,
    ConnectionManager,
    ConnectionState,
    HubConnectionError,
    HubError,
    NotConnectedError,
    SensorTimeoutError,
)
from .sensors import SensorAdapter, create_adapter, create_adapters

__all__ = [
    'AlreadyConnectedError',
    'ConnectionManager',
    'ConnectionState',
    'HubConnectionError',
    'HubError',
    'NotConnectedError',
    'SensorAdapter',
    'SensorTimeoutError',
    'create_adapter',
    'create_adapters',
]
