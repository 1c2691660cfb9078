from .influxdb_client import InfluxDBError, InfluxDBManager

__all__ = ['InfluxDBError', 'InfluxDBManager']
