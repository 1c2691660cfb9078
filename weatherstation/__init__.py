"""
Weather Station Dashboard

Polls temperature, humidity, ambient light and barometric pressure from a
Tinkerforge sensor hub, keeps a bounded time-series per metric and feeds a
rotating chart dashboard.
"""

__version__ = "1.0.0"
__author__ = "Weather Station Team"
