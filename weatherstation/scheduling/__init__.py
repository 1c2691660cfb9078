from .scheduler import (
    DisplayRotator,
    MonotonicClock,
    PeriodicScheduler,
    RecurringJob,
    SensorPoller,
    schedule_date_refresh,
)

__all__ = ['DisplayRotator', 'MonotonicClock', 'PeriodicScheduler', 'RecurringJob', 'SensorPoller',
           'schedule_date_refresh']
