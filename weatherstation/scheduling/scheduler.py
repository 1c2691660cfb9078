"""Fixed-rate job scheduling, sensor polling and display rotation."""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, Mapping, Optional

from ..dashboard import DashboardNavigator, Direction
from ..hub.connection import ConnectionManager, ConnectionState, HubError
from ..hub.sensors import ValueReader
from ..series.models import Metric, Sample
from ..series.store import SeriesStore


class MonotonicClock:
    """Time source for recurring jobs, backed by time.monotonic."""

    def now(self) -> float:
        return time.monotonic()

    def wait_until(self, event: threading.Event, deadline: float) -> bool:
        """Block until the deadline passes or the event is set.

        Returns:
            True if the event was set
        """
        return event.wait(max(0.0, deadline - time.monotonic()))


class RecurringJob:
    """A callable run at a fixed rate on one scheduler worker until cancelled."""

    def __init__(self, name: str, interval: float, action: Callable[[], object],
                 initial_delay: Optional[float] = None, clock: Optional[MonotonicClock] = None) -> None:
        """Initialize the job. The first tick is due initial_delay after this call.

        Args:
            name: Job name used in logs
            interval: Seconds between ticks
            action: Callable run on every tick
            initial_delay: Seconds before the first tick (defaults to interval)
            clock: Time source (real monotonic time if None)
        """
        self.name = name
        self.interval = interval
        self.action = action
        self.initial_delay = interval if initial_delay is None else initial_delay
        self.runs = 0
        self.future: Optional[Future] = None
        self.logger = logging.getLogger(__name__)
        self._clock = clock or MonotonicClock()
        self._next_run = self._clock.now() + self.initial_delay
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    def run(self) -> None:
        while not self._clock.wait_until(self._cancelled, self._next_run):
            try:
                self.action()
            except Exception:
                self.logger.exception(f"Job {self.name} failed")
            self.runs += 1

            self._next_run += self.interval
            now = self._clock.now()
            if self._next_run < now:
                missed = int((now - self._next_run) // self.interval) + 1
                self.logger.warning(f"Job {self.name} overran, skipping {missed} tick(s)")
                self._next_run += missed * self.interval

        self.logger.debug(f"Job {self.name} stopped after {self.runs} run(s)")


class PeriodicScheduler:
    """Runs recurring jobs on a small worker pool, one worker per job."""

    def __init__(self, workers: int = 3, clock: Optional[MonotonicClock] = None) -> None:
        self.workers = workers
        self.executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="scheduler")
        self.jobs: Dict[str, RecurringJob] = {}
        self.logger = logging.getLogger(__name__)
        self.clock = clock or MonotonicClock()
        self._lock = threading.Lock()
        self._shut_down = False

    def schedule(self, name: str, interval: float, action: Callable[[], object],
                 initial_delay: Optional[float] = None) -> RecurringJob:
        """Start running action every interval seconds.

        Args:
            name: Unique job name
            interval: Seconds between ticks
            action: Callable run on every tick; exceptions are logged
            initial_delay: Seconds before the first tick (defaults to interval)

        Returns:
            The scheduled job

        Raises:
            ValueError: On a non-positive interval or a duplicate name
            RuntimeError: If the scheduler is shut down or has no free worker
        """
        if interval <= 0:
            raise ValueError(f"Interval for {name} must be positive, got {interval}")

        with self._lock:
            if self._shut_down:
                raise RuntimeError("Scheduler has been shut down")
            if name in self.jobs:
                raise ValueError(f"Job {name} is already scheduled")
            if len(self.jobs) >= self.workers:
                raise RuntimeError(f"No free worker for job {name} ({self.workers} workers)")

            job = RecurringJob(name, interval, action, initial_delay, self.clock)
            job.future = self.executor.submit(job.run)
            self.jobs[name] = job

        self.logger.info(f"Scheduled {name} every {interval}s")
        return job

    def shutdown(self, timeout: float = 5.0) -> bool:
        """Cancel all jobs and wait for in-flight ticks to finish.

        Args:
            timeout: Maximum seconds to wait for running ticks

        Returns:
            True if every job stopped within the timeout
        """
        with self._lock:
            self._shut_down = True
            jobs = list(self.jobs.values())

        for job in jobs:
            job.cancel()
        self.executor.shutdown(wait=False, cancel_futures=True)

        futures = [job.future for job in jobs if job.future is not None]
        _, not_done = wait(futures, timeout=timeout)
        if not_done:
            self.logger.warning(f"{len(not_done)} job(s) still running after {timeout}s")
        return not not_done


class SensorPoller:
    """Reads every sensor once per tick and appends the results to the store."""

    def __init__(self, connection: ConnectionManager, adapters: Mapping[Metric, ValueReader],
                 store: SeriesStore) -> None:
        """Initialize the poller.

        Args:
            connection: Hub connection consulted before every tick
            adapters: Sensor adapter per metric
            store: Store receiving the readings
        """
        self.connection = connection
        self.adapters = {metric: adapters[metric] for metric in Metric if metric in adapters}
        self.store = store
        self.logger = logging.getLogger(__name__)

    def poll_once(self) -> int:
        """Run one polling tick.

        Without a connection the tick is skipped entirely. Otherwise every
        adapter is read in metric order; a failing sensor only loses its own
        sample for this tick.

        Returns:
            Number of samples appended
        """
        state = self.connection.state()
        if state != ConnectionState.CONNECTED:
            self.logger.warning(f"No connection available ({state.value}), not querying sensors")
            return 0

        appended = 0
        for metric, adapter in self.adapters.items():
            try:
                value = adapter.read_value()
            except HubError as e:
                self.logger.error(f"Failed to read {metric.name}: {e}")
                continue
            except Exception:
                self.logger.exception(f"Unexpected error reading {metric.name}")
                continue

            self.logger.debug(f"Queried {metric.name}: {value}")
            self.store.append(metric, Sample.now(value))
            appended += 1

        return appended

    def start(self, scheduler: PeriodicScheduler, interval: float) -> RecurringJob:
        return scheduler.schedule("poll-sensors", interval, self.poll_once)


class DisplayRotator:
    """Advances the dashboard on a timer and forwards manual navigation."""

    def __init__(self, navigator: DashboardNavigator) -> None:
        self.navigator = navigator
        self.logger = logging.getLogger(__name__)

    def rotate(self) -> Metric:
        self.logger.info("Switching to next chart")
        return self.navigator.next()

    def on_manual_navigation(self, direction: Direction) -> Metric:
        # The automatic timer keeps its cadence regardless of manual input.
        self.logger.info(f"Manual navigation: {direction.name.lower()}")
        return self.navigator.navigate(direction)

    def start(self, scheduler: PeriodicScheduler, interval: float) -> RecurringJob:
        return scheduler.schedule("rotate-display", interval, self.rotate)


def schedule_date_refresh(scheduler: PeriodicScheduler, navigator: DashboardNavigator,
                          interval: float) -> RecurringJob:
    """Keep the dashboard clock current."""
    return scheduler.schedule("refresh-date", interval, navigator.refresh_date)
