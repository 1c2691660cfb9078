"""Tests for the series store."""

import threading
from datetime import timedelta
from unittest.mock import Mock

import pytest

from weatherstation.series.models import Metric, Sample
from weatherstation.series.store import Series, SeriesStore


def samples(count, start=0):
    return [Sample.from_epoch(1_600_000_000 + i, float(i)) for i in range(start, start + count)]


class TestSeries:
    """Test cases for a single bounded series."""

    def test_snapshot_returns_appends_in_order(self):
        """Under capacity, a snapshot is exactly what was appended."""
        series = Series(Metric.TEMPERATURE, max_samples=10)
        appended = samples(5)
        for sample in appended:
            series.append(sample)

        assert series.snapshot() == tuple(appended)
        assert len(series) == 5

    def test_oldest_samples_evicted_first(self):
        """Exceeding the capacity by k drops the k oldest samples."""
        series = Series(Metric.HUMIDITY, max_samples=4)
        appended = samples(7)
        for sample in appended:
            series.append(sample)

        assert series.snapshot() == tuple(appended[3:])

    def test_max_age_evicts_old_samples(self):
        """Samples older than the retention window are dropped."""
        series = Series(Metric.AMBIENT, max_samples=100, max_age=timedelta(seconds=10))
        series.append(Sample.from_epoch(100, 1.0))
        series.append(Sample.from_epoch(105, 2.0))
        series.append(Sample.from_epoch(112, 3.0))

        assert [s.epoch for s in series.snapshot()] == [105, 112]

    def test_out_of_order_samples_are_not_reordered(self):
        """Samples keep insertion order even if timestamps go backwards."""
        series = Series(Metric.BAROMETER, max_samples=10)
        series.append(Sample.from_epoch(200, 1.0))
        series.append(Sample.from_epoch(100, 2.0))

        assert [s.epoch for s in series.snapshot()] == [200, 100]

    def test_invalid_capacity(self):
        """Test that a series needs room for at least one sample."""
        with pytest.raises(ValueError):
            Series(Metric.TEMPERATURE, max_samples=0)


class TestSeriesStore:
    """Test cases for SeriesStore."""

    @pytest.fixture
    def store(self):
        return SeriesStore(max_samples=100)

    def test_series_per_metric(self, store):
        """Appends to one metric do not show up in another."""
        store.append(Metric.TEMPERATURE, Sample.from_epoch(100, 21.5))

        assert len(store.snapshot(Metric.TEMPERATURE)) == 1
        for metric in (Metric.HUMIDITY, Metric.AMBIENT, Metric.BAROMETER):
            assert store.snapshot(metric) == ()

    def test_seed_then_snapshot(self, store):
        """Seeded history is returned unchanged without any live polls."""
        history = samples(10)
        assert store.seed(Metric.BAROMETER, history) == 10
        assert store.snapshot(Metric.BAROMETER) == tuple(history)

    def test_seed_is_additive(self, store):
        """A second seed extends the first."""
        store.seed(Metric.HUMIDITY, samples(3))
        store.seed(Metric.HUMIDITY, samples(2, start=3))

        assert [s.value for s in store.snapshot(Metric.HUMIDITY)] == [0.0, 1.0, 2.0, 3.0, 4.0]

    def test_seed_after_live_append_is_ignored(self, store):
        """History cannot be inserted once live data has arrived."""
        store.append(Metric.AMBIENT, Sample.from_epoch(500, 120.0))

        assert store.seed(Metric.AMBIENT, samples(3)) == 0
        assert len(store.snapshot(Metric.AMBIENT)) == 1

    def test_seed_respects_capacity(self):
        """Seeding more than the capacity keeps the newest samples."""
        store = SeriesStore(max_samples=5)
        history = samples(8)
        store.seed(Metric.TEMPERATURE, history)

        assert store.snapshot(Metric.TEMPERATURE) == tuple(history[3:])

    def test_slow_history_source_does_not_block_readers(self, store):
        """Snapshots return while a seed is still decoding its source."""
        store.seed(Metric.TEMPERATURE, samples(1))
        reading = threading.Event()
        release = threading.Event()

        def slow_source():
            yield Sample.from_epoch(1, 1.0)
            reading.set()
            release.wait(5.0)
            yield Sample.from_epoch(2, 2.0)

        seeder = threading.Thread(target=store.seed, args=(Metric.TEMPERATURE, slow_source()))
        seeder.start()
        try:
            assert reading.wait(5.0)
            result = []
            reader = threading.Thread(target=lambda: result.append(store.snapshot(Metric.TEMPERATURE)))
            reader.start()
            reader.join(timeout=1.0)

            assert not reader.is_alive()
            assert [s.value for s in result[0]] == [0.0]
        finally:
            release.set()
            seeder.join()

        assert [s.value for s in store.snapshot(Metric.TEMPERATURE)] == [0.0, 1.0, 2.0]

    def test_listener_notified_on_append(self, store):
        """Live appends are pushed to listeners, seeds are not."""
        listener = Mock()
        store.subscribe(listener)

        store.seed(Metric.TEMPERATURE, samples(2))
        sample = Sample.from_epoch(200, 22.0)
        store.append(Metric.TEMPERATURE, sample)

        listener.assert_called_once_with(Metric.TEMPERATURE, sample)

    def test_failing_listener_is_isolated(self, store):
        """A broken listener does not affect the append or other listeners."""
        broken = Mock(side_effect=RuntimeError("render failed"))
        healthy = Mock()
        store.subscribe(broken)
        store.subscribe(healthy)

        store.append(Metric.HUMIDITY, Sample.from_epoch(100, 55.0))

        assert len(store.snapshot(Metric.HUMIDITY)) == 1
        healthy.assert_called_once()

    def test_unsubscribe(self, store):
        listener = Mock()
        store.subscribe(listener)
        store.unsubscribe(listener)
        store.unsubscribe(listener)

        store.append(Metric.HUMIDITY, Sample.from_epoch(100, 55.0))
        listener.assert_not_called()

    def test_latest_and_stats(self, store):
        """Test latest sample and buffer statistics."""
        assert store.latest(Metric.BAROMETER) is None
        assert store.stats(Metric.BAROMETER)['first'] is None

        history = samples(4)
        store.seed(Metric.BAROMETER, history)

        assert store.latest(Metric.BAROMETER) == history[-1]
        stats = store.stats(Metric.BAROMETER)
        assert stats['capacity'] == 100
        assert stats['count'] == 4
        assert stats['utilization'] == 0.04
        assert stats['first'] == history[0].timestamp
        assert stats['last'] == history[-1].timestamp

    def test_from_config(self):
        store = SeriesStore.from_config({'max_samples': 3, 'max_age_seconds': 60})
        assert store.stats(Metric.TEMPERATURE)['capacity'] == 3

    def test_concurrent_snapshots_see_whole_samples(self):
        """Readers racing a writer only ever see complete samples in order."""
        store = SeriesStore(max_samples=500)
        done = threading.Event()
        errors = []

        def writer():
            for i in range(5000):
                store.append(Metric.TEMPERATURE, Sample.from_epoch(i, float(i)))
            done.set()

        def reader():
            while not done.is_set():
                snapshot = store.snapshot(Metric.TEMPERATURE)
                for previous, sample in zip(snapshot, snapshot[1:]):
                    if sample.value != previous.value + 1:
                        errors.append((previous, sample))
                for sample in snapshot:
                    if sample.epoch != sample.value:
                        errors.append(sample)

        readers = [threading.Thread(target=reader) for _ in range(3)]
        for thread in readers:
            thread.start()
        writer()
        for thread in readers:
            thread.join()

        assert errors == []
        assert len(store.snapshot(Metric.TEMPERATURE)) == 500
