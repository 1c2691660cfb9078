"""Historical log loader that warm-starts the series store."""

import logging
import math
from pathlib import Path
from typing import Dict, Iterator, Mapping, Optional, Union

from ..series.models import Metric, Sample
from ..series.store import SeriesStore

FIELD_SEPARATOR = '\t'


class HistoryError(Exception):
    """Base class for history loading problems."""
    pass


class MalformedRecordError(HistoryError):
    """Raised when a history line cannot be decoded."""
    pass


class MissingSourceError(HistoryError):
    """Raised when a history file is absent or unreadable."""
    pass


def parse_record(line: str) -> Sample:
    """Decode one ``<epoch seconds>\\t<value>`` record.

    Args:
        line: Raw line without its trailing newline

    Returns:
        Decoded sample

    Raises:
        MalformedRecordError: On a wrong field count, a non-integer timestamp
            or a non-numeric or non-finite value
    """
    # Trailing empty fields are ignored, so "100\t5.0\t" is a valid record
    parts = line.rstrip(FIELD_SEPARATOR).split(FIELD_SEPARATOR)
    if len(parts) != 2:
        raise MalformedRecordError(f"Expected 2 fields, got {len(parts)}: {line!r}")

    fields = [part.strip() for part in parts]
    if any('_' in field for field in fields):
        raise MalformedRecordError(f"Non-numeric field: {line!r}")

    try:
        seconds = int(fields[0])
        value = float(fields[1])
    except ValueError:
        raise MalformedRecordError(f"Non-numeric field: {line!r}")

    if not math.isfinite(value):
        raise MalformedRecordError(f"Non-finite value: {line!r}")

    try:
        return Sample.from_epoch(seconds, value)
    except (OverflowError, OSError, ValueError):
        raise MalformedRecordError(f"Timestamp out of range: {line!r}")


class HistoryLoader:
    """Reads per-metric history logs and seeds the series store."""

    def __init__(self, store: SeriesStore) -> None:
        """Initialize the loader.

        Args:
            store: Store receiving the decoded samples
        """
        self.store = store
        self.logger = logging.getLogger(__name__)

    def load(self, sources: Mapping[Metric, Optional[Union[str, Path]]]) -> Dict[Metric, int]:
        """Seed the store from every configured history file.

        Missing files and malformed lines are logged and skipped; nothing here
        aborts startup.

        Args:
            sources: History file per metric, None where there is none

        Returns:
            Number of samples seeded per metric
        """
        self.logger.info("Loading history")
        loaded: Dict[Metric, int] = {}

        for metric in Metric:
            source = sources.get(metric)
            if not source:
                self.logger.warning(f"{metric.history_option} not configured, no history for {metric.name}")
                continue

            try:
                loaded[metric] = self.store.seed(metric, self.read_source(source))
            except MissingSourceError as e:
                self.logger.warning(f"Skipping history for {metric.name}: {e}")
                continue

            self.logger.info(f"Loaded {loaded[metric]} {metric.name} samples from {source}")

        return loaded

    def read_source(self, source: Union[str, Path]) -> Iterator[Sample]:
        """Decode a history file lazily, in file order.

        Raises:
            MissingSourceError: If the file is missing or cannot be opened
        """
        path = Path(source)
        if not path.is_file():
            raise MissingSourceError(f"{path.absolute()} cannot be found")

        try:
            handle = path.open('r', encoding='utf-8', errors='replace')
        except OSError as e:
            raise MissingSourceError(f"{path.absolute()} cannot be read: {e}")

        return self._iter_records(handle, path)

    def _iter_records(self, handle, path: Path) -> Iterator[Sample]:
        with handle:
            try:
                for line_no, line in enumerate(handle, start=1):
                    line = line.rstrip('\r\n')
                    if not line.strip():
                        continue
                    try:
                        yield parse_record(line)
                    except MalformedRecordError as e:
                        self.logger.warning(f"{path.name}:{line_no}: invalid line (ignoring): {e}")
            except OSError as e:
                # Keep what was read so far
                self.logger.warning(f"Error reading {path}: {e}")
