from .history_loader import (
    HistoryError,
    HistoryLoader,
    MalformedRecordError,
    MissingSourceError,
    parse_record,
)

__all__ = ['HistoryError', 'HistoryLoader', 'MalformedRecordError', 'MissingSourceError', 'parse_record']
