"""
Persistence Adapters

Row sinks that receive validated rows:
- local_db.py - SQLite upsert
- rest_sink.py - PostgREST/Supabase upsert over HTTP
- csv_sink.py - Append-only CSV per table
"""

from fieldpoller.common.config import PollerConfig, StorageType
from .base import RowSink
from .csv_sink import CsvSink
from .local_db import SQLiteSink
from .rest_sink import RestSink


def create_sink(config: PollerConfig) -> RowSink:
    """Build the sink selected by config.storage.type"""
    storage = config.storage
    tables = config.get_tables()

    if storage.type == StorageType.REST:
        return RestSink(
            storage.url,
            storage.api_key,
            tables,
            tz_name=config.timezone,
            timeout_s=storage.timeout_s,
        )
    if storage.type == StorageType.CSV:
        return CsvSink(storage.path, tables, tz_name=config.timezone)
    return SQLiteSink(storage.path, tables, tz_name=config.timezone)


__all__ = ["RowSink", "SQLiteSink", "RestSink", "CsvSink", "create_sink"]
