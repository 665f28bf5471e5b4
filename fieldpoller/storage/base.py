"""
Row Sink Interface

A sink receives one fully validated row and performs an idempotent upsert
keyed by (table, timestamp). Implementations raise PersistenceError on
failure; the polling service logs it and moves on.
"""

from abc import ABC, abstractmethod

from fieldpoller.common.timestamp import format_bucket
from fieldpoller.services.polling.normalizer import ValidatedRow


class RowSink(ABC):
    """Base class for persistence adapters"""

    def __init__(self, tables: dict[str, list[str]], tz_name: str = "America/Tegucigalpa"):
        """
        Args:
            tables: Columns per table, from PollerConfig.get_tables()
            tz_name: Zone used to format bucket timestamps
        """
        self.tables = tables
        self.tz_name = tz_name

    @abstractmethod
    async def upsert(self, row: ValidatedRow) -> int:
        """
        Insert or update the row for its bucket.

        Returns:
            Affected row count as reported by the backend
        """

    async def close(self) -> None:
        """Release resources held by the sink"""

    def format_timestamp(self, row: ValidatedRow) -> str:
        return format_bucket(row.bucket, self.tz_name)
