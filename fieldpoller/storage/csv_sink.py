"""
CSV Sink

Appends one line per row to `<directory>/<table>.csv`, writing the header
when the file is new. "No data" values become empty cells, so a failed
discrete input reads as a blank column rather than 0.

Append-only: a bucket written twice (e.g. across a restart) appears twice.
Within a running process the cycle guard never writes a bucket twice.
"""

import asyncio
import csv
from pathlib import Path

from fieldpoller.common.exceptions import PersistenceError
from fieldpoller.common.logging_setup import get_service_logger
from fieldpoller.services.polling.normalizer import ValidatedRow
from .base import RowSink

logger = get_service_logger("storage.csv")


class CsvSink(RowSink):
    """One CSV file per table"""

    def __init__(
        self,
        directory: str,
        tables: dict[str, list[str]],
        tz_name: str = "America/Tegucigalpa",
    ):
        super().__init__(tables, tz_name)
        self.directory = Path(directory)

        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Cannot create CSV directory {self.directory}: {e}") from e

    def path_for(self, table: str) -> Path:
        return self.directory / f"{table}.csv"

    async def upsert(self, row: ValidatedRow) -> int:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._append, row)

    def _append(self, row: ValidatedRow) -> int:
        columns = self.tables.get(row.table) or list(row.values)
        path = self.path_for(row.table)

        line = [self.format_timestamp(row)]
        for column in columns:
            value = row.values.get(column)
            line.append("" if value is None else value)

        try:
            is_new = not path.exists() or path.stat().st_size == 0
            with open(path, "a", newline="", encoding="utf-8") as f:
                w = csv.writer(f)
                if is_new:
                    w.writerow(["timestamp", *columns])
                w.writerow(line)
        except OSError as e:
            raise PersistenceError(f"Cannot append to {path}: {e}", table=row.table) from e

        logger.debug(f"CSV {row.table} -> {line}")
        return 1
