"""
Local SQLite Sink

Stores validated rows in a local SQLite file, one table per configured
table name, keyed by the formatted bucket timestamp.

Features:
- Creates tables on startup and adds columns missing from older files
- Idempotent upsert (INSERT ... ON CONFLICT(timestamp) DO UPDATE)
- "No data" values stored as NULL
- Blocking sqlite calls run in the default executor
"""

import asyncio
import sqlite3
from pathlib import Path

from fieldpoller.common.exceptions import PersistenceError
from fieldpoller.common.logging_setup import get_service_logger
from fieldpoller.services.polling.normalizer import ValidatedRow
from .base import RowSink

logger = get_service_logger("storage.sqlite")


class SQLiteSink(RowSink):
    """
    SQLite database for validated rows.

    Table and column names come from the validated configuration, which
    restricts them to plain identifiers before they reach any statement.
    """

    def __init__(
        self,
        db_path: str,
        tables: dict[str, list[str]],
        tz_name: str = "America/Tegucigalpa",
    ):
        super().__init__(tables, tz_name)
        self.db_path = Path(db_path)

        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(
                f"Cannot create database directory {self.db_path.parent}: {e}"
            ) from e

        self._init_db()

        logger.info(f"SQLite sink initialized at {self.db_path}")

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(str(self.db_path), timeout=10.0)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Create tables (and missing columns) if they don't exist."""
        conn = self._get_connection()
        try:
            with conn:
                for table, columns in self.tables.items():
                    column_defs = ", ".join(f"{c} REAL" for c in columns)
                    conn.execute(f"""
                        CREATE TABLE IF NOT EXISTS {table} (
                            timestamp TEXT PRIMARY KEY,
                            {column_defs}
                        )
                    """)

                    existing = {
                        row["name"]
                        for row in conn.execute(f"PRAGMA table_info({table})")
                    }
                    for column in columns:
                        if column not in existing:
                            conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} REAL")
                            logger.info(f"Added column {table}.{column}")
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot initialize {self.db_path}: {e}") from e
        finally:
            conn.close()

    async def upsert(self, row: ValidatedRow) -> int:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.upsert_sync, row)

    def upsert_sync(self, row: ValidatedRow) -> int:
        """
        Insert or update one row.

        Returns:
            Number of affected rows (1 on insert or update)
        """
        if not row.values:
            return 0

        timestamp = self.format_timestamp(row)
        columns = list(row.values)
        placeholders = ", ".join("?" * (len(columns) + 1))
        updates = ", ".join(f"{c} = excluded.{c}" for c in columns)

        sql = f"""
            INSERT INTO {row.table} (timestamp, {", ".join(columns)})
            VALUES ({placeholders})
            ON CONFLICT(timestamp) DO UPDATE SET {updates}
        """

        conn = self._get_connection()
        try:
            with conn:
                cursor = conn.execute(sql, [timestamp, *row.values.values()])
                affected = cursor.rowcount
        except sqlite3.Error as e:
            raise PersistenceError(
                f"Upsert into {row.table} for {timestamp} failed: {e}",
                table=row.table,
            ) from e
        finally:
            conn.close()

        logger.debug(f"Upserted {row.table} @ {timestamp}: {row.values}")
        return affected

    def get_rows(self, table: str, limit: int = 100) -> list[dict]:
        """Most recent rows of a table, newest first."""
        if table not in self.tables:
            raise PersistenceError(f"Unknown table {table}", table=table)

        conn = self._get_connection()
        try:
            cursor = conn.execute(
                f"SELECT * FROM {table} ORDER BY timestamp DESC LIMIT ?",
                (limit,),
            )
            return [dict(r) for r in cursor.fetchall()]
        finally:
            conn.close()
