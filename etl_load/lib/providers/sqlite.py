"""SQLite batch writer.

The connection string is a database file path. Mostly used for local runs
and tests.
"""

from __future__ import annotations

import sqlite3

from etl_load.lib.models import DbProvider
from etl_load.lib.providers.base import BatchWriter, register_writer

__all__ = ["SqliteWriter"]


@register_writer(DbProvider.SQLITE)
class SqliteWriter(BatchWriter):
    """Writes batches with ``executemany``; sqlite3 reports exact row counts."""

    paramstyle = "qmark"

    @classmethod
    def connect(cls, connection_string: str) -> sqlite3.Connection:
        # Opened and used from worker threads, one at a time
        return sqlite3.connect(connection_string, check_same_thread=False)
