"""SQL Server batch writer (pyodbc).

Uses pyodbc's ``fast_executemany`` so each batch is sent as a single
parameter array instead of one round trip per row.

Connection string is a plain ODBC string, e.g.:

    Driver={ODBC Driver 18 for SQL Server};Server=db;Database=dw;Trusted_Connection=yes
"""

from __future__ import annotations

import logging
from typing import Any

from etl_load.lib.models import DbProvider
from etl_load.lib.providers.base import BatchWriter, register_writer

logger = logging.getLogger(__name__)

__all__ = ["SqlServerWriter"]


def _import_pyodbc() -> Any:
    try:
        import pyodbc
    except ImportError:
        raise ImportError(
            "SQL Server support requires pyodbc and an ODBC driver. "
            "Install with: pip install pyodbc"
        )
    return pyodbc


@register_writer(DbProvider.SQLSERVER)
class SqlServerWriter(BatchWriter):
    paramstyle = "qmark"
    identifier_quotes = ("[", "]")

    @classmethod
    def connect(cls, connection_string: str) -> Any:
        pyodbc = _import_pyodbc()
        return pyodbc.connect(connection_string, autocommit=False)

    def _prepare_cursor(self, cursor: Any) -> None:
        cursor.fast_executemany = True
