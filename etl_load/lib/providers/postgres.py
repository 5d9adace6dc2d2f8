"""PostgreSQL batch writer (psycopg2).

Each batch goes out as one multi-row ``INSERT ... VALUES`` built by
``psycopg2.extras.execute_values``. The connection string is a libpq DSN
or URL.
"""

from __future__ import annotations

from typing import Any, Sequence

import pandas as pd

from etl_load.lib.models import DbProvider
from etl_load.lib.providers.base import (
    BatchWriter,
    ColumnPair,
    rows_affected,
    frame_to_rows,
    register_writer,
)

__all__ = ["PostgresWriter"]


def _import_psycopg2() -> Any:
    try:
        import psycopg2
        import psycopg2.extras
    except ImportError:
        raise ImportError(
            "PostgreSQL support requires psycopg2. "
            "Install with: pip install psycopg2-binary"
        )
    return psycopg2


@register_writer(DbProvider.POSTGRESQL)
class PostgresWriter(BatchWriter):
    paramstyle = "pyformat"

    @classmethod
    def connect(cls, connection_string: str) -> Any:
        psycopg2 = _import_psycopg2()
        return psycopg2.connect(connection_string)

    def build_insert_sql(self, table: str, pairs: Sequence[ColumnPair]) -> str:
        columns = ", ".join(self.quote_column(target) for target, _, _ in pairs)
        return f"INSERT INTO {self.quote_identifier(table)} ({columns}) VALUES %s"

    def row_template(self, pairs: Sequence[ColumnPair]) -> str:
        values = ", ".join(self.value_expression("%s", dtype) for _, _, dtype in pairs)
        return f"({values})"

    def _write_batch(self, table: str, pairs: Sequence[ColumnPair], batch: pd.DataFrame) -> int:
        psycopg2 = _import_psycopg2()
        rows = frame_to_rows(batch)
        cursor = self._conn.cursor()
        try:
            # One page per batch so rowcount covers the whole batch
            psycopg2.extras.execute_values(
                cursor,
                self.build_insert_sql(table, pairs),
                rows,
                template=self.row_template(pairs),
                page_size=len(rows),
            )
            return rows_affected(cursor.rowcount, len(rows))
        finally:
            cursor.close()
