"""DuckDB batch writer.

DuckDB can scan a pandas DataFrame directly, so each batch is registered as
a view and copied with ``INSERT INTO ... SELECT``. The connection string is
a database file path.
"""

from __future__ import annotations

from typing import Any, Sequence

import pandas as pd

from etl_load.lib.models import DbProvider
from etl_load.lib.providers.base import BatchWriter, ColumnPair, rows_affected, register_writer

__all__ = ["DuckDbWriter"]

BATCH_VIEW = "_etl_load_batch"


def _import_duckdb() -> Any:
    try:
        import duckdb
    except ImportError:
        raise ImportError("DuckDB support requires duckdb. Install with: pip install duckdb")
    return duckdb


@register_writer(DbProvider.DUCKDB)
class DuckDbWriter(BatchWriter):
    paramstyle = "qmark"

    @classmethod
    def connect(cls, connection_string: str) -> Any:
        duckdb = _import_duckdb()
        return duckdb.connect(database=connection_string)

    @classmethod
    def run_statement(cls, conn: Any, sql: str, args: Any) -> None:
        # DuckDB autocommits outside an explicit transaction
        if args is None:
            conn.execute(sql)
        else:
            conn.execute(sql, args)

    def _begin(self) -> None:
        self._conn.begin()

    def _write_batch(self, table: str, pairs: Sequence[ColumnPair], batch: pd.DataFrame) -> int:
        # Positional names: two targets may share one source column
        view = batch.copy()
        view.columns = [f"c{i}" for i in range(len(pairs))]

        columns = ", ".join(self.quote_column(target) for target, _, _ in pairs)
        select = ", ".join(
            self.value_expression(f"c{i}", dtype) for i, (_, _, dtype) in enumerate(pairs)
        )
        sql = (
            f"INSERT INTO {self.quote_identifier(table)} ({columns}) "
            f"SELECT {select} FROM {BATCH_VIEW}"
        )

        self._conn.register(BATCH_VIEW, view)
        try:
            result = self._conn.execute(sql).fetchone()
        finally:
            self._conn.unregister(BATCH_VIEW)
        return rows_affected(result[0] if result else None, len(view.index))
