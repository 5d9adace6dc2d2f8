"""Abstract base class for batch writers.

A batch writer owns one connection to the target store for the duration of
a write. It accepts column mappings, bulk-inserts a dataset and reports the
number of rows written. Concrete writers exist per provider family and are
looked up through the registry in this module.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, ClassVar, Dict, Iterator, List, Optional, Sequence, Tuple, Type

import pandas as pd

from etl_load.lib.errors import ConfigurationError, LoadError, WriteError
from etl_load.lib.mapping import find_duplicate_columns
from etl_load.lib.models import ColumnMapping, Dataset, DbProvider

logger = logging.getLogger(__name__)

__all__ = [
    "BatchWriter",
    "ColumnPair",
    "WRITER_REGISTRY",
    "frame_to_rows",
    "rows_affected",
    "register_writer",
]

DEFAULT_BATCH_SIZE = 1000

# (target column, source column, target SQL type or None)
ColumnPair = Tuple[str, Any, Optional[str]]

WRITER_REGISTRY: Dict[DbProvider, Type["BatchWriter"]] = {}


def register_writer(
    provider: DbProvider,
) -> Callable[[Type["BatchWriter"]], Type["BatchWriter"]]:
    """Register a batch writer class for a provider."""

    def decorator(cls: Type["BatchWriter"]) -> Type["BatchWriter"]:
        cls.provider = provider
        WRITER_REGISTRY[provider] = cls
        return cls

    return decorator


def _native(value: Any) -> Any:
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, pd.Timedelta):
        return value.to_pytimedelta()
    if hasattr(value, "item") and not isinstance(value, (str, bytes)):
        # numpy scalar
        return value.item()
    return value


def frame_to_rows(frame: pd.DataFrame) -> List[tuple]:
    """Convert a DataFrame into DB-API parameter tuples.

    Missing values (NaN, NaT, None, pd.NA) become None and numpy scalars
    become plain Python values.
    """
    values = frame.astype(object).where(pd.notna(frame).to_numpy(), None)
    return [
        tuple(_native(v) for v in row)
        for row in values.itertuples(index=False, name=None)
    ]


def rows_affected(reported: Optional[int], attempted: int) -> int:
    # Drivers report -1 (or nothing) when they cannot count, e.g. pyodbc fast_executemany
    if reported is None or reported < 0:
        return attempted
    return reported


class BatchWriter(ABC):
    """Base class for provider-specific bulk writers.

    Subclasses implement ``connect`` and may override the batch write and
    transaction hooks. The connection is opened on enter and always released
    on exit:

        with SqliteWriter("/tmp/target.db") as writer:
            writer.add_column_mapping(ColumnMapping("id", "order_id"))
            rows = writer.insert(dataset)

    ``async with`` is supported too; open and close then run in a worker
    thread.
    """

    provider: ClassVar[DbProvider]
    paramstyle: ClassVar[str] = "qmark"
    identifier_quotes: ClassVar[Tuple[str, str]] = ('"', '"')

    def __init__(self, connection_string: str, *, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        if batch_size < 1:
            raise ConfigurationError("BatchSize must be at least 1", field="BatchSize", value=batch_size)
        self.connection_string = connection_string
        self.batch_size = batch_size
        self._mappings: List[ColumnMapping] = []
        self._conn: Any = None

    # ------------------------------------------------------------------
    # Provider hooks
    # ------------------------------------------------------------------

    @classmethod
    @abstractmethod
    def connect(cls, connection_string: str) -> Any:
        """Open a DB-API connection to the target store."""

    @classmethod
    def run_statement(cls, conn: Any, sql: str, args: Any) -> None:
        """Execute one statement and commit. Used by StatementExecutor."""
        cursor = conn.cursor()
        try:
            if args is None:
                cursor.execute(sql)
            else:
                cursor.execute(sql, args)
        finally:
            cursor.close()
        conn.commit()

    @classmethod
    def rollback_quietly(cls, conn: Any) -> None:
        try:
            conn.rollback()
        except Exception as e:
            logger.warning("Rollback failed on %s connection: %s", cls.provider.value, e)

    @classmethod
    def quote_identifier(cls, name: str) -> str:
        """Quote a possibly schema-qualified identifier.

        Existing [brackets] or "quotes" around each part are stripped first.
        """
        opening, closing = cls.identifier_quotes
        parts = []
        for part in str(name).split("."):
            part = part.strip().strip("[]").strip('"').strip("`")
            parts.append(f"{opening}{part.replace(closing, closing * 2)}{closing}")
        return ".".join(parts)

    @classmethod
    def quote_column(cls, name: str) -> str:
        opening, closing = cls.identifier_quotes
        return f"{opening}{str(name).replace(closing, closing * 2)}{closing}"

    @classmethod
    def value_expression(cls, placeholder: str, data_type_name: Optional[str]) -> str:
        if data_type_name:
            return f"CAST({placeholder} AS {data_type_name})"
        return placeholder

    def _begin(self) -> None:
        """Start a transaction. DB-API drivers open one implicitly."""

    def _commit(self) -> None:
        self._conn.commit()

    def _rollback(self) -> None:
        self.rollback_quietly(self._conn)

    def _prepare_cursor(self, cursor: Any) -> None:
        """Adjust a cursor before executemany (driver-specific fast paths)."""

    def build_insert_sql(self, table: str, pairs: Sequence[ColumnPair]) -> str:
        columns = ", ".join(self.quote_column(target) for target, _, _ in pairs)
        values = ", ".join(self.value_expression("?", dtype) for _, _, dtype in pairs)
        return f"INSERT INTO {self.quote_identifier(table)} ({columns}) VALUES ({values})"

    def _write_batch(self, table: str, pairs: Sequence[ColumnPair], batch: pd.DataFrame) -> int:
        """Write one batch and return the rows written."""
        sql = self.build_insert_sql(table, pairs)
        rows = frame_to_rows(batch)
        cursor = self._conn.cursor()
        try:
            self._prepare_cursor(cursor)
            cursor.executemany(sql, rows)
            return rows_affected(cursor.rowcount, len(rows))
        finally:
            cursor.close()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self) -> "BatchWriter":
        if self._conn is None:
            try:
                self._conn = self.connect(self.connection_string)
            except Exception as e:
                raise WriteError(
                    f"Could not open {self.provider.value} connection",
                    provider=self.provider.value,
                    cause=e,
                ) from e
            logger.debug("Opened %s batch writer", self.provider.value)
        return self

    def close(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        try:
            conn.close()
        except Exception as e:
            logger.warning("Error closing %s connection: %s", self.provider.value, e)
        logger.debug("Closed %s batch writer", self.provider.value)

    def __enter__(self) -> "BatchWriter":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False

    async def __aenter__(self) -> "BatchWriter":
        return await asyncio.to_thread(self.open)

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        await asyncio.to_thread(self.close)
        return False

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    @property
    def column_mappings(self) -> List[ColumnMapping]:
        return list(self._mappings)

    def add_column_mapping(self, mapping: ColumnMapping) -> None:
        self._mappings.append(mapping)

    def column_pairs(self, dataset: Dataset) -> List[ColumnPair]:
        """Resolve (target, source, type) triples for a dataset.

        Without explicit mappings every dataset column is written to the
        column of the same name.

        Raises:
            ConfigurationError: On duplicate target columns, or a mapping
                whose source column is not in the dataset
        """
        if not self._mappings:
            return [(str(c), c, None) for c in dataset.frame.columns]

        duplicates = find_duplicate_columns(self._mappings)
        if duplicates:
            raise ConfigurationError(
                "ColumnMapping maps more than one source onto the same target column",
                field="ColumnMapping",
                value=", ".join(duplicates),
                table=dataset.name,
            )

        # Mappings name columns as text; the frame may use other label types
        labels = {str(c): c for c in dataset.frame.columns}
        missing = [m.mapping for m in self._mappings if m.mapping not in labels]
        if missing:
            raise ConfigurationError(
                "ColumnMapping refers to columns missing from the transform output",
                field="ColumnMapping",
                value=", ".join(missing),
                table=dataset.name,
                details={"available_columns": ", ".join(dataset.columns)},
            )

        return [(m.column, labels[m.mapping], m.data_type_name) for m in self._mappings]

    def _iter_batches(self, frame: pd.DataFrame) -> Iterator[pd.DataFrame]:
        for start in range(0, len(frame.index), self.batch_size):
            yield frame.iloc[start:start + self.batch_size]

    def insert(self, dataset: Dataset) -> int:
        """Bulk insert a dataset into the table named by ``dataset.name``.

        All batches are committed together at the end.

        Returns:
            Number of rows written, as reported by the driver

        Raises:
            ConfigurationError: If the column mappings do not fit the dataset
            WriteError: If the writer is not open or the store rejects the write
        """
        if self._conn is None:
            raise WriteError(
                "Batch writer is not open",
                provider=self.provider.value,
                table=dataset.name,
                suggestion="Use the writer as a context manager",
            )

        pairs = self.column_pairs(dataset)
        if dataset.is_empty:
            return 0

        written = 0
        try:
            frame = dataset.frame[[source for _, source, _ in pairs]]
            self._begin()
            for batch in self._iter_batches(frame):
                written += self._write_batch(dataset.name, pairs, batch)
            self._commit()
        except LoadError:
            self._rollback()
            raise
        except Exception as e:
            self._rollback()
            raise WriteError(
                f"Batch insert into {dataset.name} failed",
                table=dataset.name,
                provider=self.provider.value,
                rows_attempted=dataset.row_count,
                cause=e,
            ) from e

        logger.debug(
            "Inserted %d rows into %s via %s", written, dataset.name, self.provider.value
        )
        return written
