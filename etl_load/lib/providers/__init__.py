"""Batch writer backends for the Load stage.

Each provider family registers its writer class on import. Look writers up
by provider identity:

    from etl_load.lib.providers import get_writer_class

    writer_class = get_writer_class("SqlServer")
    with writer_class(connection_string) as writer:
        writer.insert(dataset)
"""

from __future__ import annotations

from typing import List, Type, Union

from etl_load.lib.errors import ConfigurationError
from etl_load.lib.models import DbProvider
from etl_load.lib.providers.base import WRITER_REGISTRY, BatchWriter, register_writer
from etl_load.lib.providers.duckdb_backend import DuckDbWriter
from etl_load.lib.providers.mssql import SqlServerWriter
from etl_load.lib.providers.postgres import PostgresWriter
from etl_load.lib.providers.sqlite import SqliteWriter

__all__ = [
    "BatchWriter",
    "DuckDbWriter",
    "PostgresWriter",
    "SqlServerWriter",
    "SqliteWriter",
    "get_writer_class",
    "list_providers",
    "register_writer",
]


def get_writer_class(provider: Union[DbProvider, str]) -> Type[BatchWriter]:
    """Get the batch writer class registered for a provider.

    Raises:
        ConfigurationError: If the provider is unknown or has no writer
    """
    try:
        key = DbProvider.parse(provider)
    except ValueError as e:
        raise ConfigurationError(str(e), field="DbProvider", value=provider) from e

    writer_class = WRITER_REGISTRY.get(key)
    if writer_class is None:
        raise ConfigurationError(
            f"No batch writer registered for provider '{key.value}'",
            field="DbProvider",
            value=key.value,
            details={"registered": ", ".join(list_providers())},
        )
    return writer_class


def list_providers() -> List[str]:
    """List provider names with a registered writer."""
    return [provider.value for provider in WRITER_REGISTRY]
