"""Column mapping resolution.

Turns the declarative ``ColumnMapping`` configuration entries into
``ColumnMapping`` objects for the batch writer:

    ColumnMapping:
      - {Column: order_id, Mapping: id}
      - {Column: amount, Mapping: total, DataTypeName: "decimal(18,2)"}
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from etl_load.lib.errors import ConfigurationError
from etl_load.lib.models import ColumnMapping

logger = logging.getLogger(__name__)

__all__ = ["find_duplicate_columns", "resolve_column_mappings"]

COLUMN_KEY = "Column"
MAPPING_KEY = "Mapping"
DATA_TYPE_KEY = "DataTypeName"


def _required_text(entry: Mapping[str, Any], key: str, index: int) -> str:
    value = entry.get(key)
    if value is None or (isinstance(value, str) and not value):
        raise ConfigurationError(
            f"ColumnMapping[{index}] is missing required field '{key}'",
            field=f"ColumnMapping[{index}].{key}",
            suggestion="Every mapping entry needs both Column and Mapping",
        )
    if not isinstance(value, str):
        raise ConfigurationError(
            f"ColumnMapping[{index}].{key} must be a string",
            field=f"ColumnMapping[{index}].{key}",
            value=value,
        )
    return value


def resolve_column_mappings(
    entries: Optional[Iterable[Any]],
) -> List[ColumnMapping]:
    """Validate raw mapping entries into ColumnMapping objects.

    Order is preserved and no entry is dropped. Duplicate target columns are
    passed through untouched; the writer decides what to do with them.

    Args:
        entries: Raw entries from configuration (dicts), or None

    Returns:
        List of ColumnMapping, empty when nothing is configured

    Raises:
        ConfigurationError: If an entry is not a mapping or lacks Column
            or Mapping
    """
    if entries is None:
        return []
    if isinstance(entries, (str, bytes)) or isinstance(entries, Mapping):
        raise ConfigurationError(
            "ColumnMapping must be a list of {Column, Mapping, DataTypeName} entries",
            field="ColumnMapping",
            value=entries,
        )

    mappings: List[ColumnMapping] = []
    for index, entry in enumerate(entries):
        if isinstance(entry, ColumnMapping):
            mappings.append(entry)
            continue
        if not isinstance(entry, Mapping):
            raise ConfigurationError(
                f"ColumnMapping[{index}] must be a mapping",
                field=f"ColumnMapping[{index}]",
                value=entry,
            )

        column = _required_text(entry, COLUMN_KEY, index)
        source = _required_text(entry, MAPPING_KEY, index)
        data_type_name = entry.get(DATA_TYPE_KEY)

        mappings.append(
            ColumnMapping(column=column, mapping=source, data_type_name=data_type_name)
        )

    logger.debug("Resolved %d column mappings", len(mappings))
    return mappings


def find_duplicate_columns(mappings: Sequence[ColumnMapping]) -> List[str]:
    """Return target column names that appear more than once, in first-seen order."""
    counts = Counter(m.column for m in mappings)
    seen: List[str] = []
    for m in mappings:
        if counts[m.column] > 1 and m.column not in seen:
            seen.append(m.column)
    return seen
