"""Data model for the Load stage.

Everything here is created fresh per load invocation. The only input that
outlives a run is the last-extract watermark, which the Load stage reads
and never writes.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

import pandas as pd

__all__ = [
    "ColumnMapping",
    "Dataset",
    "DbProvider",
    "ExecutedCommand",
    "ExtractWatermark",
    "LoadContext",
    "LoadRunRecord",
    "LoadStatus",
    "WatermarkParameters",
]


class DbProvider(str, Enum):
    """Target store family. Selects the batch writer and the driver."""

    SQLSERVER = "SqlServer"
    POSTGRESQL = "PostgreSql"
    DUCKDB = "DuckDb"
    SQLITE = "SQLite"

    @classmethod
    def parse(cls, value: Any) -> "DbProvider":
        """Parse a provider name case-insensitively.

        Raises:
            ValueError: If the value names no known provider
        """
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for member in cls:
            if text in (member.value.lower(), member.name.lower()):
                return member
        valid = ", ".join(m.value for m in cls)
        raise ValueError(f"Unknown DbProvider '{value}'. Valid options: {valid}")


class LoadStatus(str, Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class Dataset:
    """Transform output handed to the Load stage.

    ``name`` starts as whatever the transform stage called it and is
    overwritten with the destination table before the write.
    """

    name: str
    frame: pd.DataFrame

    @property
    def row_count(self) -> int:
        return len(self.frame.index)

    @property
    def columns(self) -> List[str]:
        return [str(c) for c in self.frame.columns]

    @property
    def is_empty(self) -> bool:
        return self.row_count == 0

    @classmethod
    def from_records(cls, name: str, records: List[Dict[str, Any]]) -> "Dataset":
        return cls(name=name, frame=pd.DataFrame.from_records(records))


@dataclass(frozen=True)
class ColumnMapping:
    """Rule mapping a source column onto a target column."""

    column: str
    mapping: str
    data_type_name: Optional[str] = None


@dataclass(frozen=True)
class ExtractWatermark:
    """Bookkeeping left behind by the previous extract run."""

    max_id: Any = None
    query_time: Any = None
    max_modify_time: Any = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExtractWatermark":
        return cls(
            max_id=data.get("max_id"),
            query_time=data.get("query_time"),
            max_modify_time=data.get("max_modify_time"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class WatermarkParameters:
    """Named parameters exposed to pre and post statements."""

    last_max_id: Any = None
    last_query_time: Any = None
    last_max_modify_time: Any = None

    @classmethod
    def from_extract(cls, extract: Optional[ExtractWatermark]) -> "WatermarkParameters":
        if extract is None:
            return cls()
        return cls(
            last_max_id=extract.max_id,
            last_query_time=extract.query_time,
            last_max_modify_time=extract.max_modify_time,
        )

    def as_parameters(self) -> Dict[str, Any]:
        return {
            "LastMaxId": self.last_max_id,
            "LastQueryTime": self.last_query_time,
            "LastMaxModifyTime": self.last_max_modify_time,
        }


@dataclass(frozen=True)
class ExecutedCommand:
    """A pre or post statement as it was executed."""

    command_text: str
    parameters: Dict[str, Any]
    elapsed_ms: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "command_text": self.command_text,
            "parameters": dict(self.parameters),
            "elapsed_ms": self.elapsed_ms,
        }


@dataclass
class LoadRunRecord:
    """Summary of one Load invocation, handed to the recorder exactly once."""

    table: str
    row_count: int = 0
    elapsed_ms: Optional[float] = None
    pre_command: Optional[ExecutedCommand] = None
    post_command: Optional[ExecutedCommand] = None
    status: LoadStatus = LoadStatus.SUCCEEDED
    error: Optional[str] = None
    build_key: Optional[str] = None
    recorded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "table": self.table,
            "row_count": self.row_count,
            "elapsed_ms": self.elapsed_ms,
            "pre_command": self.pre_command.to_dict() if self.pre_command else None,
            "post_command": self.post_command.to_dict() if self.post_command else None,
            "status": self.status.value,
            "error": self.error,
            "build_key": self.build_key,
            "recorded_at": self.recorded_at.isoformat(),
        }


@dataclass
class LoadContext:
    """Everything one Load invocation needs from the surrounding pipeline.

    Attributes:
        build_key: Name of this build step, used in log lines
        task_id: ETL task identity; run records are keyed by it
        parameters: Raw load configuration (Table, DbProvider, ...)
        dataset: Output of the transform stage
        last_extract: Watermark from the previous extract run. When None,
            the recorder is asked for it.
        recorder: Registered recorder name
        recorder_options: Keyword arguments for the recorder factory
    """

    build_key: str
    task_id: str
    parameters: Dict[str, Any]
    dataset: Dataset
    last_extract: Optional[ExtractWatermark] = None
    recorder: str = "json"
    recorder_options: Dict[str, Any] = field(default_factory=dict)
