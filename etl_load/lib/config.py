"""Typed configuration for the Load stage.

The raw parameter mapping handed to a load run is validated once, at the
stage entry point, into a ``LoadConfig``. Every problem found is reported
in a single ``ConfigurationError`` instead of failing on first access.

Uses Pydantic v2 for the per-run model and pydantic-settings for
environment-level defaults.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from etl_load.lib.env import expand_env_vars
from etl_load.lib.errors import ConfigurationError
from etl_load.lib.mapping import resolve_column_mappings
from etl_load.lib.models import ColumnMapping, DbProvider

logger = logging.getLogger(__name__)

__all__ = ["LoadConfig", "LoadSettings", "format_validation_issues"]

DEFAULT_BATCH_SIZE = 1000

FILE_PROVIDERS = (DbProvider.SQLITE, DbProvider.DUCKDB)


class LoadConfig(BaseModel):
    """Validated load parameters.

    Field aliases match the configuration keys used in pipeline files.

    Example:
        >>> config = LoadConfig.from_parameters({
        ...     "Table": "dbo.orders",
        ...     "DbProvider": "SqlServer",
        ...     "ConnectionString": "${ORDERS_DB}",
        ...     "PreCommand": "DELETE FROM dbo.orders WHERE id > @LastMaxId",
        ... })
        >>> config.db_provider
        <DbProvider.SQLSERVER: 'SqlServer'>
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    table: str = Field(..., alias="Table", min_length=1, description="Destination table")
    db_provider: DbProvider = Field(..., alias="DbProvider", description="Target store family")
    connection_string: str = Field(
        ..., alias="ConnectionString", min_length=1, description="Driver connection string"
    )
    column_mappings: List[ColumnMapping] = Field(
        default_factory=list, alias="ColumnMapping", description="Explicit column mappings"
    )
    pre_command: Optional[str] = Field(default=None, alias="PreCommand")
    post_command: Optional[str] = Field(default=None, alias="PostCommand")
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, alias="BatchSize", ge=1)

    @field_validator("db_provider", mode="before")
    @classmethod
    def parse_provider(cls, v: Any) -> DbProvider:
        return DbProvider.parse(v)

    @field_validator("connection_string")
    @classmethod
    def expand_connection_string(cls, v: str, info: ValidationInfo) -> str:
        v = expand_env_vars(v)
        # Statements and the writer each open their own connection
        if v.strip().lower() == ":memory:" and info.data.get("db_provider") in FILE_PROVIDERS:
            raise ValueError(
                "':memory:' opens a separate empty database per connection; "
                "use a database file path"
            )
        return v

    @field_validator("column_mappings", mode="before")
    @classmethod
    def resolve_mappings(cls, v: Any) -> List[ColumnMapping]:
        try:
            return resolve_column_mappings(v)
        except ConfigurationError as e:
            raise ValueError(e.message) from e

    @property
    def has_pre_command(self) -> bool:
        # None and "" are empty; whitespace is kept and executed
        return bool(self.pre_command)

    @property
    def has_post_command(self) -> bool:
        return bool(self.post_command)

    @classmethod
    def from_parameters(cls, parameters: Mapping[str, Any]) -> "LoadConfig":
        """Validate a raw parameter mapping.

        Raises:
            ConfigurationError: Listing every missing or malformed field
        """
        if parameters is None:
            parameters = {}
        try:
            return cls.model_validate(dict(parameters))
        except ValidationError as exc:
            issues = format_validation_issues(exc)
            table = parameters.get("Table") if isinstance(parameters.get("Table"), str) else None
            raise ConfigurationError(
                "Invalid load configuration",
                issues=issues,
                table=table,
                suggestion="Required keys are Table, DbProvider and ConnectionString",
            ) from exc


def format_validation_issues(exc: ValidationError) -> List[str]:
    """Flatten a pydantic ValidationError into readable issue lines."""
    issues = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ())) or "<root>"
        if err.get("type") == "missing":
            issues.append(f"{location}: required field is missing")
        else:
            message = err.get("msg", "invalid value")
            # pydantic prefixes re-raised ValueErrors
            message = message.replace("Value error, ", "")
            issues.append(f"{location}: {message}")
    return issues


class LoadSettings(BaseSettings):
    """Environment-based defaults for load runs.

    Automatically loads from environment variables with ETL_LOAD_ prefix.

    Example:
        >>> # ETL_LOAD_STATE_DIR=/var/lib/etl
        >>> # ETL_LOAD_LOG_FORMAT=json
        >>> settings = LoadSettings()
        >>> settings.state_dir
        '/var/lib/etl'
    """

    state_dir: str = Field(default=".state", description="Directory for JSON run records")
    recorder: str = Field(default="json", description="Run record recorder name")
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="console", description="Log format: 'json' or 'console'")
    log_file: Optional[str] = Field(default=None, description="Optional log file path")

    model_config = SettingsConfigDict(
        env_prefix="ETL_LOAD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("log_format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        valid_formats = ["json", "console"]
        if v.lower() not in valid_formats:
            raise ValueError(f"log_format must be one of: {valid_formats}")
        return v.lower()

    def recorder_options(self) -> Dict[str, Any]:
        if self.recorder == "json":
            return {"state_dir": self.state_dir}
        return {}
