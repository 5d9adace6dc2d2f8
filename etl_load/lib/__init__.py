"""Load stage library modules.

This package contains the configuration model, batch writers, statement
execution and run recorders used by the Load stage.
"""

from etl_load.lib.config import LoadConfig, LoadSettings
from etl_load.lib.config_loader import LoadJob, load_job, parse_job
from etl_load.lib.env import expand_env_vars, load_env_file
from etl_load.lib.errors import (
    ConfigurationError,
    LoadError,
    RecorderError,
    StatementError,
    WriteError,
)
from etl_load.lib.load import LoadStage, run_load
from etl_load.lib.logging import LoadLogger, get_load_logger, setup_logging
from etl_load.lib.mapping import resolve_column_mappings
from etl_load.lib.metrics import LoadMetrics, PhaseTimer
from etl_load.lib.models import (
    ColumnMapping,
    Dataset,
    DbProvider,
    ExecutedCommand,
    ExtractWatermark,
    LoadContext,
    LoadRunRecord,
    LoadStatus,
    WatermarkParameters,
)
from etl_load.lib.providers import BatchWriter, get_writer_class, list_providers
from etl_load.lib.recorders import (
    JsonFileRecorder,
    LoadRecorder,
    MemoryRecorder,
    get_recorder,
    list_recorders,
)
from etl_load.lib.statements import StatementExecutor, compile_statement

__all__ = [
    # Configuration
    "LoadConfig",
    "LoadSettings",
    "LoadJob",
    "load_job",
    "parse_job",
    "expand_env_vars",
    "load_env_file",
    # Errors
    "LoadError",
    "ConfigurationError",
    "StatementError",
    "WriteError",
    "RecorderError",
    # Logging and metrics
    "LoadLogger",
    "get_load_logger",
    "setup_logging",
    "LoadMetrics",
    "PhaseTimer",
    # Data model
    "ColumnMapping",
    "Dataset",
    "DbProvider",
    "ExecutedCommand",
    "ExtractWatermark",
    "LoadContext",
    "LoadRunRecord",
    "LoadStatus",
    "WatermarkParameters",
    "resolve_column_mappings",
    # Stage
    "LoadStage",
    "run_load",
    "StatementExecutor",
    "compile_statement",
    # Writers and recorders
    "BatchWriter",
    "get_writer_class",
    "list_providers",
    "LoadRecorder",
    "JsonFileRecorder",
    "MemoryRecorder",
    "get_recorder",
    "list_recorders",
]
