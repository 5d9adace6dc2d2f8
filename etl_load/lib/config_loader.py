"""YAML job files for load runs.

Example YAML (orders_load.yaml):
    task_id: orders_sync
    build_key: orders
    recorder: json
    recorder_options:
      state_dir: ./.state
    load:
      Table: dbo.orders
      DbProvider: SqlServer
      ConnectionString: "${ORDERS_DB}"
      PreCommand: "DELETE FROM dbo.orders WHERE id > @LastMaxId"
      ColumnMapping:
        - {Column: id, Mapping: order_id, DataTypeName: bigint}

Usage:
    from etl_load.lib.config_loader import load_job
    job = load_job("./jobs/orders_load.yaml")
    context = job.to_context(dataset)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from etl_load.lib.config import LoadConfig
from etl_load.lib.errors import ConfigurationError
from etl_load.lib.models import Dataset, ExtractWatermark, LoadContext

logger = logging.getLogger(__name__)

__all__ = ["LoadJob", "load_job", "parse_job"]


@dataclass
class LoadJob:
    """A load job as declared in a YAML file."""

    task_id: str
    build_key: str
    parameters: Dict[str, Any]
    recorder: Optional[str] = None
    recorder_options: Dict[str, Any] = field(default_factory=dict)
    last_extract: Optional[ExtractWatermark] = None

    def to_context(self, dataset: Dataset) -> LoadContext:
        context = LoadContext(
            build_key=self.build_key,
            task_id=self.task_id,
            parameters=dict(self.parameters),
            dataset=dataset,
            last_extract=self.last_extract,
            recorder_options=dict(self.recorder_options),
        )
        if self.recorder:
            context.recorder = self.recorder
        return context


def parse_job(config: Dict[str, Any]) -> LoadJob:
    """Build a LoadJob from a parsed YAML document.

    The ``load`` section is validated up front so a broken job file fails
    before any data is read.

    Raises:
        ConfigurationError: If required sections are missing or invalid
    """
    if not isinstance(config, dict):
        raise ConfigurationError("Job file must contain a mapping at the top level")

    missing = [key for key in ("task_id", "load") if key not in config]
    if missing:
        raise ConfigurationError(
            "Job file is missing required sections",
            issues=[f"{key} is required" for key in missing],
        )

    parameters = config["load"]
    if not isinstance(parameters, dict):
        raise ConfigurationError("load must be a mapping of load parameters", field="load")
    LoadConfig.from_parameters(parameters)

    last_extract = None
    if config.get("last_extract"):
        last_extract = ExtractWatermark.from_dict(config["last_extract"])

    task_id = str(config["task_id"])
    return LoadJob(
        task_id=task_id,
        build_key=str(config.get("build_key") or task_id),
        parameters=parameters,
        recorder=config.get("recorder"),
        recorder_options=dict(config.get("recorder_options") or {}),
        last_extract=last_extract,
    )


def load_job(path: Union[str, Path]) -> LoadJob:
    """Load a job from a YAML file.

    Raises:
        ConfigurationError: If the file is missing, not valid YAML or invalid
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Job file not found: {path}", field="path", value=str(path))

    try:
        config = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}", cause=e) from e

    logger.debug("Loaded job file %s", path)
    return parse_job(config or {})
