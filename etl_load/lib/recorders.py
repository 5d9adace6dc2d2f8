"""Run metadata recorders.

A recorder persists one ``LoadRunRecord`` per Load invocation, keyed by ETL
task id, and serves the watermark left by the task's last extract run.

Recorders are looked up by name:

    recorder = get_recorder("json", state_dir="/var/lib/etl")
    await recorder.record_load("orders_sync", record)

The JSON recorder keeps its state in a directory, one set of files per task:

    <state_dir>/<task>_load.json            latest load record
    <state_dir>/<task>_load_history.jsonl   every load record, one per line
    <state_dir>/<task>_extract.json         last extract watermark

Task ids that need sanitising for a file name also carry a short digest
of the raw id, so "a/b" and "a_b" never share files.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, ClassVar, Dict, List, Optional, Type, Union

from etl_load.lib.errors import ConfigurationError, RecorderError
from etl_load.lib.models import ExtractWatermark, LoadRunRecord

logger = logging.getLogger(__name__)

__all__ = [
    "JsonFileRecorder",
    "LoadRecorder",
    "MemoryRecorder",
    "RECORDER_REGISTRY",
    "get_recorder",
    "list_recorders",
    "register_recorder",
]

DEFAULT_STATE_DIR = ".state"

RECORDER_REGISTRY: Dict[str, Type["LoadRecorder"]] = {}


def register_recorder(name: str) -> Callable[[Type["LoadRecorder"]], Type["LoadRecorder"]]:
    """Register a recorder class under a name."""

    def decorator(cls: Type["LoadRecorder"]) -> Type["LoadRecorder"]:
        cls.name = name
        RECORDER_REGISTRY[name] = cls
        return cls

    return decorator


def get_recorder(name: str, **options: Any) -> "LoadRecorder":
    """Create the recorder registered under ``name``.

    Raises:
        ConfigurationError: If no recorder has that name, or the options
            do not fit its constructor
    """
    recorder_class = RECORDER_REGISTRY.get(name)
    if recorder_class is None:
        raise ConfigurationError(
            f"Unknown recorder '{name}'",
            field="recorder",
            value=name,
            details={"registered": ", ".join(list_recorders())},
        )
    try:
        return recorder_class(**options)
    except TypeError as e:
        raise ConfigurationError(
            f"Invalid options for recorder '{name}'",
            field="recorder_options",
            value=sorted(options),
            cause=e,
        ) from e


def list_recorders() -> List[str]:
    return list(RECORDER_REGISTRY.keys())


class LoadRecorder(ABC):
    """Persists load run records and serves last-extract watermarks."""

    name: ClassVar[str] = ""

    @abstractmethod
    async def record_load(self, task_id: str, record: LoadRunRecord) -> None:
        """Persist the record of one load run.

        Raises:
            RecorderError: If the record cannot be stored
        """

    @abstractmethod
    async def get_last_extract(self, task_id: str) -> Optional[ExtractWatermark]:
        """Return the watermark of the task's last extract, or None."""


@register_recorder("memory")
class MemoryRecorder(LoadRecorder):
    """Keeps records in process memory. Useful for ad-hoc runs and tests."""

    def __init__(self) -> None:
        self.loads: Dict[str, List[LoadRunRecord]] = {}
        self.extracts: Dict[str, ExtractWatermark] = {}

    async def record_load(self, task_id: str, record: LoadRunRecord) -> None:
        self.loads.setdefault(task_id, []).append(record)

    async def get_last_extract(self, task_id: str) -> Optional[ExtractWatermark]:
        return self.extracts.get(task_id)

    def set_last_extract(self, task_id: str, watermark: ExtractWatermark) -> None:
        self.extracts[task_id] = watermark


_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


@register_recorder("json")
class JsonFileRecorder(LoadRecorder):
    """Stores run records as JSON files in a state directory."""

    def __init__(self, state_dir: Optional[Union[str, Path]] = None) -> None:
        self.state_dir = Path(state_dir or DEFAULT_STATE_DIR)

    def _path(self, task_id: str, suffix: str) -> Path:
        key = _UNSAFE_KEY_CHARS.sub("_", task_id)
        if key != task_id:
            # Sanitised ids get a digest of the raw id so "a/b" and "a_b" stay apart
            digest = hashlib.sha1(task_id.encode("utf-8")).hexdigest()[:8]
            key = f"{key}_{digest}"
        return self.state_dir / f"{key}_{suffix}"

    async def record_load(self, task_id: str, record: LoadRunRecord) -> None:
        await asyncio.to_thread(self.record_load_sync, task_id, record)

    def record_load_sync(self, task_id: str, record: LoadRunRecord) -> None:
        data = {"task_id": task_id, **record.to_dict()}
        try:
            payload = json.dumps(data, indent=2, default=str)
            self.state_dir.mkdir(parents=True, exist_ok=True)
            self._path(task_id, "load.json").write_text(payload)
            with self._path(task_id, "load_history.jsonl").open("a") as history:
                history.write(json.dumps(data, default=str) + "\n")
        except (OSError, TypeError, ValueError) as e:
            raise RecorderError(
                "Could not write load record",
                recorder=self.name,
                table=record.table,
                task_id=task_id,
                details={"state_dir": str(self.state_dir)},
                cause=e,
            ) from e
        logger.info(
            "Recorded load for %s: table=%s rows=%d status=%s",
            task_id,
            record.table,
            record.row_count,
            record.status.value,
        )

    async def get_last_extract(self, task_id: str) -> Optional[ExtractWatermark]:
        return await asyncio.to_thread(self.get_last_extract_sync, task_id)

    def get_last_extract_sync(self, task_id: str) -> Optional[ExtractWatermark]:
        path = self._path(task_id, "extract.json")
        if not path.exists():
            logger.debug("No extract watermark found for %s", task_id)
            return None
        try:
            data = json.loads(path.read_text())
        except json.JSONDecodeError as e:
            logger.warning("Invalid extract watermark file for %s: %s", task_id, e)
            return None
        except OSError as e:
            raise RecorderError(
                "Could not read extract watermark",
                recorder=self.name,
                task_id=task_id,
                details={"path": str(path)},
                cause=e,
            ) from e
        if not isinstance(data, dict):
            logger.warning(
                "Extract watermark file for %s holds %s, expected an object",
                task_id,
                type(data).__name__,
            )
            return None
        return ExtractWatermark.from_dict(data)

    def save_last_extract(self, task_id: str, watermark: ExtractWatermark) -> None:
        """Store the watermark of an extract run (written by the extract stage)."""
        self.state_dir.mkdir(parents=True, exist_ok=True)
        data = {
            "task_id": task_id,
            **watermark.to_dict(),
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        self._path(task_id, "extract.json").write_text(json.dumps(data, indent=2, default=str))
        logger.info("Saved extract watermark for %s", task_id)

    def load_history(self, task_id: str) -> List[Dict[str, Any]]:
        """Return every recorded load for a task, oldest first."""
        path = self._path(task_id, "load_history.jsonl")
        if not path.exists():
            return []
        return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]

    def last_load(self, task_id: str) -> Optional[Dict[str, Any]]:
        path = self._path(task_id, "load.json")
        if not path.exists():
            return None
        return json.loads(path.read_text())
