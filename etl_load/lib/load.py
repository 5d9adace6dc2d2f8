"""Load stage orchestration.

Sequences one load run:

    validate config -> resolve writer + recorder -> empty? record and stop
    -> pre statement -> batch write -> post statement -> record

Every step is awaited before the next one starts. There is no transaction
spanning the pre statement, the write and the post statement; each commits
on its own.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Type

from etl_load.lib.config import LoadConfig
from etl_load.lib.logging import LoadLogger, get_load_logger
from etl_load.lib.metrics import LoadMetrics
from etl_load.lib.models import (
    ExecutedCommand,
    LoadContext,
    LoadRunRecord,
    LoadStatus,
    WatermarkParameters,
)
from etl_load.lib.providers import BatchWriter, get_writer_class
from etl_load.lib.recorders import LoadRecorder, get_recorder
from etl_load.lib.statements import StatementExecutor

logger = logging.getLogger(__name__)

__all__ = ["LoadStage", "run_load"]


class LoadStage:
    """Writes a transform result to its target table and records the run.

    Example:
        context = LoadContext(
            build_key="orders",
            task_id="orders_sync",
            parameters={
                "Table": "orders",
                "DbProvider": "SQLite",
                "ConnectionString": "/tmp/dw.db",
                "PreCommand": "DELETE FROM orders WHERE id > @LastMaxId",
            },
            dataset=Dataset.from_records("transform", rows),
        )
        record = await LoadStage().run(context)
    """

    name = "Load"

    async def run(self, context: LoadContext) -> LoadRunRecord:
        """Run the Load stage for one context.

        Returns:
            The record handed to the recorder

        Raises:
            ConfigurationError: Before any I/O, on invalid configuration
            StatementError: If the pre or post statement fails
            WriteError: If the target store rejects the write
            RecorderError: If the run record cannot be stored
        """
        log = get_load_logger(__name__)
        log.set_context(task_id=context.task_id, build_key=context.build_key)

        config = LoadConfig.from_parameters(context.parameters)
        writer_class = get_writer_class(config.db_provider)
        recorder = get_recorder(context.recorder, **context.recorder_options)
        log.set_context(table=config.table, provider=config.db_provider.value)

        dataset = context.dataset
        record = LoadRunRecord(table=config.table, build_key=context.build_key)

        if dataset.is_empty:
            # Nothing changed upstream: skip statements and the writer entirely
            record.status = LoadStatus.SKIPPED
            record.elapsed_ms = 0.0
            log.info("Transform output is empty, skipping load into %s", config.table)
            await recorder.record_load(context.task_id, record)
            return record

        dataset.name = config.table
        metrics = LoadMetrics()

        try:
            await self._load(context, config, writer_class, recorder, record, metrics, log)
        except Exception as exc:
            if record.elapsed_ms is None:
                record.elapsed_ms = metrics.phase_durations().get("write")
            record.status = LoadStatus.FAILED
            record.error = getattr(exc, "message", None) or str(exc)
            log.error("Load into %s failed: %s", config.table, record.error)
            await self._record_failure(recorder, context.task_id, record, log)
            raise

        record.status = LoadStatus.SUCCEEDED
        await recorder.record_load(context.task_id, record)
        return record

    async def _load(
        self,
        context: LoadContext,
        config: LoadConfig,
        writer_class: Type[BatchWriter],
        recorder: LoadRecorder,
        record: LoadRunRecord,
        metrics: LoadMetrics,
        log: LoadLogger,
    ) -> None:
        extract = context.last_extract
        if extract is None:
            extract = await recorder.get_last_extract(context.task_id)
        parameters = WatermarkParameters.from_extract(extract).as_parameters()

        executor = StatementExecutor(writer_class, config.connection_string)

        if config.has_pre_command:
            elapsed = await executor.execute(config.pre_command, parameters)
            record.pre_command = ExecutedCommand(
                command_text=config.pre_command,
                parameters=dict(parameters),
                elapsed_ms=elapsed,
            )

        writer: BatchWriter = writer_class(config.connection_string, batch_size=config.batch_size)
        async with writer:
            for mapping in config.column_mappings:
                writer.add_column_mapping(mapping)
            with metrics.time_phase("write") as timer:
                rows_written = await asyncio.to_thread(writer.insert, context.dataset)
            record.row_count = rows_written
            record.elapsed_ms = timer.elapsed_ms

        if rows_written != context.dataset.row_count:
            log.warning(
                "Writer reported %d rows for %d input rows",
                rows_written,
                context.dataset.row_count,
            )
        log.metric(
            "load_rows",
            rows_written,
            unit="rows",
            table=config.table,
            row_count=rows_written,
            elapsed_ms=record.elapsed_ms,
        )

        if config.has_post_command:
            elapsed = await executor.execute(config.post_command, parameters)
            record.post_command = ExecutedCommand(
                command_text=config.post_command,
                parameters=dict(parameters),
                elapsed_ms=elapsed,
            )

    async def _record_failure(
        self,
        recorder: LoadRecorder,
        task_id: str,
        record: LoadRunRecord,
        log: LoadLogger,
    ) -> None:
        # The original error is re-raised by the caller either way
        try:
            await recorder.record_load(task_id, record)
        except Exception:
            log.exception("Could not record failed load run for %s", record.table)


def run_load(context: LoadContext, stage: Optional[LoadStage] = None) -> LoadRunRecord:
    """Run the Load stage from synchronous code."""
    return asyncio.run((stage or LoadStage()).run(context))
