"""Tests for etl_load/lib/load.py - Load stage orchestration."""

import asyncio
import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pandas as pd
import pytest

from etl_load.lib.errors import ConfigurationError, StatementError, WriteError
from etl_load.lib.load import LoadStage, run_load
from etl_load.lib.models import Dataset, ExtractWatermark, LoadStatus
from etl_load.lib.providers.sqlite import SqliteWriter
from etl_load.lib.recorders import JsonFileRecorder, MemoryRecorder
from etl_load.lib.statements import StatementExecutor


def _last_record(context):
    path = Path(context.recorder_options["state_dir"]) / "orders_sync_load.json"
    return json.loads(path.read_text())


class TestEmptyDataset:
    """An empty transform result short-circuits the stage."""

    def test_records_zero_rows_without_touching_target(self, make_context):
        context = make_context(
            Dataset(name="orders", frame=pd.DataFrame({"id": []})),
            PreCommand="DELETE FROM staging",
        )

        with patch.object(SqliteWriter, "connect") as connect:
            record = run_load(context)

        connect.assert_not_called()
        assert record.row_count == 0
        assert record.elapsed_ms == 0
        assert record.pre_command is None
        assert record.post_command is None
        assert record.status is LoadStatus.SKIPPED
        saved = _last_record(context)
        assert saved["table"] == "orders"
        assert saved["elapsed_ms"] == 0
        assert saved["status"] == "skipped"

    def test_statements_not_run(self, make_context, sqlite_target, fetch_rows):
        context = make_context(
            Dataset(name="orders", frame=pd.DataFrame()),
            PreCommand="DELETE FROM staging",
            PostCommand="DELETE FROM staging",
        )

        run_load(context)

        assert len(fetch_rows(sqlite_target, "SELECT * FROM staging")) == 2


class TestSuccessfulLoad:
    """Tests for a full load run against SQLite."""

    def test_rows_written_and_recorded(self, make_context, orders_dataset, sqlite_target, fetch_rows):
        context = make_context(orders_dataset, PreCommand="DELETE FROM staging")

        record = run_load(context)

        assert record.row_count == 3
        assert record.status is LoadStatus.SUCCEEDED
        assert record.elapsed_ms is not None and record.elapsed_ms >= 0
        assert record.pre_command is not None
        assert record.pre_command.command_text == "DELETE FROM staging"
        assert record.pre_command.elapsed_ms >= 0
        assert record.post_command is None
        assert fetch_rows(sqlite_target, "SELECT * FROM staging") == []
        assert len(fetch_rows(sqlite_target, "SELECT * FROM orders")) == 3

        saved = _last_record(context)
        assert saved["row_count"] == 3
        assert saved["status"] == "succeeded"
        assert saved["pre_command"]["command_text"] == "DELETE FROM staging"

    def test_dataset_renamed_to_table(self, make_context, orders_dataset):
        context = make_context(orders_dataset)
        run_load(context)
        assert context.dataset.name == "orders"

    def test_pre_and_post_share_watermark_parameters(self, make_context, orders_dataset, sqlite_target, fetch_rows):
        context = make_context(
            orders_dataset,
            PreCommand="DELETE FROM staging WHERE id > @LastMaxId",
            PostCommand="INSERT INTO staging (id, note) VALUES (@LastMaxId, 'loaded')",
        )
        context.last_extract = ExtractWatermark(max_id=1, query_time="2025-01-15T00:00:00")

        record = run_load(context)

        expected = {
            "LastMaxId": 1,
            "LastQueryTime": "2025-01-15T00:00:00",
            "LastMaxModifyTime": None,
        }
        assert record.pre_command.parameters == expected
        assert record.post_command.parameters == expected
        assert fetch_rows(sqlite_target, "SELECT id, note FROM staging ORDER BY note") == [
            (1, "loaded"),
            (1, "old"),
        ]

    def test_watermark_from_recorder(self, make_context, orders_dataset, tmp_path):
        context = make_context(orders_dataset, PreCommand="DELETE FROM staging WHERE id > @LastMaxId")
        JsonFileRecorder(context.recorder_options["state_dir"]).save_last_extract(
            "orders_sync", ExtractWatermark(max_id=5)
        )

        record = run_load(context)

        assert record.pre_command.parameters["LastMaxId"] == 5

    def test_no_watermark_binds_none(self, make_context, orders_dataset):
        context = make_context(orders_dataset, PostCommand="UPDATE staging SET note = 'x'")
        record = run_load(context)
        assert record.post_command.parameters == {
            "LastMaxId": None,
            "LastQueryTime": None,
            "LastMaxModifyTime": None,
        }

    def test_column_mapping_applied(self, make_context, sqlite_target, fetch_rows):
        dataset = Dataset.from_records(
            "transform", [{"order_id": 10, "amount": 5.5}, {"order_id": 11, "amount": 6.5}]
        )
        context = make_context(
            dataset,
            ColumnMapping=[
                {"Column": "id", "Mapping": "order_id"},
                {"Column": "total", "Mapping": "amount"},
            ],
        )

        record = run_load(context)

        assert record.row_count == 2
        assert fetch_rows(sqlite_target, "SELECT id, total FROM orders ORDER BY id") == [
            (10, 5.5),
            (11, 6.5),
        ]

    def test_whitespace_command_is_executed(self, make_context, orders_dataset):
        context = make_context(orders_dataset, PostCommand="   ")

        with patch.object(StatementExecutor, "execute", new=AsyncMock(return_value=0.5)) as execute:
            record = run_load(context)

        execute.assert_awaited_once()
        assert execute.call_args[0][0] == "   "
        assert record.post_command is not None
        assert record.post_command.command_text == "   "

    def test_memory_recorder(self, make_context, orders_dataset):
        recorder = MemoryRecorder()
        context = make_context(orders_dataset)
        context.recorder = "memory"
        context.recorder_options = {}

        with patch("etl_load.lib.load.get_recorder", return_value=recorder):
            record = run_load(context)

        assert recorder.loads["orders_sync"] == [record]

    def test_row_count_mismatch_logged(self, make_context, orders_dataset, caplog):
        context = make_context(orders_dataset)

        with patch("etl_load.lib.providers.base.rows_affected", return_value=1):
            with caplog.at_level("WARNING"):
                record = run_load(context)

        assert record.row_count == 1
        assert "Writer reported 1 rows for 3 input rows" in caplog.text

    def test_single_load_rows_metric(self, make_context, orders_dataset, caplog):
        context = make_context(orders_dataset)

        with caplog.at_level("INFO", logger="etl_load.lib.load"):
            record = run_load(context)

        metrics = [r for r in caplog.records if r.getMessage().startswith("METRIC load_rows")]
        assert len(metrics) == 1
        assert metrics[0].getMessage() == (
            f"METRIC load_rows=3 table=orders row_count=3 elapsed_ms={record.elapsed_ms}"
        )
        assert metrics[0].metric_value == 3
        assert metrics[0].metric_unit == "rows"
        assert metrics[0].row_count == 3
        assert metrics[0].table == "orders"
        assert metrics[0].task_id == "orders_sync"

    def test_integer_column_labels(self, make_context, sqlite_target, fetch_rows):
        context = make_context(
            Dataset(name="transform", frame=pd.DataFrame([[1, "a", 2.0]])),
            ColumnMapping=[
                {"Column": "id", "Mapping": "0"},
                {"Column": "customer", "Mapping": "1"},
                {"Column": "total", "Mapping": "2"},
            ],
        )

        record = run_load(context)

        assert record.row_count == 1
        assert fetch_rows(sqlite_target, "SELECT id, customer, total FROM orders") == [(1, "a", 2.0)]

    def test_non_object_extract_watermark_binds_none(self, make_context, orders_dataset):
        context = make_context(orders_dataset, PostCommand="UPDATE staging SET note = 'x'")
        state_dir = Path(context.recorder_options["state_dir"])
        state_dir.mkdir(parents=True)
        (state_dir / "orders_sync_extract.json").write_text("[1, 2]")

        record = run_load(context)

        assert record.row_count == 3
        assert record.post_command.parameters == {
            "LastMaxId": None,
            "LastQueryTime": None,
            "LastMaxModifyTime": None,
        }

    def test_run_is_awaitable(self, make_context, orders_dataset):
        record = asyncio.run(LoadStage().run(make_context(orders_dataset)))
        assert record.row_count == 3


class TestFailures:
    """Failure handling: partial record, writer release, re-raise."""

    def test_unknown_provider_fails_before_io(self, make_context, orders_dataset, sqlite_target, fetch_rows):
        context = make_context(orders_dataset, DbProvider="Oracle", PreCommand="DELETE FROM staging")

        with pytest.raises(ConfigurationError):
            run_load(context)

        assert len(fetch_rows(sqlite_target, "SELECT * FROM staging")) == 2
        assert not (Path(context.recorder_options["state_dir"]) / "orders_sync_load.json").exists()

    def test_mapping_without_column_fails_before_io(self, make_context, orders_dataset, sqlite_target, fetch_rows):
        context = make_context(orders_dataset, ColumnMapping=[{"Mapping": "id"}])

        with pytest.raises(ConfigurationError) as exc_info:
            run_load(context)

        assert any("missing required field 'Column'" in issue for issue in exc_info.value.issues)
        assert fetch_rows(sqlite_target, "SELECT * FROM orders") == []
        assert not (Path(context.recorder_options["state_dir"]) / "orders_sync_load.json").exists()

    def test_missing_table_parameter(self, make_context, orders_dataset):
        context = make_context(orders_dataset)
        del context.parameters["Table"]

        with pytest.raises(ConfigurationError, match="Table: required field is missing"):
            run_load(context)

    def test_write_failure_records_partial_run(self, make_context, orders_dataset, sqlite_target, fetch_rows):
        context = make_context(
            orders_dataset,
            Table="missing_table",
            PreCommand="DELETE FROM staging",
            PostCommand="INSERT INTO staging (id, note) VALUES (99, 'post')",
        )

        with pytest.raises(WriteError):
            run_load(context)

        saved = json.loads(
            (Path(context.recorder_options["state_dir"]) / "orders_sync_load.json").read_text()
        )
        assert saved["status"] == "failed"
        assert saved["table"] == "missing_table"
        assert saved["row_count"] == 0
        assert saved["pre_command"]["command_text"] == "DELETE FROM staging"
        assert saved["post_command"] is None
        assert "missing_table" in saved["error"]
        # pre statement committed, post statement never ran
        assert fetch_rows(sqlite_target, "SELECT * FROM staging") == []

    def test_pre_command_failure_skips_write(self, make_context, orders_dataset, sqlite_target, fetch_rows):
        context = make_context(orders_dataset, PreCommand="DELETE FROM nowhere")

        with pytest.raises(StatementError):
            run_load(context)

        assert fetch_rows(sqlite_target, "SELECT * FROM orders") == []
        assert _last_record(context)["status"] == "failed"

    def test_post_command_failure_keeps_written_rows(self, make_context, orders_dataset, sqlite_target, fetch_rows):
        context = make_context(orders_dataset, PostCommand="DELETE FROM nowhere")

        with pytest.raises(StatementError):
            run_load(context)

        assert len(fetch_rows(sqlite_target, "SELECT * FROM orders")) == 3
        saved = _last_record(context)
        assert saved["status"] == "failed"
        assert saved["row_count"] == 3

    def test_writer_closed_on_success_and_failure(self, make_context, orders_dataset):
        closed = []
        original_close = SqliteWriter.close

        def tracking_close(self):
            closed.append(self.is_open)
            original_close(self)

        with patch.object(SqliteWriter, "close", tracking_close):
            run_load(make_context(orders_dataset))
            with pytest.raises(WriteError):
                run_load(make_context(orders_dataset, Table="missing_table"))

        assert closed == [True, True]

    def test_recorder_failure_does_not_mask_error(self, make_context, orders_dataset):
        recorder = MemoryRecorder()

        async def broken_record(task_id, record):
            raise RuntimeError("disk full")

        recorder.record_load = broken_record
        context = make_context(orders_dataset, Table="missing_table")

        with patch("etl_load.lib.load.get_recorder", return_value=recorder):
            with pytest.raises(WriteError):
                run_load(context)
