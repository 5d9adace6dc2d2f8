"""Tests for etl_load/lib/errors.py - structured exception hierarchy."""

import pytest

from etl_load.lib.errors import (
    ConfigurationError,
    LoadError,
    RecorderError,
    StatementError,
    WriteError,
)


class TestLoadError:
    """Tests for base LoadError class."""

    def test_basic_message(self):
        """Test error with just a message."""
        error = LoadError("Something went wrong")
        assert str(error) == "Something went wrong"
        assert error.message == "Something went wrong"

    def test_with_task_and_table(self):
        """Task and table are shown as a prefix."""
        error = LoadError("Write failed", task_id="orders_sync", table="dbo.orders")
        assert "[orders_sync.dbo.orders]" in str(error)
        assert "Write failed" in str(error)

    def test_with_details(self):
        error = LoadError("Connection error", details={"host": "db", "port": 1433})
        assert "host: db" in str(error)
        assert "port: 1433" in str(error)

    def test_with_suggestion(self):
        error = LoadError("Bad table", suggestion="Check the Table key")
        assert "Suggestion: Check the Table key" in str(error)

    def test_cause_is_added_to_details(self):
        cause = RuntimeError("socket closed")
        error = LoadError("Failed", cause=cause)
        assert error.details["cause"] == "socket closed"
        assert error.details["cause_type"] == "RuntimeError"

    def test_to_dict(self):
        error = LoadError("Failed", table="orders", task_id="t1", suggestion="retry later")
        data = error.to_dict()
        assert data["error_type"] == "LoadError"
        assert data["message"] == "Failed"
        assert data["table"] == "orders"
        assert data["task_id"] == "t1"
        assert data["suggestion"] == "retry later"

    def test_can_be_raised_and_caught(self):
        with pytest.raises(LoadError, match="boom"):
            raise LoadError("boom")


class TestConfigurationError:
    """Tests for ConfigurationError."""

    def test_field_and_value_in_details(self):
        error = ConfigurationError("Unknown provider", field="DbProvider", value="Oracle")
        assert error.field == "DbProvider"
        assert error.details["field"] == "DbProvider"
        assert error.details["value"] == "Oracle"

    def test_issues_are_listed(self):
        error = ConfigurationError(
            "Invalid load configuration",
            issues=["Table: required field is missing", "DbProvider: required field is missing"],
        )
        text = str(error)
        assert "Issues found:" in text
        assert "  - Table: required field is missing" in text
        assert error.details["issue_count"] == 2
        assert len(error.issues) == 2

    def test_is_load_error(self):
        assert issubclass(ConfigurationError, LoadError)


class TestStatementError:
    def test_statement_in_details(self):
        error = StatementError("Statement failed", statement="DELETE FROM staging")
        assert error.statement == "DELETE FROM staging"
        assert error.details["statement"] == "DELETE FROM staging"

    def test_default_suggestion_mentions_parameters(self):
        error = StatementError("Statement failed")
        assert "@LastMaxId" in error.suggestion

    def test_custom_suggestion_wins(self):
        error = StatementError("Statement failed", suggestion="Grant DELETE")
        assert error.suggestion == "Grant DELETE"


class TestWriteError:
    def test_provider_and_rows(self):
        error = WriteError("Insert failed", provider="SQLite", rows_attempted=3, table="orders")
        assert error.provider == "SQLite"
        assert error.rows_attempted == 3
        assert error.details["rows_attempted"] == 3
        assert "[?.orders]" in str(error)

    def test_zero_rows_attempted_is_kept(self):
        error = WriteError("Insert failed", rows_attempted=0)
        assert error.details["rows_attempted"] == 0


class TestRecorderError:
    def test_recorder_in_details(self):
        error = RecorderError("Could not write", recorder="json", task_id="orders_sync")
        assert error.recorder == "json"
        assert error.details["recorder"] == "json"
        assert "[orders_sync.?]" in str(error)
