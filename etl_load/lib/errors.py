"""Structured exception hierarchy for the Load stage.

Every failure surfaced by a load run is a ``LoadError`` subclass carrying
enough context (table, task, details, suggestion) to debug it from a log
line alone.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

__all__ = [
    "LoadError",
    "ConfigurationError",
    "StatementError",
    "WriteError",
    "RecorderError",
]


class LoadError(Exception):
    """Base exception for all Load stage errors.

    Provides structured error information for debugging.
    """

    def __init__(
        self,
        message: str,
        *,
        table: Optional[str] = None,
        task_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.table = table
        self.task_id = task_id
        self.details = details or {}
        self.suggestion = suggestion
        self.cause = cause

        if cause is not None:
            self.details.setdefault("cause", str(cause))
            self.details.setdefault("cause_type", type(cause).__name__)

        parts = [message]

        if table or task_id:
            parts.insert(0, f"[{task_id or '?'}.{table or '?'}]")

        if self.details:
            parts.append("\nDetails:")
            parts.extend(f"  {k}: {v}" for k, v in self.details.items())

        if suggestion:
            parts.append(f"\nSuggestion: {suggestion}")

        super().__init__("\n".join(parts) if len(parts) > 1 else message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "table": self.table,
            "task_id": self.task_id,
            "details": self.details,
            "suggestion": self.suggestion,
        }


class ConfigurationError(LoadError):
    """Required load parameter missing or malformed.

    Raised before any I/O happens. ``issues`` holds every problem found
    when several fields were validated together.
    """

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Any = None,
        issues: Optional[List[str]] = None,
        **kwargs: Any,
    ) -> None:
        self.field = field
        self.value = value
        self.issues = list(issues or [])

        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        if self.issues:
            details["issue_count"] = len(self.issues)
            issue_lines = "\n".join(f"  - {issue}" for issue in self.issues)
            message = f"{message}\n\nIssues found:\n{issue_lines}"

        super().__init__(message, details=details, **kwargs)


class StatementError(LoadError):
    """A pre or post statement could not be compiled or executed."""

    def __init__(
        self,
        message: str,
        *,
        statement: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        self.statement = statement

        details = kwargs.pop("details", {})
        if statement:
            details["statement"] = statement

        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = (
                "Run the statement manually against the target database and "
                "check the watermark parameter names (@LastMaxId, "
                "@LastQueryTime, @LastMaxModifyTime)."
            )

        super().__init__(message, details=details, suggestion=suggestion, **kwargs)


class WriteError(LoadError):
    """The target store rejected the batch write."""

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        rows_attempted: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        self.provider = provider
        self.rows_attempted = rows_attempted

        details = kwargs.pop("details", {})
        if provider:
            details["provider"] = provider
        if rows_attempted is not None:
            details["rows_attempted"] = rows_attempted

        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = (
                "Check constraints and column types on the target table, "
                "and that ColumnMapping matches the transform output."
            )

        super().__init__(message, details=details, suggestion=suggestion, **kwargs)


class RecorderError(LoadError):
    """Persisting or reading run metadata failed.

    The data written to the target store is not undone.
    """

    def __init__(
        self,
        message: str,
        *,
        recorder: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        self.recorder = recorder

        details = kwargs.pop("details", {})
        if recorder:
            details["recorder"] = recorder

        super().__init__(message, details=details, **kwargs)
