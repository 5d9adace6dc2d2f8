"""Pytest configuration and fixtures."""

import sqlite3
import sys
from pathlib import Path

import pandas as pd
import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from etl_load.lib.models import Dataset, LoadContext  # noqa: E402


@pytest.fixture
def sqlite_target(tmp_path):
    """SQLite database file with an ``orders`` and a ``staging`` table."""
    db_path = tmp_path / "target.db"
    conn = sqlite3.connect(db_path)
    conn.execute("CREATE TABLE orders (id INTEGER, customer TEXT, total REAL)")
    conn.execute("CREATE TABLE staging (id INTEGER, note TEXT)")
    conn.executemany(
        "INSERT INTO staging (id, note) VALUES (?, ?)",
        [(1, "old"), (2, "old")],
    )
    conn.commit()
    conn.close()
    return str(db_path)


@pytest.fixture
def orders_dataset():
    """Three-row transform output."""
    frame = pd.DataFrame(
        {
            "id": [1, 2, 3],
            "customer": ["acme", "globex", None],
            "total": [10.5, 20.0, float("nan")],
        }
    )
    return Dataset(name="transform", frame=frame)


@pytest.fixture
def make_context(sqlite_target, tmp_path):
    """Factory for LoadContext objects targeting the SQLite fixture database."""

    def _make(dataset, **parameters):
        params = {
            "Table": "orders",
            "DbProvider": "SQLite",
            "ConnectionString": sqlite_target,
        }
        params.update(parameters)
        return LoadContext(
            build_key="orders",
            task_id="orders_sync",
            parameters=params,
            dataset=dataset,
            recorder="json",
            recorder_options={"state_dir": str(tmp_path / "state")},
        )

    return _make


@pytest.fixture
def fetch_rows():
    """Run a query against a SQLite file and return all rows."""

    def _fetch(db_path, sql):
        conn = sqlite3.connect(db_path)
        try:
            return conn.execute(sql).fetchall()
        finally:
            conn.close()

    return _fetch
