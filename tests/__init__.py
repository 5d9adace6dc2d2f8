"""etl-load test suite.

Unit tests live in tests/unit/ and run against throwaway SQLite (and, when
installed, DuckDB) databases under pytest's tmp_path. SQL Server and
PostgreSQL writers are tested with mocked drivers.
"""
