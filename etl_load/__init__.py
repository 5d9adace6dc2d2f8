"""Load stage of the ETL pipeline.

Writes a transform result into a target database table in batches, runs
optional pre and post SQL statements parameterised with the last extract
watermark, and records the run.

Usage:
    python -m etl_load run ./jobs/orders_load.yaml --input ./out/orders.parquet
    python -m etl_load providers
"""

from etl_load.lib.load import LoadStage, run_load
from etl_load.lib.models import Dataset, DbProvider, LoadContext, LoadRunRecord

__all__ = [
    "Dataset",
    "DbProvider",
    "LoadContext",
    "LoadRunRecord",
    "LoadStage",
    "run_load",
]
