"""CLI entry point for load runs.

Usage:
    python -m etl_load run ./jobs/orders_load.yaml --input ./out/orders.parquet
    python -m etl_load run ./jobs/orders_load.yaml --input ./out/orders.csv --check
    python -m etl_load providers
    python -m etl_load history orders_sync --state-dir ./.state

The input file stands in for the transform stage output: it is read with
pandas (.csv, .parquet, .json, .jsonl) and handed to the Load stage.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import pandas as pd

from etl_load.lib.config import LoadSettings
from etl_load.lib.config_loader import load_job
from etl_load.lib.env import load_env_file
from etl_load.lib.errors import LoadError
from etl_load.lib.load import run_load
from etl_load.lib.logging import setup_logging
from etl_load.lib.models import Dataset
from etl_load.lib.providers import list_providers
from etl_load.lib.recorders import JsonFileRecorder, list_recorders

logger = logging.getLogger(__name__)


def read_input(path: Path) -> Dataset:
    """Read a transform output file into a Dataset named after the file."""
    suffix = path.suffix.lower()
    if suffix == ".csv":
        frame = pd.read_csv(path)
    elif suffix == ".parquet":
        frame = pd.read_parquet(path)
    elif suffix == ".jsonl":
        frame = pd.read_json(path, lines=True)
    elif suffix == ".json":
        frame = pd.read_json(path)
    else:
        raise ValueError(f"Unsupported input format '{suffix}'. Use .csv, .parquet, .json or .jsonl")
    return Dataset(name=path.stem, frame=frame)


def run_command(args: argparse.Namespace, settings: LoadSettings) -> int:
    job = load_job(args.config)

    if args.check:
        print(f"Job '{job.task_id}' is valid")
        return 0

    input_path = Path(args.input)
    if not input_path.exists():
        print(f"Error: input file not found: {input_path}", file=sys.stderr)
        return 1
    dataset = read_input(input_path)

    context = job.to_context(dataset)
    if not job.recorder:
        context.recorder = settings.recorder
        for key, value in settings.recorder_options().items():
            context.recorder_options.setdefault(key, value)
    if args.state_dir and context.recorder == "json":
        context.recorder_options["state_dir"] = args.state_dir

    record = run_load(context)
    print(json.dumps(record.to_dict(), indent=2, default=str))
    return 0


def history_command(args: argparse.Namespace, settings: LoadSettings) -> int:
    recorder = JsonFileRecorder(args.state_dir or settings.state_dir)
    records = recorder.load_history(args.task_id)
    if not records:
        print(f"No load history for {args.task_id}")
        return 0
    for entry in records:
        print(
            f"{entry.get('recorded_at')}  {entry.get('status'):<9}  "
            f"{entry.get('table')}  rows={entry.get('row_count')}  "
            f"elapsed_ms={entry.get('elapsed_ms')}"
        )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="etl-load",
        description="Load transform output into a target database",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Load a parquet file using a job definition
    python -m etl_load run ./jobs/orders_load.yaml --input ./out/orders.parquet

    # Validate a job file without touching any database
    python -m etl_load run ./jobs/orders_load.yaml --check

    # Show recorded runs for a task
    python -m etl_load history orders_sync
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument(
        "--json-log",
        action="store_true",
        help="Output logs in JSON format (for log aggregation systems)",
    )
    parser.add_argument("--log-file", help="Write logs to a file in addition to console")
    parser.add_argument("--env-file", help="Load environment variables from this .env file")

    commands = parser.add_subparsers(dest="command")

    run = commands.add_parser("run", help="Run a load job")
    run.add_argument("config", help="Path to the job YAML file")
    run.add_argument("--input", help="Transform output file (.csv, .parquet, .json, .jsonl)")
    run.add_argument("--state-dir", help="State directory for the json recorder")
    run.add_argument(
        "--check",
        action="store_true",
        help="Validate the job file and exit",
    )

    commands.add_parser("providers", help="List registered providers and recorders")

    history = commands.add_parser("history", help="Show recorded loads for a task")
    history.add_argument("task_id", help="ETL task id")
    history.add_argument("--state-dir", help="State directory for the json recorder")

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.env_file:
        load_env_file(args.env_file)
    settings = LoadSettings()

    setup_logging(
        verbose=args.verbose or settings.log_level == "DEBUG",
        json_format=args.json_log or settings.log_format == "json",
        log_file=args.log_file or settings.log_file,
    )

    if args.command == "providers":
        print("Providers: " + ", ".join(list_providers()))
        print("Recorders: " + ", ".join(list_recorders()))
        return

    if args.command == "history":
        sys.exit(history_command(args, settings))

    if args.command != "run":
        parser.print_help()
        return

    if not args.check and not args.input:
        parser.error("--input is required unless --check is given")

    try:
        code = run_command(args, settings)
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        sys.exit(130)
    except LoadError as e:
        logger.error("Load failed: %s", e.message)
        print(f"\nError: {e}", file=sys.stderr)
        sys.exit(1)
    except ValueError as e:
        print(f"\nError: {e}", file=sys.stderr)
        sys.exit(1)

    sys.exit(code)


if __name__ == "__main__":
    main()
