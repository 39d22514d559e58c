#!/usr/bin/env python3
"""
TPCx-BB-like Benchmark Driver

Registers the TPCx-BB tables, then runs one query several times and either
collects the results to the driver or writes them out.

Usage:
    # Collect results of Q5 three times
    tpcxbb-bench --input /data/tpcxbb/sf1 --input-format parquet --query q5

    # Write results of Q5 as Parquet, five iterations
    tpcxbb-bench --input /data/tpcxbb/sf1 --input-format csv --query 5 \\
        --iterations 5 --output /tmp/q5-out --output-format parquet

    # From a Spark shell-like session
    >>> from tpcxbb import bench
    >>> bench.collect(spark, "q5", 3)
"""
import argparse
import logging
import os
import sys
from typing import Dict, List, Optional

from pyspark.sql import SparkSession

from . import bench_utils
from .exceptions import InvalidFormatError, TpcxbbError
from .queries import get_query
from .results import BenchmarkReport
from .spark_config import DEFAULT_APP_NAME, create_spark_session, default_remote, parse_conf_pairs
from .tables import normalize_format, setup_all


def collect(
    spark: SparkSession,
    query: str,
    iterations: int = 3,
    gc_between_runs: bool = False,
    summary_file_prefix: Optional[str] = None,
) -> BenchmarkReport:
    """Benchmark executing a query and collecting the results to the driver.

    Args:
        spark: The Spark session, with the TPCx-BB tables registered
        query: The name of the query to run, e.g. "q5"
        iterations: The number of times to run the query
        gc_between_runs: Whether to request a garbage collection between
            iterations so Spark unregisters the previous run's shuffles
        summary_file_prefix: Prefix for the JSON report path
    """
    query_fn = get_query(query)
    return bench_utils.collect(
        spark,
        query_fn,
        query,
        f"tpcxbb-{query}-collect",
        iterations=iterations,
        gc_between_runs=gc_between_runs,
        summary_file_prefix=summary_file_prefix,
    )


def _write(
    output_format: str,
    spark: SparkSession,
    query: str,
    path: str,
    mode: str = "overwrite",
    write_options: Optional[Dict[str, str]] = None,
    iterations: int = 3,
    gc_between_runs: bool = False,
    summary_file_prefix: Optional[str] = None,
) -> BenchmarkReport:
    query_fn = get_query(query)
    return bench_utils.run_bench(
        spark,
        query_fn,
        query,
        f"tpcxbb-{query}-{output_format}",
        iterations,
        gc_between_runs,
        output_format,
        path=path,
        mode=mode,
        write_options=write_options,
        summary_file_prefix=summary_file_prefix,
    )


def write_csv(
    spark: SparkSession,
    query: str,
    path: str,
    mode: str = "overwrite",
    write_options: Optional[Dict[str, str]] = None,
    iterations: int = 3,
    gc_between_runs: bool = False,
    summary_file_prefix: Optional[str] = None,
) -> BenchmarkReport:
    """Benchmark executing a query and writing the results to CSV files.

    Args:
        spark: The Spark session, with the TPCx-BB tables registered
        query: The name of the query to run, e.g. "q5"
        path: The path to write the results to
        mode: The Spark save mode
        write_options: Options passed to the DataFrame writer
        iterations: The number of times to run the query
        gc_between_runs: Whether to request a garbage collection between iterations
        summary_file_prefix: Prefix for the JSON report path
    """
    return _write(
        "csv", spark, query, path, mode, write_options,
        iterations, gc_between_runs, summary_file_prefix,
    )


def write_parquet(
    spark: SparkSession,
    query: str,
    path: str,
    mode: str = "overwrite",
    write_options: Optional[Dict[str, str]] = None,
    iterations: int = 3,
    gc_between_runs: bool = False,
    summary_file_prefix: Optional[str] = None,
) -> BenchmarkReport:
    """Benchmark executing a query and writing the results to Parquet files."""
    return _write(
        "parquet", spark, query, path, mode, write_options,
        iterations, gc_between_runs, summary_file_prefix,
    )


def write_orc(
    spark: SparkSession,
    query: str,
    path: str,
    mode: str = "overwrite",
    write_options: Optional[Dict[str, str]] = None,
    iterations: int = 3,
    gc_between_runs: bool = False,
    summary_file_prefix: Optional[str] = None,
) -> BenchmarkReport:
    """Benchmark executing a query and writing the results to ORC files."""
    return _write(
        "orc", spark, query, path, mode, write_options,
        iterations, gc_between_runs, summary_file_prefix,
    )


WRITERS = {
    "csv": write_csv,
    "parquet": write_parquet,
    "orc": write_orc,
}


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run a TPCx-BB-like query benchmark on Spark",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment variables:
    SPARK_REMOTE            Spark Connect URL (default for --remote)
    TPCXBB_SUMMARY_PREFIX   Prefix for JSON report files (default for --summary-file-prefix)
        """,
    )
    parser.add_argument("--input", required=True, help="Base path of the input tables")
    parser.add_argument(
        "--input-format",
        required=True,
        help="Input file format: parquet, csv or orc",
    )
    parser.add_argument("--query", required=True, help="Query to run, such as q5 or 5")
    parser.add_argument(
        "--iterations",
        type=int,
        default=3,
        help="Number of times to run the query (default: 3)",
    )
    parser.add_argument("--output", help="Path to write query results to")
    parser.add_argument(
        "--output-format",
        help="Output file format: parquet, csv or orc (required with --output)",
    )
    parser.add_argument(
        "--gc-between-runs",
        action="store_true",
        help="Request a garbage collection between iterations",
    )
    parser.add_argument(
        "--summary-file-prefix",
        default=os.environ.get("TPCXBB_SUMMARY_PREFIX", ""),
        help="Prefix for the JSON report file path",
    )
    parser.add_argument(
        "--conf",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Spark configuration property (repeatable)",
    )
    parser.add_argument(
        "--remote",
        default=default_remote(),
        help="Spark Connect URL (default: classic local/cluster session)",
    )
    parser.add_argument(
        "--app-name",
        default=DEFAULT_APP_NAME,
        help=f"Spark application name (default: {DEFAULT_APP_NAME})",
    )

    args = parser.parse_args(argv)

    if args.iterations < 1:
        parser.error("--iterations must be at least 1")

    return args


def run(spark: SparkSession, args: argparse.Namespace) -> int:
    """Register tables and run the configured benchmark.

    Returns:
        Process exit code
    """
    try:
        input_format = normalize_format(args.input_format)
    except InvalidFormatError:
        print(f"Invalid input format: {args.input_format}")
        return 1

    setup_all(spark, args.input, input_format)

    print(f"*** RUNNING TPCx-BB QUERY {args.query}")
    if args.output:
        try:
            output_format = normalize_format(args.output_format)
        except InvalidFormatError:
            print("Invalid or unspecified output format")
            return 1
        report = WRITERS[output_format](
            spark,
            args.query,
            args.output,
            iterations=args.iterations,
            gc_between_runs=args.gc_between_runs,
            summary_file_prefix=args.summary_file_prefix,
        )
    else:
        report = collect(
            spark,
            args.query,
            args.iterations,
            gc_between_runs=args.gc_between_runs,
            summary_file_prefix=args.summary_file_prefix,
        )

    if not report.succeeded:
        print(f"Error: {args.query} failed in {report.query_status.count('Failed')} of "
              f"{len(report.query_status)} iterations")
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        get_query(args.query)
        conf = parse_conf_pairs(args.conf)
    except (TpcxbbError, ValueError) as e:
        print(f"Error: {e}")
        return 1

    spark = create_spark_session(args.app_name, remote=args.remote, conf=conf)
    try:
        return run(spark, args)
    except TpcxbbError as e:
        print(f"Error: {e}")
        return 1
    finally:
        spark.stop()


if __name__ == "__main__":
    sys.exit(main())
