"""
Shared benchmark timing loop.

Runs a DataFrame-producing function repeatedly, times each execution of the
result action (collect or write), and saves a JSON report per run.
"""
import gc
import logging
import os
import time
from pathlib import Path
from typing import Callable, Dict, Optional

from pyspark.sql import DataFrame, SparkSession

from .exceptions import InvalidFormatError
from .results import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    BenchConfiguration,
    BenchmarkReport,
    Environment,
    write_report,
)

logger = logging.getLogger(__name__)

ACTION_COLLECT = "collect"
WRITE_ACTIONS = ("csv", "parquet", "orc")
ACTIONS = (ACTION_COLLECT,) + WRITE_ACTIONS

ENV_VAR_PREFIXES = ("SPARK_", "PYSPARK_")

DataFrameFactory = Callable[[SparkSession], DataFrame]


def capture_environment(spark: SparkSession) -> Environment:
    """Record the Spark version, Spark conf and Spark-related env vars."""
    try:
        spark_conf = dict(spark.sparkContext.getConf().getAll())
    except (AttributeError, NotImplementedError):
        # Spark Connect sessions have no SparkContext
        spark_conf = {}
    env_vars = {
        k: v for k, v in sorted(os.environ.items())
        if k.startswith(ENV_VAR_PREFIXES)
    }
    return Environment(env_vars=env_vars, spark_conf=spark_conf, spark_version=spark.version)


def request_gc(spark: SparkSession) -> None:
    """Collect garbage in Python and ask the driver JVM to do the same.

    A JVM GC lets Spark's ContextCleaner unregister shuffles left over from
    the previous iteration.
    """
    gc.collect()
    jvm = getattr(spark, "_jvm", None)
    if jvm is not None:
        jvm.System.gc()


def _run_action(
    df: DataFrame,
    action: str,
    path: Optional[str],
    mode: str,
    write_options: Dict[str, str],
) -> Optional[int]:
    if action == ACTION_COLLECT:
        return len(df.collect())

    writer = df.write.mode(mode)
    if write_options:
        writer = writer.options(**write_options)
    if action == "csv":
        writer.csv(path)
    elif action == "parquet":
        writer.parquet(path)
    else:
        writer.orc(path)
    return None


def run_bench(
    spark: SparkSession,
    create_dataframe: DataFrameFactory,
    query_name: str,
    filename_stub: str,
    iterations: int,
    gc_between_runs: bool,
    action: str,
    path: Optional[str] = None,
    mode: str = "overwrite",
    write_options: Optional[Dict[str, str]] = None,
    summary_file_prefix: Optional[str] = None,
) -> BenchmarkReport:
    """Run a query several times, timing each execution.

    A failing iteration is recorded with status Failed and its exception
    message; later iterations still run.

    Args:
        spark: SparkSession
        create_dataframe: Builds the query DataFrame from the session
        query_name: Name of the query, e.g. 'q5'
        filename_stub: Report file name stem, e.g. 'tpcxbb-q5-collect'
        iterations: Number of timed executions (at least 1)
        gc_between_runs: Request Python and JVM garbage collection after each run
        action: 'collect', 'csv', 'parquet' or 'orc'
        path: Output path for write actions
        mode: Spark save mode for write actions
        write_options: Options passed to the DataFrame writer
        summary_file_prefix: Prefix (e.g. a directory) for the JSON report path

    Returns:
        BenchmarkReport, also saved as JSON
    """
    if action not in ACTIONS:
        raise InvalidFormatError(action, ACTIONS)
    if action in WRITE_ACTIONS and not path:
        raise ValueError(f"An output path is required for action '{action}'")
    if iterations < 1:
        raise ValueError(f"iterations must be at least 1, got {iterations}")

    write_options = dict(write_options or {})
    start_time = int(time.time() * 1000)
    report = BenchmarkReport(
        filename=f"{summary_file_prefix or ''}{filename_stub}-{start_time}.json",
        start_time=start_time,
        env=capture_environment(spark),
        configuration=BenchConfiguration(gc_between_runs=gc_between_runs),
        action=action,
        query=query_name,
        write_options=write_options,
    )

    for i in range(iterations):
        start = time.perf_counter()
        try:
            df = create_dataframe(spark)
            row_count = _run_action(df, action, path, mode, write_options)
            if row_count is not None:
                report.row_counts.append(row_count)
            report.query_status.append(STATUS_COMPLETED)
        except Exception as e:
            logger.warning("Iteration %d of %s failed: %s", i + 1, query_name, e)
            report.query_status.append(STATUS_FAILED)
            report.exceptions.append(f"{type(e).__name__}: {e}")

        elapsed_ms = int(round((time.perf_counter() - start) * 1000))
        report.query_times.append(elapsed_ms)
        print(f"*** Iteration {i + 1} took {elapsed_ms} msec.")

        if gc_between_runs:
            request_gc(spark)

    print(f"Cold run: {report.cold_time_ms} msec.")
    if report.hot_times_ms:
        print(f"Hot run average: {report.hot_average_ms:.1f} msec.")
        print(f"Best hot run: {report.best_time_ms} msec.")

    write_report(report, Path(report.filename))
    print(f"Saved benchmark report to {report.filename}")
    return report


def collect(
    spark: SparkSession,
    create_dataframe: DataFrameFactory,
    query_name: str,
    filename_stub: str,
    iterations: int = 3,
    gc_between_runs: bool = False,
    summary_file_prefix: Optional[str] = None,
) -> BenchmarkReport:
    """Benchmark executing a query and collecting the results to the driver."""
    return run_bench(
        spark, create_dataframe, query_name, filename_stub, iterations,
        gc_between_runs, ACTION_COLLECT, summary_file_prefix=summary_file_prefix,
    )


def _write(
    action: str,
    spark: SparkSession,
    create_dataframe: DataFrameFactory,
    query_name: str,
    filename_stub: str,
    path: str,
    mode: str = "overwrite",
    write_options: Optional[Dict[str, str]] = None,
    iterations: int = 3,
    gc_between_runs: bool = False,
    summary_file_prefix: Optional[str] = None,
) -> BenchmarkReport:
    return run_bench(
        spark, create_dataframe, query_name, filename_stub, iterations,
        gc_between_runs, action, path=path, mode=mode,
        write_options=write_options, summary_file_prefix=summary_file_prefix,
    )


def write_csv(
    spark: SparkSession,
    create_dataframe: DataFrameFactory,
    query_name: str,
    filename_stub: str,
    path: str,
    mode: str = "overwrite",
    write_options: Optional[Dict[str, str]] = None,
    iterations: int = 3,
    gc_between_runs: bool = False,
    summary_file_prefix: Optional[str] = None,
) -> BenchmarkReport:
    """Benchmark executing a query and writing the results to CSV files."""
    return _write(
        "csv", spark, create_dataframe, query_name, filename_stub, path,
        mode, write_options, iterations, gc_between_runs, summary_file_prefix,
    )


def write_parquet(
    spark: SparkSession,
    create_dataframe: DataFrameFactory,
    query_name: str,
    filename_stub: str,
    path: str,
    mode: str = "overwrite",
    write_options: Optional[Dict[str, str]] = None,
    iterations: int = 3,
    gc_between_runs: bool = False,
    summary_file_prefix: Optional[str] = None,
) -> BenchmarkReport:
    """Benchmark executing a query and writing the results to Parquet files."""
    return _write(
        "parquet", spark, create_dataframe, query_name, filename_stub, path,
        mode, write_options, iterations, gc_between_runs, summary_file_prefix,
    )


def write_orc(
    spark: SparkSession,
    create_dataframe: DataFrameFactory,
    query_name: str,
    filename_stub: str,
    path: str,
    mode: str = "overwrite",
    write_options: Optional[Dict[str, str]] = None,
    iterations: int = 3,
    gc_between_runs: bool = False,
    summary_file_prefix: Optional[str] = None,
) -> BenchmarkReport:
    """Benchmark executing a query and writing the results to ORC files."""
    return _write(
        "orc", spark, create_dataframe, query_name, filename_stub, path,
        mode, write_options, iterations, gc_between_runs, summary_file_prefix,
    )
