#!/usr/bin/env python3
"""
Result Comparison for Benchmark Outputs

Compares the results of two query runs, for example a query output written by
one Spark build against the output of another, with tolerance for floating
point differences.

Usage:
    tpcxbb-compare --input1 /tmp/q5-cpu --input2 /tmp/q5-gpu --input-format parquet

    # Results of queries without a total ORDER BY
    tpcxbb-compare --input1 a/ --input2 b/ --input-format csv --ignore-ordering
"""
import argparse
import logging
import math
import numbers
import sys
from typing import Any, List, Optional, Sequence, Tuple

import pandas as pd
from pyspark.sql import DataFrame, SparkSession

from .exceptions import InvalidFormatError, ResultMismatchError, TpcxbbError
from .spark_config import create_spark_session, default_remote, parse_conf_pairs
from .tables import normalize_format

logger = logging.getLogger(__name__)

DEFAULT_EPSILON = 0.00001


def _is_null(value: Any) -> bool:
    # toPandas turns nulls in numeric columns into NaN
    return value is None or (isinstance(value, float) and math.isnan(value))


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Number) and not isinstance(value, bool)


def values_equal(left: Any, right: Any, epsilon: float = DEFAULT_EPSILON) -> bool:
    """
    Compare two values, using relative error for non-integral numbers

    Args:
        left: Value from the first result set
        right: Value from the second result set
        epsilon: Maximum relative error for floats and decimals

    Returns:
        True if values are equal (within tolerance)
    """
    if _is_null(left) and _is_null(right):
        return True
    if _is_null(left) or _is_null(right):
        return False

    if _is_number(left) and _is_number(right):
        if isinstance(left, numbers.Integral) and isinstance(right, numbers.Integral):
            return int(left) == int(right)

        left_f = float(left)
        right_f = float(right)
        if math.isinf(left_f) or math.isinf(right_f):
            return left_f == right_f

        # Values near zero have no meaningful relative error
        scale = max(abs(left_f), abs(right_f))
        if scale < epsilon:
            return True
        return abs(left_f - right_f) / scale < epsilon

    return left == right


def compare_rows(
    left_rows: Sequence[Sequence[Any]],
    right_rows: Sequence[Sequence[Any]],
    max_errors: int = 10,
    epsilon: float = DEFAULT_EPSILON,
) -> int:
    """
    Compare two lists of rows position by position

    Args:
        left_rows: Rows of the first result set
        right_rows: Rows of the second result set
        max_errors: Maximum number of mismatching rows to print
        epsilon: Maximum relative error for floats and decimals

    Returns:
        Number of mismatching rows

    Raises:
        ResultMismatchError: if the row counts differ
    """
    if len(left_rows) != len(right_rows):
        raise ResultMismatchError(
            f"Row count mismatch: input1={len(left_rows)}, input2={len(right_rows)}",
            left_count=len(left_rows),
            right_count=len(right_rows),
        )

    mismatches = 0
    for i, (left, right) in enumerate(zip(left_rows, right_rows)):
        if len(left) != len(right):
            raise ResultMismatchError(
                f"Row {i} width mismatch: input1={len(left)}, input2={len(right)}"
            )
        if all(values_equal(l, r, epsilon) for l, r in zip(left, right)):
            continue
        mismatches += 1
        if mismatches <= max_errors:
            print(f"  Row {i} mismatch:")
            print(f"    input1: {tuple(left)}")
            print(f"    input2: {tuple(right)}")

    if mismatches > max_errors:
        print(f"  ... {mismatches - max_errors} more mismatched rows not shown")

    return mismatches


def sort_frame(pdf: pd.DataFrame) -> List[Tuple[Any, ...]]:
    """Sort a pandas frame by every column, left to right, and return row tuples.

    Columns are sorted by position so duplicate column names are allowed.
    Nulls sort last.
    """
    pdf = pdf.copy()
    pdf.columns = range(len(pdf.columns))
    if len(pdf.columns):
        pdf = pdf.sort_values(by=list(pdf.columns), na_position="last", kind="mergesort")
    return list(pdf.itertuples(index=False, name=None))


def _collect_rows(df: DataFrame, ignore_ordering: bool) -> List[Tuple[Any, ...]]:
    if ignore_ordering:
        return sort_frame(df.toPandas())
    return [tuple(row) for row in df.collect()]


def compare_results(
    df1: DataFrame,
    df2: DataFrame,
    ignore_ordering: bool = False,
    max_errors: int = 10,
    epsilon: float = DEFAULT_EPSILON,
) -> int:
    """
    Compare the results of two queries

    Args:
        df1: First result DataFrame
        df2: Second result DataFrame
        ignore_ordering: Sort both results before comparing
        max_errors: Maximum number of mismatching rows to print
        epsilon: Maximum relative error for floats and decimals

    Returns:
        Number of mismatching rows, 0 when the results match

    Raises:
        ResultMismatchError: if the column or row counts differ
    """
    if len(df1.columns) != len(df2.columns):
        raise ResultMismatchError(
            f"Column count mismatch: input1={len(df1.columns)}, input2={len(df2.columns)}"
        )

    print("Collecting input1...")
    left_rows = _collect_rows(df1, ignore_ordering)
    print("Collecting input2...")
    right_rows = _collect_rows(df2, ignore_ordering)
    print(f"  input1 rows: {len(left_rows):,}")
    print(f"  input2 rows: {len(right_rows):,}")

    mismatches = compare_rows(left_rows, right_rows, max_errors, epsilon)
    if mismatches:
        print(f"✗ {mismatches} of {len(left_rows):,} rows differ")
    else:
        print(f"✓ All {len(left_rows):,} rows match")
    return mismatches


def read_results(spark: SparkSession, path: str, fmt: str) -> DataFrame:
    """Read query results written by the benchmark in the given format."""
    fmt = normalize_format(fmt)
    logger.info("Reading %s results from %s", fmt, path)
    if fmt == "csv":
        return spark.read.option("inferSchema", "true").csv(path)
    if fmt == "parquet":
        return spark.read.parquet(path)
    return spark.read.orc(path)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Compare the results of two TPCx-BB query runs",
    )
    parser.add_argument("--input1", required=True, help="Path of the first results")
    parser.add_argument("--input2", required=True, help="Path of the second results")
    parser.add_argument("--input-format", required=True, help="parquet, csv or orc")
    parser.add_argument(
        "--ignore-ordering",
        action="store_true",
        help="Sort both results before comparing",
    )
    parser.add_argument(
        "--max-errors",
        type=int,
        default=10,
        help="Maximum number of mismatched rows to print (default: 10)",
    )
    parser.add_argument(
        "--epsilon",
        type=float,
        default=DEFAULT_EPSILON,
        help=f"Relative tolerance for floating point values (default: {DEFAULT_EPSILON})",
    )
    parser.add_argument("--conf", action="append", default=[], metavar="KEY=VALUE")
    parser.add_argument("--remote", default=default_remote(), help="Spark Connect URL")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        input_format = normalize_format(args.input_format)
        conf = parse_conf_pairs(args.conf)
    except (InvalidFormatError, ValueError) as e:
        print(f"Error: {e}")
        return 1

    spark = create_spark_session("TPCxBB Compare", remote=args.remote, conf=conf)
    try:
        df1 = read_results(spark, args.input1, input_format)
        df2 = read_results(spark, args.input2, input_format)
        mismatches = compare_results(
            df1, df2,
            ignore_ordering=args.ignore_ordering,
            max_errors=args.max_errors,
            epsilon=args.epsilon,
        )
    except TpcxbbError as e:
        print(f"✗ {e}")
        return 1
    finally:
        spark.stop()

    return 0 if mismatches == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
