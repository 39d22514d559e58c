#!/usr/bin/env python3
"""
Convert TPCx-BB tables between file formats.

Usage:
    # '|'-delimited generator output to Parquet
    tpcxbb-convert --input /data/tpcxbb/sf1-csv --input-format csv \\
        --output /data/tpcxbb/sf1 --output-format parquet
"""
import argparse
import logging
import sys
import time
from typing import List, Optional

from .exceptions import InvalidFormatError
from .spark_config import create_spark_session, default_remote, parse_conf_pairs
from .tables import TPCXBB_TABLES, convert, normalize_format


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Convert TPCx-BB tables between file formats")
    parser.add_argument("--input", required=True, help="Base path of the source tables")
    parser.add_argument("--input-format", default="csv", help="Source format (default: csv)")
    parser.add_argument("--output", required=True, help="Base path for the converted tables")
    parser.add_argument("--output-format", default="parquet", help="Target format (default: parquet)")
    parser.add_argument("--mode", default="overwrite", help="Spark save mode (default: overwrite)")
    parser.add_argument("--conf", action="append", default=[], metavar="KEY=VALUE")
    parser.add_argument("--remote", default=default_remote(), help="Spark Connect URL")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        input_format = normalize_format(args.input_format)
        output_format = normalize_format(args.output_format)
        conf = parse_conf_pairs(args.conf)
    except (InvalidFormatError, ValueError) as e:
        print(f"Error: {e}")
        return 1

    print(f"Converting {len(TPCXBB_TABLES)} tables: {input_format} -> {output_format}")
    spark = create_spark_session("TPCxBB Convert", remote=args.remote, conf=conf)
    start = time.time()
    try:
        written = convert(spark, args.input, args.output, input_format, output_format, mode=args.mode)
    finally:
        spark.stop()

    print(f"Converted {len(written)} tables in {time.time() - start:.1f}s")
    return 0


if __name__ == "__main__":
    sys.exit(main())
