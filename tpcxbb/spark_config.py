"""
Spark Configuration Helper

Builds the SparkSession the benchmark runs in, either a classic session or
a Spark Connect client when a remote URL is given.
"""
import logging
import os
from typing import Dict, Iterable, Optional

from pyspark.sql import SparkSession

logger = logging.getLogger(__name__)

DEFAULT_APP_NAME = "TPCxBB Bench"


def default_remote() -> Optional[str]:
    """Spark Connect URL from the environment, e.g. sc://localhost:15002."""
    return os.environ.get("SPARK_REMOTE") or None


def parse_conf_pairs(pairs: Optional[Iterable[str]]) -> Dict[str, str]:
    """Parse KEY=VALUE strings into a Spark config dict.

    Args:
        pairs: Strings such as 'spark.sql.shuffle.partitions=200'

    Returns:
        Dict of Spark configuration properties

    Raises:
        ValueError: if an entry has no '=' or an empty key
    """
    config = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ValueError(f"Invalid Spark conf '{pair}', expected KEY=VALUE")
        config[key] = value.strip()
    return config


def create_spark_session(
    app_name: str = DEFAULT_APP_NAME,
    remote: Optional[str] = None,
    conf: Optional[Dict[str, str]] = None,
) -> SparkSession:
    """Create (or reuse) the SparkSession for a benchmark run.

    Args:
        app_name: Spark application name
        remote: Spark Connect URL; a classic session is used when None
        conf: Extra Spark configuration properties

    Returns:
        SparkSession
    """
    builder = SparkSession.builder.appName(app_name)
    if remote:
        logger.info("Connecting to Spark Connect server at %s", remote)
        builder = builder.remote(remote)
    for key, value in (conf or {}).items():
        builder = builder.config(key, value)
    return builder.getOrCreate()
