"""
Pytest configuration for the TPCx-BB benchmark driver tests
"""
import os
import shutil

import pytest

from tpcxbb.tables import setup_empty_tables


# ------------------------------------------------------------------------------
# Fakes for tests that do not need a JVM
# ------------------------------------------------------------------------------

class FakeWriter:
    """Records DataFrameWriter calls instead of writing files."""

    def __init__(self):
        self.calls = []
        self.save_mode = None
        self.write_options = {}

    def mode(self, mode):
        self.save_mode = mode
        return self

    def options(self, **options):
        self.write_options.update(options)
        return self

    def option(self, key, value):
        self.write_options[key] = value
        return self

    def csv(self, path):
        self.calls.append(("csv", path))

    def parquet(self, path):
        self.calls.append(("parquet", path))

    def orc(self, path):
        self.calls.append(("orc", path))


class FakeDataFrame:
    def __init__(self, rows=None, writer=None):
        self.rows = list(rows or [])
        self.write = writer or FakeWriter()

    def collect(self):
        return list(self.rows)


class FakeSparkSession:
    """Just enough of SparkSession for the benchmark loop and CLI."""

    version = "3.5.0-fake"

    def __init__(self):
        self.stopped = False

    def stop(self):
        self.stopped = True


@pytest.fixture
def fake_spark():
    return FakeSparkSession()


@pytest.fixture
def make_df():
    """Factory for fake DataFrames: make_df(rows, writer=None)."""
    return FakeDataFrame


@pytest.fixture
def report_prefix(tmp_path):
    """Summary file prefix that keeps JSON reports inside tmp_path."""
    return str(tmp_path) + os.sep


# ------------------------------------------------------------------------------
# Local Spark
# ------------------------------------------------------------------------------

@pytest.fixture(scope="session")
def spark():
    """
    Session-scoped local SparkSession

    Skips Spark tests when no Java runtime is installed.
    """
    if shutil.which("java") is None and not os.environ.get("JAVA_HOME"):
        pytest.skip("Java runtime not available for local Spark")

    from pyspark.sql import SparkSession

    session = (
        SparkSession.builder
        .master("local[1]")
        .appName("tpcxbb-tests")
        .config("spark.sql.shuffle.partitions", "1")
        .config("spark.ui.enabled", "false")
        .getOrCreate()
    )
    yield session
    session.stop()


@pytest.fixture
def tpcxbb_tables(spark):
    """Register every TPCx-BB table as an empty view.

    Tests replace the views they need with small data sets.
    """
    return setup_empty_tables(spark)


def register(spark, table, rows, schema=None):
    """Replace one table's view with rows in its TPCx-BB schema.

    rows are dicts; missing columns are null.
    """
    from tpcxbb.tables import TPCXBB_SCHEMAS

    schema = schema or TPCXBB_SCHEMAS[table]
    data = [tuple(row.get(f.name) for f in schema.fields) for row in rows]
    df = spark.createDataFrame(data, schema)
    df.createOrReplaceTempView(table)
    return df


@pytest.fixture
def register_table(spark, tpcxbb_tables):
    """register_table(table, rows) with the session already bound."""
    def _register(table, rows):
        return register(spark, table, rows)
    return _register
