"""
Tests for the benchmark CLI driver
"""
import pytest

from tpcxbb import bench, bench_utils
from tpcxbb.exceptions import UnknownQueryError


@pytest.fixture
def patched_bench(monkeypatch, fake_spark, make_df):
    """Run bench.main against a fake session and a fake query."""
    state = {"setup": [], "df": make_df([(1,), (2,)]), "spark_args": None}

    def fake_create_spark_session(app_name, remote=None, conf=None):
        state["spark_args"] = (app_name, remote, conf)
        return fake_spark

    def fake_setup_all(spark, base_path, input_format):
        state["setup"].append((base_path, input_format))
        return {}

    def fake_get_query(query):
        if query == "q99":
            raise UnknownQueryError(99)
        return lambda spark: state["df"]

    monkeypatch.setattr(bench, "create_spark_session", fake_create_spark_session)
    monkeypatch.setattr(bench, "setup_all", fake_setup_all)
    monkeypatch.setattr(bench, "get_query", fake_get_query)
    state["spark"] = fake_spark
    return state


class TestParseArgs:

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("SPARK_REMOTE", raising=False)
        monkeypatch.delenv("TPCXBB_SUMMARY_PREFIX", raising=False)

        args = bench.parse_args(["--input", "/data", "--input-format", "parquet", "--query", "q5"])

        assert args.input == "/data"
        assert args.input_format == "parquet"
        assert args.query == "q5"
        assert args.iterations == 3
        assert args.output is None
        assert args.output_format is None
        assert not args.gc_between_runs
        assert args.summary_file_prefix == ""
        assert args.conf == []
        assert args.remote is None
        assert args.app_name == "TPCxBB Bench"

    def test_environment_defaults(self, monkeypatch):
        monkeypatch.setenv("SPARK_REMOTE", "sc://localhost:15002")
        monkeypatch.setenv("TPCXBB_SUMMARY_PREFIX", "/reports/")

        args = bench.parse_args(["--input", "/data", "--input-format", "csv", "--query", "1"])

        assert args.remote == "sc://localhost:15002"
        assert args.summary_file_prefix == "/reports/"

    @pytest.mark.parametrize("missing", ["--input", "--input-format", "--query"])
    def test_required_flags(self, missing):
        argv = {"--input": "/data", "--input-format": "csv", "--query": "q1"}
        del argv[missing]
        flat = [item for pair in argv.items() for item in pair]
        with pytest.raises(SystemExit):
            bench.parse_args(flat)

    def test_iterations_must_be_positive(self):
        with pytest.raises(SystemExit):
            bench.parse_args(["--input", "/d", "--input-format", "csv", "--query", "q1", "--iterations", "0"])


class TestMain:

    @pytest.mark.timeout(30)
    def test_collect(self, patched_bench, report_prefix, capsys):
        rc = bench.main([
            "--input", "/data", "--input-format", "PARQUET", "--query", "q5",
            "--iterations", "2", "--summary-file-prefix", report_prefix,
        ])

        assert rc == 0
        assert patched_bench["setup"] == [("/data", "parquet")]
        assert patched_bench["spark"].stopped
        out = capsys.readouterr().out
        assert "*** RUNNING TPCx-BB QUERY q5" in out
        assert "*** Iteration 2 took" in out
        assert "tpcxbb-q5-collect-" in out

    @pytest.mark.timeout(30)
    @pytest.mark.parametrize("fmt", ["csv", "parquet", "orc"])
    def test_write(self, patched_bench, report_prefix, fmt):
        rc = bench.main([
            "--input", "/data", "--input-format", "csv", "--query", "q5",
            "--iterations", "1", "--output", "/tmp/q5-out", "--output-format", fmt,
            "--summary-file-prefix", report_prefix,
        ])

        assert rc == 0
        writer = patched_bench["df"].write
        assert writer.calls == [(fmt, "/tmp/q5-out")]
        assert writer.save_mode == "overwrite"

    @pytest.mark.timeout(30)
    def test_invalid_input_format(self, patched_bench, capsys):
        rc = bench.main(["--input", "/data", "--input-format", "json", "--query", "q5"])

        assert rc != 0
        assert patched_bench["setup"] == []
        assert "Invalid input format: json" in capsys.readouterr().out
        assert patched_bench["spark"].stopped

    @pytest.mark.timeout(30)
    @pytest.mark.parametrize("extra", [[], ["--output-format", "json"]])
    def test_invalid_or_missing_output_format(self, patched_bench, capsys, extra):
        rc = bench.main([
            "--input", "/data", "--input-format", "csv", "--query", "q5", "--output", "/tmp/out",
        ] + extra)

        assert rc != 0
        out = capsys.readouterr().out
        assert "Invalid or unspecified output format" in out
        # Tables are registered and the banner printed before the format check
        assert patched_bench["setup"] == [("/data", "csv")]
        assert out.index("*** RUNNING TPCx-BB QUERY q5") < out.index("Invalid or unspecified output format")
        assert patched_bench["df"].write.calls == []
        assert patched_bench["spark"].stopped

    @pytest.mark.timeout(30)
    def test_gc_between_runs_flag(self, patched_bench, report_prefix, monkeypatch):
        requests = []
        monkeypatch.setattr(bench_utils, "request_gc", lambda spark: requests.append(spark))

        rc = bench.main([
            "--input", "/data", "--input-format", "csv", "--query", "q5",
            "--iterations", "2", "--gc-between-runs", "--summary-file-prefix", report_prefix,
        ])

        assert rc == 0
        assert requests == [patched_bench["spark"]] * 2

    @pytest.mark.timeout(30)
    def test_gc_off_by_default(self, patched_bench, report_prefix, monkeypatch):
        requests = []
        monkeypatch.setattr(bench_utils, "request_gc", lambda spark: requests.append(spark))

        rc = bench.main([
            "--input", "/data", "--input-format", "csv", "--query", "q5",
            "--iterations", "2", "--summary-file-prefix", report_prefix,
        ])

        assert rc == 0
        assert requests == []

    @pytest.mark.timeout(30)
    def test_unknown_query(self, patched_bench, capsys):
        rc = bench.main(["--input", "/data", "--input-format", "csv", "--query", "q99"])

        assert rc != 0
        assert "Unknown TPCx-BB query number: 99" in capsys.readouterr().out
        # Fails before a session is created
        assert patched_bench["spark_args"] is None

    @pytest.mark.timeout(30)
    def test_failed_iteration_exit_code(self, patched_bench, report_prefix, monkeypatch):
        def failing_query(query):
            def run(spark):
                raise RuntimeError("boom")
            return run

        monkeypatch.setattr(bench, "get_query", failing_query)

        rc = bench.main([
            "--input", "/data", "--input-format", "csv", "--query", "q5",
            "--iterations", "1", "--summary-file-prefix", report_prefix,
        ])

        assert rc != 0

    @pytest.mark.timeout(30)
    def test_session_options(self, patched_bench, report_prefix):
        bench.main([
            "--input", "/data", "--input-format", "csv", "--query", "q5", "--iterations", "1",
            "--conf", "spark.sql.shuffle.partitions=8", "--remote", "sc://host:15002",
            "--app-name", "nightly", "--summary-file-prefix", report_prefix,
        ])

        assert patched_bench["spark_args"] == (
            "nightly", "sc://host:15002", {"spark.sql.shuffle.partitions": "8"},
        )

    def test_bad_conf(self, patched_bench, capsys):
        rc = bench.main([
            "--input", "/data", "--input-format", "csv", "--query", "q5", "--conf", "nonsense",
        ])

        assert rc != 0
        assert "expected KEY=VALUE" in capsys.readouterr().out


class TestQueryWrappers:

    @pytest.mark.timeout(30)
    def test_report_stub_names(self, patched_bench, fake_spark, report_prefix):
        report = bench.collect(fake_spark, "q12", 1, summary_file_prefix=report_prefix)
        assert "tpcxbb-q12-collect-" in report.filename

        report = bench.write_csv(fake_spark, "q12", "/tmp/a", iterations=1, summary_file_prefix=report_prefix)
        assert "tpcxbb-q12-csv-" in report.filename

        report = bench.write_parquet(fake_spark, "q12", "/tmp/b", iterations=1, summary_file_prefix=report_prefix)
        assert "tpcxbb-q12-parquet-" in report.filename

        report = bench.write_orc(fake_spark, "q12", "/tmp/c", iterations=1, summary_file_prefix=report_prefix)
        assert "tpcxbb-q12-orc-" in report.filename

    @pytest.mark.timeout(30)
    @pytest.mark.parametrize("fmt", ["csv", "parquet", "orc"])
    def test_write_positional_arguments(self, patched_bench, fake_spark, report_prefix, fmt):
        writer_fn = getattr(bench, f"write_{fmt}")

        report = writer_fn(fake_spark, "q5", "/tmp/out", "append", {"header": "true"}, 1, False, report_prefix)

        writer = patched_bench["df"].write
        assert writer.calls == [(fmt, "/tmp/out")]
        assert writer.save_mode == "append"
        assert writer.write_options == {"header": "true"}
        assert report.action == fmt
        assert len(report.query_times) == 1
        assert not report.configuration.gc_between_runs
        assert report.filename.startswith(report_prefix)
        print(f"✓ write_{fmt} accepts positional arguments")

    def test_unknown_query_raises(self, fake_spark):
        with pytest.raises(UnknownQueryError):
            bench.collect(fake_spark, "q31")
