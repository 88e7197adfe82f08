import json
from pathlib import Path
from unittest.mock import MagicMock, patch

from click.testing import CliRunner

from openapi_fuzzer.cli import _echo_result, main
from openapi_fuzzer.runner.loop import FuzzResult, Outcome
from openapi_fuzzer.runner.validator import Anomaly

FIXTURES = Path(__file__).parent / "fixtures"

STATS = {
    "passes": 2,
    "requests": 6,
    "ok": 4,
    "anomalies": 2,
    "generation_errors": 2,
    "request_errors": 0,
}


class TestCliRun:
    @patch("openapi_fuzzer.cli.FuzzLoop")
    def test_run_builds_loop_from_options(self, MockLoop):
        mock_loop = MagicMock()
        mock_loop.work_items.return_value = [object()] * 4
        mock_loop.run.return_value.as_dict.return_value = STATS
        MockLoop.return_value = mock_loop

        runner = CliRunner()
        result = runner.invoke(main, [
            "run",
            "-s", str(FIXTURES / "petstore.yaml"),
            "-u", "http://api.test",
            "--passes", "2",
            "--workers", "3",
            "--seed", "11",
        ])

        assert result.exit_code == 0, result.output
        mock_loop.run.assert_called_once()
        document, url, config = MockLoop.call_args[0]
        assert url == "http://api.test"
        assert len(document.paths) == 2
        assert config.max_passes == 2
        assert config.workers == 3
        assert config.seed == 11
        assert "4 operations" in result.output
        assert "2 anomalies" in result.output

    @patch("openapi_fuzzer.cli.FuzzLoop")
    def test_options_from_environment(self, MockLoop):
        mock_loop = MagicMock()
        mock_loop.run.return_value.as_dict.return_value = STATS
        MockLoop.return_value = mock_loop

        runner = CliRunner()
        result = runner.invoke(main, ["run"], env={
            "OPENAPI_FUZZER_SPEC": str(FIXTURES / "health.yaml"),
            "OPENAPI_FUZZER_URL": "http://env.test",
            "OPENAPI_FUZZER_TIMEOUT": "1.5",
        })

        assert result.exit_code == 0, result.output
        _, url, config = MockLoop.call_args[0]
        assert url == "http://env.test"
        assert config.timeout == 1.5

    def test_invalid_spec_exits_with_error(self, tmp_path):
        bad = tmp_path / "bad.yaml"
        bad.write_text("info:\n  title: no version\npaths: {}\n")

        runner = CliRunner()
        result = runner.invoke(main, ["run", "-s", str(bad), "-u", "http://api.test"])

        assert result.exit_code == 1
        assert "invalid specification" in result.output

    def test_malformed_schema_exits_with_error(self, tmp_path):
        bad = tmp_path / "enum.yaml"
        bad.write_text(
            "openapi: 3.0.0\n"
            "paths:\n"
            "  /colors:\n"
            "    get:\n"
            "      parameters:\n"
            "        - name: c\n"
            "          in: query\n"
            "          schema: {type: string, enum: red}\n"
            "      responses:\n"
            "        '200': {description: ok}\n"
        )

        runner = CliRunner()
        result = runner.invoke(main, ["run", "-s", str(bad), "-u", "http://api.test"])

        assert result.exit_code == 1
        assert "invalid specification" in result.output
        assert "enum" in result.output

    def test_invalid_url_exits_with_error(self):
        runner = CliRunner()
        result = runner.invoke(main, ["run", "-s", str(FIXTURES / "health.yaml"), "-u", "api.test"])

        assert result.exit_code == 1
        assert "invalid URL" in result.output

    def test_invalid_worker_count(self):
        runner = CliRunner()
        result = runner.invoke(main, [
            "run", "-s", str(FIXTURES / "health.yaml"), "-u", "http://api.test", "--workers", "0",
        ])
        assert result.exit_code == 2

    def test_missing_required_options(self):
        runner = CliRunner()
        result = runner.invoke(main, ["run"])
        assert result.exit_code == 2

    def test_live_run_writes_report(self, stub_server, tmp_path):
        report = tmp_path / "anomalies.jsonl"
        runner = CliRunner()
        result = runner.invoke(main, [
            "run",
            "-s", str(FIXTURES / "health.yaml"),
            "-u", stub_server.base_url,
            "--passes", "1",
            "--report", str(report),
        ])

        assert result.exit_code == 0, result.output
        assert "Unexpected status code: 503" in result.output
        records = [json.loads(line) for line in report.read_text(encoding="utf-8").splitlines()]
        assert len(records) == 1
        assert records[0]["path"] == "/health"
        assert records[0]["method"] == "GET"
        assert records[0]["status"] == 503


class TestEchoResult:
    def test_ok_prints_dot(self, capsys):
        _echo_result(FuzzResult(path="/x", method="GET", outcome=Outcome.OK, status=200))
        assert capsys.readouterr().out == "."

    def test_anomaly_prints_details(self, capsys):
        anomaly = Anomaly(path="/x", method="GET", status=500, declared=["200"], body_snippet="boom")
        _echo_result(FuzzResult(path="/x", method="GET", outcome=Outcome.ANOMALY, status=500, anomaly=anomaly))
        out = capsys.readouterr().out
        assert "Unexpected status code: 500" in out
        assert "boom" in out

    def test_errors_print_nothing(self, capsys):
        _echo_result(FuzzResult(path="/x", method="GET", outcome=Outcome.REQUEST_ERROR, error="refused"))
        assert capsys.readouterr().out == ""
