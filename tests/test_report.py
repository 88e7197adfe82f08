import json

from openapi_fuzzer.runner.report import JsonlReporter
from openapi_fuzzer.runner.validator import Anomaly


def _anomaly(status: int) -> Anomaly:
    return Anomaly(path="/health", method="GET", status=status, declared=["200"], body=[{"a": 1}])


class TestJsonlReporter:
    def test_one_line_per_anomaly(self, tmp_path):
        path = tmp_path / "reports" / "anomalies.jsonl"
        with JsonlReporter(path) as reporter:
            reporter.write(_anomaly(500))
            reporter.write(_anomaly(503))
        assert reporter.count == 2

        records = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
        assert [r["status"] for r in records] == [500, 503]
        assert records[0]["path"] == "/health"
        assert records[0]["body"] == [{"a": 1}]
        assert "timestamp" in records[0]

    def test_appends_to_existing_file(self, tmp_path):
        path = tmp_path / "anomalies.jsonl"
        path.write_text('{"status": 1}\n', encoding="utf-8")
        with JsonlReporter(path) as reporter:
            reporter.write(_anomaly(500))
        assert len(path.read_text(encoding="utf-8").splitlines()) == 2

    def test_close_is_idempotent(self, tmp_path):
        reporter = JsonlReporter(tmp_path / "a.jsonl")
        reporter.close()
        reporter.close()
