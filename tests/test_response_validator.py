import requests

from openapi_fuzzer.generator.payload import Payload
from openapi_fuzzer.runner.validator import ResponseValidator, is_declared


def _response(status: int, body: bytes = b"", url: str = "http://api.test/pets") -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response._content = body
    response.encoding = "utf-8"
    response.url = url
    return response


def _payload(responses: list[str]) -> Payload:
    return Payload(
        method="GET",
        path="/pets/{id}",
        path_params={"id": "42"},
        query=[("q", "x")],
        responses=responses,
    )


class TestIsDeclared:
    def test_exact_code(self):
        assert is_declared(200, ["200", "404"])
        assert not is_declared(500, ["200", "404"])

    def test_range_key(self):
        assert is_declared(503, ["200", "5XX"])
        assert is_declared(404, ["4xx"])
        assert not is_declared(302, ["2XX"])

    def test_default_does_not_cover(self):
        assert not is_declared(418, ["200", "default"])


class TestResponseValidator:
    def test_undeclared_status_is_anomaly(self):
        anomaly = ResponseValidator().validate(_response(500, b"Internal error"), _payload(["200", "404"]))
        assert anomaly is not None
        assert anomaly.status == 500
        assert "500" in anomaly.describe()
        assert anomaly.body_snippet == "Internal error"

    def test_declared_status_is_ok(self):
        assert ResponseValidator().validate(_response(200), _payload(["200", "404"])) is None

    def test_anomaly_carries_request_context(self):
        anomaly = ResponseValidator().validate(_response(503), _payload(["200"]))
        assert anomaly.method == "GET"
        assert anomaly.path == "/pets/{id}"
        assert anomaly.declared == ["200"]
        assert anomaly.path_params == {"id": "42"}
        assert anomaly.query == [("q", "x")]
        assert anomaly.url == "http://api.test/pets"

    def test_snippet_is_truncated(self):
        validator = ResponseValidator(snippet_length=10)
        anomaly = validator.validate(_response(500, b"x" * 100), _payload([]))
        assert anomaly.body_snippet == "x" * 10

    def test_no_declared_responses_flags_everything(self):
        assert ResponseValidator().validate(_response(200), _payload([])) is not None
