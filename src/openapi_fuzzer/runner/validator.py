"""Checks response status codes against an operation's declared responses."""

from datetime import datetime, timezone
from typing import Any

import requests
from pydantic import BaseModel, Field

from openapi_fuzzer.generator.payload import Payload

DEFAULT_SNIPPET_LENGTH = 512


class Anomaly(BaseModel):
    """A response whose status code the operation did not declare."""

    path: str
    method: str
    status: int
    declared: list[str]
    url: str = ""
    body_snippet: str = ""
    query: list[tuple[str, str]] = []
    path_params: dict[str, str] = {}
    headers: dict[str, str] = {}
    cookies: dict[str, str] = {}
    body: list[Any] = []
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def describe(self) -> str:
        return (
            f"Unexpected status code: {self.status} for {self.method} {self.path}\n"
            f"Response: {self.body_snippet}"
        )


def is_declared(status: int, declared: list[str]) -> bool:
    """True if ``status`` matches an exact code or a range key such as ``5XX``."""
    code = str(status)
    for key in declared:
        key = key.strip().upper()
        if key == code:
            return True
        if len(key) == 3 and key.endswith("XX") and key[0] == code[0]:
            return True
    return False


class ResponseValidator:
    """Compares actual status codes with the declared set.

    An undeclared status is the fuzzer's finding. It is returned as an
    Anomaly and never raised.
    """

    def __init__(self, snippet_length: int = DEFAULT_SNIPPET_LENGTH):
        self.snippet_length = snippet_length

    def validate(self, response: requests.Response, payload: Payload) -> Anomaly | None:
        if is_declared(response.status_code, payload.responses):
            return None
        return Anomaly(
            path=payload.path,
            method=payload.method,
            status=response.status_code,
            declared=list(payload.responses),
            url=response.url or "",
            body_snippet=self._snippet(response),
            query=payload.query,
            path_params=payload.path_params,
            headers=payload.headers,
            cookies=payload.cookies,
            body=payload.body,
        )

    def _snippet(self, response: requests.Response) -> str:
        try:
            text = response.text
        except (UnicodeDecodeError, LookupError):
            text = response.content.decode("utf-8", errors="replace")
        return text[: self.snippet_length]
