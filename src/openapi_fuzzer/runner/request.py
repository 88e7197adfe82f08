"""Assembles and sends concrete HTTP requests for payloads."""

import json
import logging
import re
from urllib.parse import quote, urlsplit

import requests

from openapi_fuzzer.errors import RequestBuildError
from openapi_fuzzer.generator.payload import Payload

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"

PLACEHOLDER_RE = re.compile(r"\{[^{}]*\}")

DEFAULT_TIMEOUT = 10.0


def check_base_url(base_url: str) -> str:
    """Validate a base URL and return it without a trailing slash."""
    parts = urlsplit(base_url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise RequestBuildError(f"base URL must be an absolute http(s) URL: {base_url!r}")
    if parts.query or parts.fragment:
        raise RequestBuildError(f"base URL must not carry a query or fragment: {base_url!r}")
    return base_url.rstrip("/")


def substitute_path(template: str, path_params: dict[str, str]) -> str:
    """Replace every ``{name}`` with its percent-encoded value.

    Raises RequestBuildError if a placeholder is left unresolved.
    """
    path = template
    for name, value in path_params.items():
        path = path.replace(f"{{{name}}}", quote(value, safe=""))
    leftover = PLACEHOLDER_RE.findall(path)
    if leftover:
        raise RequestBuildError(f"unresolved path placeholders {leftover} in {template!r}")
    return path


def join_url(base_url: str, path: str) -> str:
    """Join keeping the base path: ``http://h/api`` + ``/pets`` -> ``http://h/api/pets``."""
    base = check_base_url(base_url)
    if not path:
        return base
    if "://" in path or path.startswith("//"):
        raise RequestBuildError(f"path must be relative to the base URL: {path!r}")
    return f"{base}/{path.lstrip('/')}"


class RequestBuilder:
    """Builds requests from payloads and sends them over a requests Session."""

    def __init__(self, session: requests.Session | None = None, timeout: float = DEFAULT_TIMEOUT):
        self.session = session or requests.Session()
        self.timeout = timeout

    def build(self, base_url: str, payload: Payload) -> requests.PreparedRequest:
        """Assemble the request without touching the network."""
        url = join_url(base_url, substitute_path(payload.path, payload.path_params))
        headers = dict(payload.headers)
        for name, value in headers.items():
            try:
                value.encode("latin-1")
            except UnicodeEncodeError as e:
                raise RequestBuildError(f"header {name!r} is not latin-1 encodable") from e

        data = None
        if payload.body:
            # Serialized here so a generated null still goes out as a body.
            data = json.dumps(payload.body[0]).encode("utf-8")
            headers["Content-Type"] = JSON_CONTENT_TYPE

        request = requests.Request(
            method=payload.method,
            url=url,
            params=list(payload.query),
            headers=headers,
            cookies=dict(payload.cookies),
            data=data,
        )
        # Only the payload's own cookies go out; drop whatever earlier responses set.
        self.session.cookies.clear()
        try:
            return self.session.prepare_request(request)
        except (requests.RequestException, ValueError) as e:
            raise RequestBuildError(f"cannot prepare {payload.method} {url}: {e}") from e

    def send(self, prepared: requests.PreparedRequest) -> requests.Response:
        """Send a prepared request. Transport failures raise requests.RequestException."""
        logger.debug("%s %s", prepared.method, prepared.url)
        return self.session.send(prepared, timeout=self.timeout, allow_redirects=False)

    def execute(self, base_url: str, payload: Payload) -> requests.Response:
        return self.send(self.build(base_url, payload))

    def close(self) -> None:
        self.session.close()
