import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

PROXY_VARS = ("HTTP_PROXY", "HTTPS_PROXY", "ALL_PROXY", "http_proxy", "https_proxy", "all_proxy")


class StubHandler(BaseHTTPRequestHandler):
    """Answers every request with the server's configured status."""

    def _reply(self):
        length = int(self.headers.get("Content-Length") or 0)
        if length:
            self.rfile.read(length)
        self.server.hits.append((self.command, self.path))
        self.server.cookies.append(self.headers.get("Cookie"))
        body = self.server.body
        self.send_response(self.server.status)
        if self.server.set_cookie:
            self.send_header("Set-Cookie", self.server.set_cookie)
        self.send_header("Content-Type", "text/plain")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    do_GET = do_POST = do_PUT = do_DELETE = do_PATCH = _reply

    def log_message(self, format, *args):
        pass


@pytest.fixture
def stub_server(monkeypatch):
    """Loopback HTTP server that always answers 503 unless told otherwise."""
    for var in PROXY_VARS:
        monkeypatch.delenv(var, raising=False)

    server = ThreadingHTTPServer(("127.0.0.1", 0), StubHandler)
    server.status = 503
    server.body = b"service unavailable"
    server.hits = []
    server.cookies = []
    server.set_cookie = None
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    server.base_url = f"http://127.0.0.1:{server.server_address[1]}"
    yield server
    server.shutdown()
    server.server_close()
