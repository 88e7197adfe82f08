"""JSON Lines report of anomalies."""

import threading
from pathlib import Path

from openapi_fuzzer.runner.validator import Anomaly


class JsonlReporter:
    """Appends one JSON object per anomaly; safe to share between workers."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._fh = self.path.open("a", encoding="utf-8")
        self.count = 0

    def write(self, anomaly: Anomaly) -> None:
        line = anomaly.model_dump_json()
        with self._lock:
            self._fh.write(line + "\n")
            self._fh.flush()
            self.count += 1

    def close(self) -> None:
        with self._lock:
            if not self._fh.closed:
                self._fh.close()

    def __enter__(self) -> "JsonlReporter":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
