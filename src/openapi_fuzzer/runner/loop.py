"""Fuzz loop: walks every operation pass after pass, sending fresh payloads.

With one worker everything runs in the calling thread. With more, a
producer feeds (path, method, operation) work items into a bounded queue
consumed by worker threads, each owning its own session and RNG.
"""

import logging
import queue
import random
import threading
from enum import Enum
from typing import Callable

import requests
from pydantic import BaseModel

from openapi_fuzzer.config import FuzzConfig
from openapi_fuzzer.errors import GenerationError, RequestBuildError
from openapi_fuzzer.generator.bytestream import ByteStream
from openapi_fuzzer.generator.payload import PayloadFactory
from openapi_fuzzer.parser.base import Operation, SpecDocument
from openapi_fuzzer.runner.report import JsonlReporter
from openapi_fuzzer.runner.request import RequestBuilder, check_base_url
from openapi_fuzzer.runner.validator import Anomaly, ResponseValidator

logger = logging.getLogger(__name__)

_PUT_POLL_SECONDS = 0.1


class LoopState(str, Enum):
    IDLE = "idle"
    ITERATING_PATHS = "iterating_paths"
    ITERATING_OPERATIONS = "iterating_operations"
    BUILDING_PAYLOAD = "building_payload"
    SENDING = "sending"
    VALIDATING = "validating"
    STOPPING = "stopping"
    STOPPED = "stopped"


class Outcome(str, Enum):
    OK = "ok"
    ANOMALY = "anomaly"
    GENERATION_ERROR = "generation_error"
    REQUEST_ERROR = "request_error"


class WorkItem(BaseModel):
    path: str
    method: str
    operation: Operation


class FuzzResult(BaseModel):
    """What happened to one payload."""

    path: str
    method: str
    outcome: Outcome
    worker: int = 0
    status: int | None = None
    anomaly: Anomaly | None = None
    error: str | None = None


class FuzzStats:
    """Thread-safe run counters."""

    def __init__(self):
        self._lock = threading.Lock()
        self.passes = 0
        self.requests = 0
        self.ok = 0
        self.anomalies = 0
        self.generation_errors = 0
        self.request_errors = 0

    def add_pass(self) -> None:
        with self._lock:
            self.passes += 1

    def record(self, result: FuzzResult) -> None:
        with self._lock:
            if result.status is not None:
                self.requests += 1
            if result.outcome == Outcome.OK:
                self.ok += 1
            elif result.outcome == Outcome.ANOMALY:
                self.anomalies += 1
            elif result.outcome == Outcome.GENERATION_ERROR:
                self.generation_errors += 1
            else:
                self.request_errors += 1

    def as_dict(self) -> dict[str, int]:
        with self._lock:
            return {
                "passes": self.passes,
                "requests": self.requests,
                "ok": self.ok,
                "anomalies": self.anomalies,
                "generation_errors": self.generation_errors,
                "request_errors": self.request_errors,
            }


class FuzzWorker:
    """Generates, sends and validates one payload at a time."""

    def __init__(
        self,
        index: int,
        base_url: str,
        factory: PayloadFactory,
        builder: RequestBuilder,
        validator: ResponseValidator,
        config: FuzzConfig,
        stop_event: threading.Event,
    ):
        self.index = index
        self.base_url = base_url
        self.factory = factory
        self.builder = builder
        self.validator = validator
        self.config = config
        self.stop_event = stop_event
        self.rng = random.Random(config.worker_seed(index))
        self.state = LoopState.IDLE

    def process(self, item: WorkItem) -> FuzzResult | None:
        """Run one work item. Returns None if a stop arrived before sending."""
        try:
            return self._process(item)
        finally:
            self.state = LoopState.IDLE

    def _process(self, item: WorkItem) -> FuzzResult | None:
        self.state = LoopState.BUILDING_PAYLOAD
        stream = ByteStream.random(self.config.stream_size, self.rng)
        try:
            payload = self.factory.create(item.path, item.method, item.operation, stream)
        except GenerationError as e:
            logger.warning("Skipping %s %s: %s", item.method, item.path, e)
            return self._result(item, Outcome.GENERATION_ERROR, error=str(e))

        try:
            prepared = self.builder.build(self.base_url, payload)
        except RequestBuildError as e:
            logger.warning("Cannot build %s %s: %s", item.method, item.path, e)
            return self._result(item, Outcome.REQUEST_ERROR, error=str(e))

        if self.stop_event.is_set():
            return None

        self.state = LoopState.SENDING
        try:
            response = self.builder.send(prepared)
        except requests.RequestException as e:
            logger.error("Err sending req %s %s: %s", item.method, item.path, e)
            return self._result(item, Outcome.REQUEST_ERROR, error=str(e))

        self.state = LoopState.VALIDATING
        try:
            anomaly = self.validator.validate(response, payload)
        finally:
            response.close()

        if anomaly is None:
            return self._result(item, Outcome.OK, status=response.status_code)
        return self._result(item, Outcome.ANOMALY, status=response.status_code, anomaly=anomaly)

    def _result(self, item: WorkItem, outcome: Outcome, **kwargs) -> FuzzResult:
        return FuzzResult(path=item.path, method=item.method, outcome=outcome, worker=self.index, **kwargs)

    def close(self) -> None:
        self.builder.close()


class FuzzLoop:
    """Drives fuzz passes over every operation of a SpecDocument.

    ``config.max_passes=None`` runs until :meth:`stop` is called (or the
    process is interrupted). The stop signal is checked at the top of each
    pass, before each work item and before each request is sent.
    """

    def __init__(
        self,
        document: SpecDocument,
        base_url: str,
        config: FuzzConfig | None = None,
        *,
        session_factory: Callable[[], requests.Session] = requests.Session,
        on_result: Callable[[FuzzResult], None] | None = None,
        reporter: JsonlReporter | None = None,
    ):
        self.document = document
        self.base_url = check_base_url(base_url)
        self.config = config or FuzzConfig()
        self.session_factory = session_factory
        self.on_result = on_result
        self.reporter = reporter
        self.stats = FuzzStats()
        self.factory = PayloadFactory(document.schemas, max_depth=self.config.max_depth)
        self.validator = ResponseValidator(snippet_length=self.config.snippet_length)
        self._stop = threading.Event()
        self._emit_lock = threading.Lock()
        self._state = LoopState.IDLE
        self._workers: list[FuzzWorker] = []

    @property
    def state(self) -> LoopState:
        if self._state == LoopState.ITERATING_OPERATIONS and len(self._workers) == 1:
            busy = self._workers[0].state
            if busy != LoopState.IDLE:
                return busy
        return self._state

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        """Ask the loop to finish after the request currently in flight."""
        if not self._stop.is_set():
            logger.info("Stop requested")
            self._stop.set()
        if self._state != LoopState.STOPPED:
            self._state = LoopState.STOPPING

    def work_items(self) -> list[WorkItem]:
        return [
            WorkItem(path=path, method=method, operation=operation)
            for path, method, operation in self.document.iter_operations()
        ]

    def run(self) -> FuzzStats:
        items = self.work_items()
        if not items:
            logger.warning("No operations declared; nothing to fuzz")
            self._state = LoopState.STOPPED
            return self.stats

        logger.info(
            "Fuzzing %d operations at %s with %d worker(s)",
            len(items),
            self.base_url,
            self.config.workers,
        )
        try:
            if self.config.workers == 1:
                self._run_sequential(items)
            else:
                self._run_pool(items)
        except KeyboardInterrupt:
            self.stop()
        finally:
            self._state = LoopState.STOPPED
            self._workers = []
        logger.info("Fuzzing stopped: %s", self.stats.as_dict())
        return self.stats

    def _enter(self, state: LoopState) -> None:
        # STOPPING sticks until the run finishes.
        if not self._stop.is_set():
            self._state = state

    def _should_continue(self, passes: int) -> bool:
        if self._stop.is_set():
            return False
        return self.config.max_passes is None or passes < self.config.max_passes

    def _make_worker(self, index: int) -> FuzzWorker:
        builder = RequestBuilder(session=self.session_factory(), timeout=self.config.timeout)
        return FuzzWorker(
            index, self.base_url, self.factory, builder, self.validator, self.config, self._stop
        )

    def _run_sequential(self, items: list[WorkItem]) -> None:
        worker = self._make_worker(0)
        self._workers = [worker]
        try:
            passes = 0
            while self._should_continue(passes):
                self._enter(LoopState.ITERATING_PATHS)
                for item in items:
                    if self._stop.is_set():
                        break
                    self._enter(LoopState.ITERATING_OPERATIONS)
                    self._handle(worker.process(item))
                else:
                    self.stats.add_pass()
                passes += 1
        finally:
            worker.close()

    def _run_pool(self, items: list[WorkItem]) -> None:
        work: queue.Queue = queue.Queue(maxsize=self.config.workers * 2)
        self._workers = [self._make_worker(i) for i in range(self.config.workers)]
        threads = [
            threading.Thread(
                target=self._consume, args=(worker, work), name=f"fuzz-worker-{worker.index}", daemon=True
            )
            for worker in self._workers
        ]
        for thread in threads:
            thread.start()

        try:
            passes = 0
            while self._should_continue(passes):
                self._enter(LoopState.ITERATING_PATHS)
                for item in items:
                    self._enter(LoopState.ITERATING_OPERATIONS)
                    if not self._put(work, item):
                        break
                else:
                    self.stats.add_pass()
                passes += 1
        except KeyboardInterrupt:
            self.stop()
        finally:
            self._shutdown(work, threads)

    def _put(self, work: queue.Queue, item: WorkItem) -> bool:
        while not self._stop.is_set():
            try:
                work.put(item, timeout=_PUT_POLL_SECONDS)
                return True
            except queue.Full:
                continue
        return False

    def _consume(self, worker: FuzzWorker, work: queue.Queue) -> None:
        try:
            while True:
                item = work.get()
                if item is None:
                    break
                if self._stop.is_set():
                    continue
                self._handle(worker.process(item))
        except Exception:
            logger.exception("Worker %d crashed", worker.index)
            self.stop()
            raise
        finally:
            worker.close()

    def _shutdown(self, work: queue.Queue, threads: list[threading.Thread]) -> None:
        if self._stop.is_set():
            while True:
                try:
                    work.get_nowait()
                except queue.Empty:
                    break
        for _ in threads:
            while any(thread.is_alive() for thread in threads):
                try:
                    work.put(None, timeout=_PUT_POLL_SECONDS)
                    break
                except queue.Full:
                    continue
        for thread in threads:
            thread.join()

    def _handle(self, result: FuzzResult | None) -> None:
        if result is None:
            return
        self.stats.record(result)
        if result.anomaly is not None:
            logger.info(
                "Anomaly: %s %s returned undeclared status %s",
                result.method,
                result.path,
                result.status,
            )
            if self.reporter is not None:
                self.reporter.write(result.anomaly)
        if self.on_result is not None:
            with self._emit_lock:
                self.on_result(result)
