"""Run configuration for a fuzzing session."""

from pydantic import BaseModel, Field

from openapi_fuzzer.generator.bytestream import DEFAULT_STREAM_SIZE
from openapi_fuzzer.generator.schema import DEFAULT_MAX_DEPTH
from openapi_fuzzer.runner.request import DEFAULT_TIMEOUT
from openapi_fuzzer.runner.validator import DEFAULT_SNIPPET_LENGTH


class FuzzConfig(BaseModel):
    max_passes: int | None = Field(default=None, ge=1)  # None: run until stopped
    workers: int = Field(default=1, ge=1)
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    seed: int | None = None
    max_depth: int = Field(default=DEFAULT_MAX_DEPTH, ge=1)
    stream_size: int = Field(default=DEFAULT_STREAM_SIZE, ge=1)
    snippet_length: int = Field(default=DEFAULT_SNIPPET_LENGTH, ge=0)

    def worker_seed(self, index: int) -> str | None:
        """Independent, reproducible seed for one worker's RNG."""
        if self.seed is None:
            return None
        return f"{self.seed}-{index}"
