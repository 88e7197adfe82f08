"""Per-request payloads assembled from generated parameters and bodies."""

from typing import Any

from pydantic import BaseModel

from openapi_fuzzer.generator.bytestream import ByteStream
from openapi_fuzzer.generator.parameters import ParameterGenerator
from openapi_fuzzer.generator.schema import DEFAULT_MAX_DEPTH, SchemaGenerator
from openapi_fuzzer.parser.base import Operation, RequestBody, SchemaArena

JSON_MEDIA_TYPE = "application/json"


class Payload(BaseModel):
    """One fully materialized, randomized request for one operation."""

    method: str
    path: str  # template, e.g. /pets/{petId}
    query: list[tuple[str, str]] = []
    path_params: dict[str, str] = {}
    headers: dict[str, str] = {}
    cookies: dict[str, str] = {}
    body: list[Any] = []  # zero or one JSON value
    media_type: str | None = None
    responses: list[str] = []


class PayloadFactory:
    """Creates a new Payload for an operation from a ByteStream."""

    def __init__(self, arena: SchemaArena, max_depth: int = DEFAULT_MAX_DEPTH):
        self.bodies = SchemaGenerator(arena, max_depth=max_depth)
        self.parameters = ParameterGenerator(
            SchemaGenerator(arena, max_depth=max_depth, respect_enums=True)
        )

    def create(self, path: str, method: str, operation: Operation, stream: ByteStream) -> Payload:
        """Generate a payload. GenerationError propagates to the caller."""
        params = self.parameters.generate(operation.parameters, stream)

        body: list[Any] = []
        media_type = None
        if operation.request_body is not None:
            selected = select_media_type(operation.request_body)
            if selected is not None:
                media_type, schema_id = selected
                body.append(self.bodies.generate(schema_id, stream))

        return Payload(
            method=method,
            path=path,
            query=params.query,
            path_params=params.path,
            headers=params.header,
            cookies=params.cookie,
            body=body,
            media_type=media_type,
            responses=list(operation.responses),
        )


def select_media_type(request_body: RequestBody) -> tuple[str, int] | None:
    """Pick the one media type whose schema is fuzzed.

    Preference: application/json, then the first ``+json`` type, then the
    first declared type that carries a schema.
    """
    with_schema = [(mt, sid) for mt, sid in request_body.content.items() if sid is not None]
    if not with_schema:
        return None
    for mt, sid in with_schema:
        if mt.split(";")[0].strip().lower() == JSON_MEDIA_TYPE:
            return mt, sid
    for mt, sid in with_schema:
        if mt.split(";")[0].strip().lower().endswith("+json"):
            return mt, sid
    return with_schema[0]
