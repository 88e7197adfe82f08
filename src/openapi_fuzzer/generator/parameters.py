"""Randomized values for an operation's declared parameters."""

import json
from typing import Any

from pydantic import BaseModel

from openapi_fuzzer.generator.bytestream import ByteStream
from openapi_fuzzer.generator.schema import SchemaGenerator
from openapi_fuzzer.parser.base import Parameter


class GeneratedParameters(BaseModel):
    """Parameter values bucketed by location.

    Query keeps every entry in order, so repeated names survive. Path,
    header and cookie are mappings where the last write wins.
    """

    query: list[tuple[str, str]] = []
    path: dict[str, str] = {}
    header: dict[str, str] = {}
    cookie: dict[str, str] = {}


class ParameterGenerator:
    """Generates parameter values through the schema generator.

    The declared schema decides the value's type (integers, booleans and
    enum members are respected). The value is then rendered as text for
    the wire. Parameters without a schema get a random string.
    """

    def __init__(self, schemas: SchemaGenerator):
        self.schemas = schemas

    def generate(self, parameters: list[Parameter], stream: ByteStream) -> GeneratedParameters:
        result = GeneratedParameters()
        for param in parameters:
            if param.schema_id is None:
                value: Any = stream.string()
            else:
                value = self.schemas.generate(param.schema_id, stream)

            if param.location == "query":
                values = value if isinstance(value, list) else [value]
                result.query.extend((param.name, to_text(v)) for v in values)
            elif param.location == "path":
                result.path[param.name] = to_text(value)
            elif param.location == "header":
                result.header[param.name] = to_text(value)
            elif param.location == "cookie":
                result.cookie[param.name] = to_text(value)
        return result


def to_text(value: Any) -> str:
    """Render a generated value as a parameter string."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return ",".join(to_text(v) for v in value)
    return json.dumps(value, separators=(",", ":"))
