"""Data models for a resolved API description.

The loader converts an OpenAPI / Swagger document into these models.
Schemas live in a flat arena and reference each other by index, so
shared ``$ref`` targets and cycles never turn into nested copies.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel

HTTP_METHODS = ("GET", "PUT", "POST", "DELETE", "OPTIONS", "HEAD", "PATCH", "TRACE")

PARAM_LOCATIONS = ("query", "path", "header", "cookie")


class SchemaKind(str, Enum):
    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    OBJECT = "object"
    ARRAY = "array"
    ONE_OF = "one_of"
    ANY_OF = "any_of"
    ALL_OF = "all_of"
    ANY = "any"


PRIMITIVE_KINDS = frozenset(
    {SchemaKind.STRING, SchemaKind.NUMBER, SchemaKind.INTEGER, SchemaKind.BOOLEAN}
)


class SchemaNode(BaseModel):
    """A single schema in the arena. Children are arena indexes."""

    kind: SchemaKind
    properties: dict[str, int] = {}
    items: int | None = None
    min_items: int | None = None
    max_items: int | None = None
    enum: list[Any] | None = None
    variants: list[int] = []
    ref: str | None = None  # JSON pointer the node was read from


class SchemaArena(BaseModel):
    nodes: list[SchemaNode] = []

    def add(self, node: SchemaNode) -> int:
        self.nodes.append(node)
        return len(self.nodes) - 1

    def get(self, node_id: int) -> SchemaNode:
        return self.nodes[node_id]

    def __len__(self) -> int:
        return len(self.nodes)


class Parameter(BaseModel):
    """A single operation parameter (query, path, header, or cookie)."""

    name: str
    location: str  # query / path / header / cookie
    required: bool = False
    schema_id: int | None = None


class RequestBody(BaseModel):
    content: dict[str, int | None] = {}  # {media_type: schema_id}


class Operation(BaseModel):
    """One HTTP method on one path."""

    parameters: list[Parameter] = []
    request_body: RequestBody | None = None
    responses: list[str] = []  # declared status keys: "200", "4XX", "default"
    operation_id: str | None = None


class PathEntry(BaseModel):
    path: str
    operations: dict[str, Operation | None] = {}


class SpecDocument(BaseModel):
    """Fully reference-resolved API description."""

    title: str = ""
    paths: dict[str, PathEntry] = {}
    schemas: SchemaArena = SchemaArena()

    def iter_operations(self):
        """Yield ``(path, method, operation)`` for every declared operation."""
        for path, entry in self.paths.items():
            for method in HTTP_METHODS:
                operation = entry.operations.get(method)
                if operation is not None:
                    yield path, method, operation
