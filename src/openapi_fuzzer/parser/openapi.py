"""OpenAPI / Swagger document loader.

Parses OpenAPI 3.x and Swagger 2.0 documents into a SpecDocument,
resolving local ``$ref`` pointers along the way.
"""

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from openapi_fuzzer.errors import SpecLoadError

from .base import (
    HTTP_METHODS,
    PARAM_LOCATIONS,
    Operation,
    Parameter,
    PathEntry,
    RequestBody,
    SchemaArena,
    SchemaKind,
    SchemaNode,
    SpecDocument,
)

logger = logging.getLogger(__name__)

_TYPE_KINDS = {
    "string": SchemaKind.STRING,
    "number": SchemaKind.NUMBER,
    "integer": SchemaKind.INTEGER,
    "boolean": SchemaKind.BOOLEAN,
    "object": SchemaKind.OBJECT,
    "array": SchemaKind.ARRAY,
}

_COMPOSITE_KINDS = (
    ("oneOf", SchemaKind.ONE_OF),
    ("anyOf", SchemaKind.ANY_OF),
    ("allOf", SchemaKind.ALL_OF),
)


def load_spec(file_path: Path) -> SpecDocument:
    """Read an OpenAPI/Swagger file (YAML or JSON) into a SpecDocument."""
    try:
        text = Path(file_path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise SpecLoadError(f"cannot read specification: {e}", str(file_path)) from e

    try:
        doc = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise SpecLoadError(f"failed to parse specification: {e}", str(file_path)) from e

    return parse_spec(doc)


def parse_spec(doc: Any) -> SpecDocument:
    """Convert an already-parsed OpenAPI/Swagger mapping into a SpecDocument."""
    if not isinstance(doc, dict):
        raise SpecLoadError("specification root must be a mapping")
    if "openapi" not in doc and "swagger" not in doc:
        raise SpecLoadError("missing 'openapi' or 'swagger' version field")
    return _Resolver(doc).build()


class _Resolver:
    """Walks one document, interning schemas into a shared arena."""

    def __init__(self, doc: dict):
        self.doc = doc
        self.arena = SchemaArena()
        self._interned: dict[str, int] = {}

    def build(self) -> SpecDocument:
        if "paths" not in self.doc:
            raise SpecLoadError("missing 'paths'", "#/paths")
        paths = self.doc["paths"] or {}
        if not isinstance(paths, dict):
            raise SpecLoadError("'paths' must be a mapping", "#/paths")

        result: dict[str, PathEntry] = {}
        for path, item in paths.items():
            pointer = f"#/paths/{_escape(path)}"
            item = self._deref(item, pointer)
            if not isinstance(item, dict):
                raise SpecLoadError("path item must be a mapping", pointer)
            result[str(path)] = self._parse_path_item(str(path), item, pointer)

        info = self.doc.get("info") or {}
        if not isinstance(info, dict):
            raise SpecLoadError("'info' must be a mapping", "#/info")
        title = info.get("title", "")
        logger.debug("Resolved %d paths, %d schema nodes", len(result), len(self.arena))
        return SpecDocument(title=str(title), paths=result, schemas=self.arena)

    # -- references -----------------------------------------------------------

    def _lookup(self, ref: str) -> Any:
        if not isinstance(ref, str) or not ref.startswith("#"):
            raise SpecLoadError(f"unsupported external reference {ref!r}")
        node: Any = self.doc
        for token in ref[1:].split("/")[1:]:
            token = token.replace("~1", "/").replace("~0", "~")
            if isinstance(node, dict) and token in node:
                node = node[token]
            elif isinstance(node, list) and token.isdigit() and int(token) < len(node):
                node = node[int(token)]
            else:
                raise SpecLoadError(f"unresolvable reference {ref!r}")
        return node

    def _deref(self, obj: Any, pointer: str) -> Any:
        """Follow a chain of non-schema ``$ref`` objects."""
        seen = set()
        while isinstance(obj, dict) and "$ref" in obj:
            ref = obj["$ref"]
            if ref in seen:
                raise SpecLoadError(f"circular reference {ref!r}", pointer)
            seen.add(ref)
            pointer = ref
            obj = self._lookup(ref)
        return obj

    # -- schemas --------------------------------------------------------------

    def schema(self, obj: Any, pointer: str) -> int:
        """Intern a schema and return its arena index."""
        if isinstance(obj, dict) and "$ref" in obj:
            ref = obj["$ref"]
            if ref in self._interned:
                return self._interned[ref]
            target = self._lookup(ref)
            # Reserve the slot first so cycles resolve to this index.
            node_id = self.arena.add(SchemaNode(kind=SchemaKind.ANY, ref=ref))
            self._interned[ref] = node_id
            self.arena.nodes[node_id] = self._parse_schema(target, ref)
            return node_id
        return self.arena.add(self._parse_schema(obj, pointer))

    def _parse_schema(self, obj: Any, pointer: str) -> SchemaNode:
        if isinstance(obj, bool) or obj is None:
            return SchemaNode(kind=SchemaKind.ANY, ref=pointer)
        if not isinstance(obj, dict):
            raise SpecLoadError("schema must be a mapping", pointer)
        if "$ref" in obj:
            # Alias: a ref target that is itself a ref
            return self.arena.get(self.schema(obj, pointer)).model_copy()

        kind = _schema_kind(obj)
        fields: dict[str, Any] = {"kind": kind, "ref": pointer, "enum": obj.get("enum")}

        if kind == SchemaKind.OBJECT:
            props = obj.get("properties") or {}
            if not isinstance(props, dict):
                raise SpecLoadError("'properties' must be a mapping", pointer)
            fields["properties"] = {
                str(name): self.schema(sub, f"{pointer}/properties/{_escape(name)}")
                for name, sub in props.items()
            }
        elif kind == SchemaKind.ARRAY:
            if "items" in obj:
                fields["items"] = self.schema(obj["items"], f"{pointer}/items")
            fields["min_items"] = obj.get("minItems")
            fields["max_items"] = obj.get("maxItems")
        else:
            for key, composite in _COMPOSITE_KINDS:
                if kind == composite:
                    variants = obj.get(key) or []
                    if not isinstance(variants, list):
                        raise SpecLoadError(f"'{key}' must be a list", pointer)
                    fields["variants"] = [
                        self.schema(sub, f"{pointer}/{key}/{i}") for i, sub in enumerate(variants)
                    ]

        try:
            return SchemaNode(**fields)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise SpecLoadError(f"invalid schema ({problems})", pointer) from e

    # -- operations -----------------------------------------------------------

    def _parse_path_item(self, path: str, item: dict, pointer: str) -> PathEntry:
        shared = self._parse_parameters(item.get("parameters") or [], f"{pointer}/parameters")
        operations: dict[str, Operation | None] = {}
        for method in HTTP_METHODS:
            raw = item.get(method.lower())
            if raw is None:
                operations[method] = None
                continue
            op_pointer = f"{pointer}/{method.lower()}"
            if not isinstance(raw, dict):
                raise SpecLoadError("operation must be a mapping", op_pointer)
            operations[method] = self._parse_operation(raw, shared, op_pointer)
        return PathEntry(path=path, operations=operations)

    def _parse_operation(self, raw: dict, shared: list, pointer: str) -> Operation:
        own = self._parse_parameters(raw.get("parameters") or [], f"{pointer}/parameters")

        merged: dict[tuple[str, str], Parameter] = {}
        body_schema: int | None = None
        has_body_param = False
        for param, location_schema in shared + own:
            if param is None:
                # Swagger 2.0 "in: body" parameter
                has_body_param = True
                body_schema = location_schema
                continue
            merged[(param.location, param.name)] = param

        request_body = self._parse_request_body(raw.get("requestBody"), f"{pointer}/requestBody")
        if request_body is None and has_body_param:
            consumes = raw.get("consumes") or self.doc.get("consumes") or ["application/json"]
            if isinstance(consumes, str):
                consumes = [consumes]
            elif not isinstance(consumes, list):
                raise SpecLoadError("'consumes' must be a list", f"{pointer}/consumes")
            request_body = RequestBody(content={str(consumes[0]): body_schema})

        return Operation(
            parameters=list(merged.values()),
            request_body=request_body,
            responses=self._parse_responses(raw.get("responses") or {}, f"{pointer}/responses"),
            operation_id=_optional_str(raw.get("operationId")),
        )

    def _parse_parameters(self, params: Any, pointer: str) -> list:
        """Return ``(Parameter | None, schema_id)`` pairs; None marks a body parameter."""
        if not isinstance(params, list):
            raise SpecLoadError("'parameters' must be a list", pointer)
        result = []
        for i, p in enumerate(params):
            p_pointer = f"{pointer}/{i}"
            p = self._deref(p, p_pointer)
            if not isinstance(p, dict) or "name" not in p:
                raise SpecLoadError("parameter must be a mapping with a name", p_pointer)
            location = p.get("in", "query")
            if location == "body":
                result.append((None, self._optional_schema(p.get("schema"), f"{p_pointer}/schema")))
                continue
            if location not in PARAM_LOCATIONS:
                logger.debug("Skipping %s parameter %r at %s", location, p["name"], p_pointer)
                continue
            schema = p.get("schema")
            if schema is None and "type" in p:
                # Swagger 2.0 keeps the type on the parameter itself
                schema = {k: v for k, v in p.items() if k in ("type", "items", "enum", "minItems", "maxItems")}
            result.append(
                (
                    Parameter(
                        name=str(p["name"]),
                        location=location,
                        required=bool(p.get("required", location == "path")),
                        schema_id=self._optional_schema(schema, f"{p_pointer}/schema"),
                    ),
                    None,
                )
            )
        return result

    def _parse_request_body(self, body: Any, pointer: str) -> RequestBody | None:
        if body is None:
            return None
        body = self._deref(body, pointer)
        if not isinstance(body, dict):
            raise SpecLoadError("request body must be a mapping", pointer)
        content = body.get("content") or {}
        if not isinstance(content, dict):
            raise SpecLoadError("'content' must be a mapping", f"{pointer}/content")
        schemas: dict[str, int | None] = {}
        for media_type, media in content.items():
            media_pointer = f"{pointer}/content/{_escape(media_type)}"
            media = media or {}
            if not isinstance(media, dict):
                raise SpecLoadError("media type object must be a mapping", media_pointer)
            schemas[str(media_type)] = self._optional_schema(media.get("schema"), f"{media_pointer}/schema")
        return RequestBody(content=schemas)

    def _optional_schema(self, schema: Any, pointer: str) -> int | None:
        if schema is None:
            return None
        return self.schema(schema, pointer)

    def _parse_responses(self, responses: Any, pointer: str) -> list[str]:
        if not isinstance(responses, dict):
            raise SpecLoadError("'responses' must be a mapping", pointer)
        return [str(status_code) for status_code in responses]


def _schema_kind(obj: dict) -> SchemaKind:
    declared = obj.get("type")
    if isinstance(declared, list):
        declared = next((t for t in declared if t != "null"), None)
    if declared is not None:
        if not isinstance(declared, str) or declared not in _TYPE_KINDS:
            return SchemaKind.ANY
        return _TYPE_KINDS[declared]
    for key, kind in _COMPOSITE_KINDS:
        if key in obj:
            return kind
    if "properties" in obj:
        return SchemaKind.OBJECT
    if "items" in obj:
        return SchemaKind.ARRAY
    return SchemaKind.ANY


def _escape(token: str) -> str:
    return str(token).replace("~", "~0").replace("/", "~1")


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)
