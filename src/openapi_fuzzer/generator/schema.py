"""Schema-driven value synthesis.

Turns an arena schema node into a JSON-compatible value, consuming
randomness from a ByteStream.
"""

from typing import Any

from openapi_fuzzer.errors import UnsupportedSchemaError
from openapi_fuzzer.generator.bytestream import ByteStream
from openapi_fuzzer.parser.base import SchemaArena, SchemaKind, SchemaNode

DEFAULT_MIN_ITEMS = 1
DEFAULT_MAX_ITEMS = 10
DEFAULT_MAX_DEPTH = 8


class SchemaGenerator:
    """Generates values for schema nodes stored in an arena.

    Primitive values are uniform: format, bounds and (by default) enums
    are ignored. Objects carry exactly their declared properties. Arrays
    get a length within ``[minItems, maxItems]``.

    An object or array node that is already being generated further up
    the current path collapses to ``None``, as does any container past
    ``max_depth``. Cyclic schemas therefore terminate, and each node is
    expanded at most once per branch.
    """

    def __init__(
        self,
        arena: SchemaArena,
        max_depth: int = DEFAULT_MAX_DEPTH,
        respect_enums: bool = False,
    ):
        self.arena = arena
        self.max_depth = max_depth
        self.respect_enums = respect_enums

    def generate(self, node_id: int, stream: ByteStream) -> Any:
        """Generate a value for the node at ``node_id``.

        Raises UnsupportedSchemaError for oneOf/anyOf/allOf/any nodes.
        """
        return self._generate(node_id, stream, ())

    def _generate(self, node_id: int, stream: ByteStream, path: tuple[int, ...]) -> Any:
        node = self.arena.get(node_id)
        if self.respect_enums and node.enum:
            return stream.choice(node.enum)

        kind = node.kind
        if kind == SchemaKind.STRING:
            return stream.string()
        if kind == SchemaKind.NUMBER:
            return stream.number()
        if kind == SchemaKind.INTEGER:
            return stream.integer()
        if kind == SchemaKind.BOOLEAN:
            return stream.boolean()
        if kind in (SchemaKind.OBJECT, SchemaKind.ARRAY):
            if len(path) >= self.max_depth or node_id in path:
                return None
            path = path + (node_id,)
            if kind == SchemaKind.OBJECT:
                return self._generate_object(node, stream, path)
            return self._generate_array(node, stream, path)
        raise UnsupportedSchemaError(kind.value, node.ref)

    def _generate_object(self, node: SchemaNode, stream: ByteStream, path: tuple[int, ...]) -> dict:
        return {
            name: self._generate(child, stream, path)
            for name, child in node.properties.items()
        }

    def _generate_array(self, node: SchemaNode, stream: ByteStream, path: tuple[int, ...]) -> list:
        if node.items is None:
            raise UnsupportedSchemaError(SchemaKind.ANY.value, f"{node.ref}/items" if node.ref else None)
        lo, hi = array_bounds(node)
        length = stream.int_in_range(lo, hi)
        return [self._generate(node.items, stream, path) for _ in range(length)]


def array_bounds(node: SchemaNode) -> tuple[int, int]:
    """Inclusive length bounds for an array node, with defaults applied."""
    lo = node.min_items if node.min_items is not None else DEFAULT_MIN_ITEMS
    hi = node.max_items if node.max_items is not None else DEFAULT_MAX_ITEMS
    lo = max(lo, 0)
    return lo, max(lo, hi)
