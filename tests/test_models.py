from openapi_fuzzer.parser.base import (
    Operation,
    Parameter,
    PathEntry,
    RequestBody,
    SchemaArena,
    SchemaKind,
    SchemaNode,
    SpecDocument,
)


class TestParameter:
    def test_create_required_param(self):
        p = Parameter(name="id", location="path", required=True, schema_id=0)
        assert p.name == "id"
        assert p.required is True

    def test_defaults(self):
        p = Parameter(name="q", location="query")
        assert p.required is False
        assert p.schema_id is None


class TestSchemaArena:
    def test_add_returns_index(self):
        arena = SchemaArena()
        assert arena.add(SchemaNode(kind=SchemaKind.STRING)) == 0
        assert arena.add(SchemaNode(kind=SchemaKind.OBJECT, properties={"a": 0})) == 1
        assert len(arena) == 2
        assert arena.get(1).properties == {"a": 0}

    def test_node_can_reference_itself(self):
        arena = SchemaArena()
        arena.add(SchemaNode(kind=SchemaKind.ARRAY, items=0))
        assert arena.get(arena.get(0).items) is arena.get(0)


class TestSpecDocument:
    def test_iter_operations_skips_missing_methods(self):
        op = Operation(responses=["200"])
        doc = SpecDocument(paths={
            "/a": PathEntry(path="/a", operations={"POST": op, "GET": None}),
            "/b": PathEntry(path="/b", operations={"TRACE": op, "GET": op}),
        })
        assert [(path, method) for path, method, _ in doc.iter_operations()] == [
            ("/a", "POST"),
            ("/b", "GET"),
            ("/b", "TRACE"),
        ]

    def test_operation_serialization_roundtrip(self):
        op = Operation(
            parameters=[Parameter(name="id", location="path", required=True, schema_id=2)],
            request_body=RequestBody(content={"application/json": 1}),
            responses=["204"],
        )
        data = op.model_dump()
        op2 = Operation(**data)
        assert op2.parameters[0].name == "id"
        assert op2.request_body.content == {"application/json": 1}
