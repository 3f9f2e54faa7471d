"""Unit tests for input schema parsing."""

import json

import pytest

from mcp_gateway_client.schema import ParameterDescriptor, parse_input_schema


class TestAbsentSchemas:
    """Unusable schemas degrade to None."""

    @pytest.mark.parametrize("schema", [None, "", "   ", "{not json", "[1, 2]", "42", "null"])
    def test_unusable_text(self, schema):
        assert parse_input_schema(schema) is None

    def test_nesting_past_decoder_limit(self):
        assert parse_input_schema("[" * 100000) is None

    def test_nesting_past_recursion_limit(self):
        """A decoded schema too deep to walk degrades to None."""
        schema: dict = {"type": "object", "properties": {}}
        for _ in range(10000):
            schema = {"type": "object", "properties": {"child": schema}}

        assert parse_input_schema(schema) is None

    def test_object_without_properties(self):
        assert parse_input_schema({"type": "object"}) is None

    def test_properties_not_an_object(self):
        assert parse_input_schema({"type": "object", "properties": ["a"]}) is None

    def test_empty_properties(self):
        """An object with no properties has zero parameters, not None."""
        assert parse_input_schema({"type": "object", "properties": {}}) == ()


class TestFlatSchemas:
    """Test top-level properties."""

    def test_declaration_order_kept(self):
        schema = json.dumps(
            {
                "type": "object",
                "properties": {
                    "zeta": {"type": "string"},
                    "alpha": {"type": "integer"},
                    "mid": {"type": "boolean"},
                },
            }
        )

        params = parse_input_schema(schema)

        assert [p.name for p in params] == ["zeta", "alpha", "mid"]
        assert [p.type for p in params] == ["string", "integer", "boolean"]

    def test_required(self):
        params = parse_input_schema(
            {
                "properties": {"a": {"type": "string"}, "b": {"type": "string"}},
                "required": ["b", 7],
            }
        )

        assert params[0].required is False
        assert params[1].required is True

    def test_type_defaults_to_string(self):
        (param,) = parse_input_schema({"properties": {"q": {"description": "Query"}}})

        assert param.type == "string"
        assert param.description == "Query"

    def test_non_object_property_skipped(self):
        params = parse_input_schema({"properties": {"a": True, "b": {"type": "number"}}})
        assert [p.name for p in params] == ["b"]

    def test_enum_keeps_strings_only(self):
        (param,) = parse_input_schema(
            {"properties": {"mode": {"type": "string", "enum": ["fast", 1, "slow", None]}}}
        )
        assert param.enum_values == ("fast", "slow")

    def test_enum_without_strings_is_absent(self):
        (param,) = parse_input_schema({"properties": {"n": {"type": "integer", "enum": [1, 2]}}})
        assert param.enum_values is None

    @pytest.mark.parametrize(
        ("default", "expected"),
        [
            ("x", "x"),
            (True, True),
            (3, 3),
            (3.0, 3),
            (2.5, 2.5),
            ([1], None),
            ({"a": 1}, None),
            (None, None),
        ],
    )
    def test_defaults(self, default, expected):
        (param,) = parse_input_schema({"properties": {"p": {"default": default}}})

        assert param.default == expected
        assert type(param.default) is type(expected)


class TestNestedSchemas:
    """Test arrays, objects and additionalProperties."""

    def test_array_of_scalars(self):
        (param,) = parse_input_schema(
            {"properties": {"tags": {"type": "array", "items": {"type": "string"}}}}
        )

        assert param.type == "array"
        assert param.items_type == "string"
        assert param.nested_schema is None

    def test_array_of_objects(self):
        (param,) = parse_input_schema(
            {
                "properties": {
                    "rows": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {"id": {"type": "integer"}},
                            "required": ["id"],
                        },
                    }
                }
            }
        )

        assert param.items_type == "object"
        assert param.nested_schema[0].name == "id"
        assert param.nested_schema[0].required is True

    def test_object_with_properties(self):
        (param,) = parse_input_schema(
            {
                "properties": {
                    "opts": {"type": "object", "properties": {"verbose": {"type": "boolean"}}}
                }
            }
        )

        assert param.find("verbose").type == "boolean"
        assert param.find("missing") is None

    @pytest.mark.parametrize(
        ("additional", "expected"),
        [
            ({"type": "integer"}, "integer"),
            ({}, "string"),
            (True, "any"),
            (False, None),
        ],
    )
    def test_additional_properties(self, additional, expected):
        (param,) = parse_input_schema(
            {"properties": {"env": {"type": "object", "additionalProperties": additional}}}
        )

        assert param.additional_properties_type == expected
        assert param.nested_schema is None

    def test_three_levels(self):
        """object -> object -> array of objects is reproduced level by level."""
        schema = {
            "type": "object",
            "properties": {
                "config": {
                    "type": "object",
                    "properties": {
                        "server": {
                            "type": "object",
                            "properties": {
                                "routes": {
                                    "type": "array",
                                    "items": {
                                        "type": "object",
                                        "properties": {
                                            "path": {"type": "string"},
                                            "port": {"type": "integer", "default": 80},
                                        },
                                    },
                                }
                            },
                        }
                    },
                }
            },
        }

        (config,) = parse_input_schema(schema)
        server = config.find("server")
        routes = server.find("routes")

        assert config.type == "object"
        assert server.type == "object"
        assert routes.type == "array"
        assert routes.items_type == "object"
        assert [p.name for p in routes.nested_schema] == ["path", "port"]
        assert routes.find("port").default == 80

    def test_descriptors_are_values(self):
        a = parse_input_schema({"properties": {"x": {"type": "string"}}})
        b = parse_input_schema('{"properties": {"x": {"type": "string"}}}')

        assert a == b
        assert isinstance(a[0], ParameterDescriptor)
