"""Input schema parsing.

Turns a tool or prompt input schema (a JSON-Schema-like document) into a tree
of ``ParameterDescriptor`` values used to build invocation forms. Schemas are
advisory metadata: anything unusable yields ``None`` instead of an error.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

ANY_TYPE = "any"
DEFAULT_TYPE = "string"

Scalar = str | int | float | bool


class ParameterDescriptor(BaseModel):
    """A single parameter in an input schema.

    ``nested_schema`` and ``additional_properties_type`` are independent: an
    object may declare fixed properties and still accept arbitrary keys.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    type: str
    description: str | None = None
    required: bool = False
    enum_values: tuple[str, ...] | None = None
    default: Scalar | None = None
    items_type: str | None = None
    nested_schema: tuple[ParameterDescriptor, ...] | None = None
    additional_properties_type: str | None = None

    def find(self, name: str) -> ParameterDescriptor | None:
        """Find a nested parameter by name."""
        for param in self.nested_schema or ():
            if param.name == name:
                return param
        return None


def parse_input_schema(
    schema: str | Mapping[str, Any] | None,
) -> tuple[ParameterDescriptor, ...] | None:
    """Parse an input schema into parameter descriptors.

    Args:
        schema: Schema as JSON text or an already decoded mapping

    Returns:
        Descriptors in declaration order, or None when the schema is missing,
        malformed or declares no properties
    """
    if schema is None:
        return None

    if isinstance(schema, str):
        if not schema.strip():
            return None
        try:
            schema = json.loads(schema)
        except (ValueError, RecursionError) as e:
            logger.debug(f"Ignoring malformed input schema: {e}")
            return None

    try:
        return _parse_object(schema)
    except RecursionError:
        logger.debug("Ignoring input schema nested too deeply")
        return None


def _parse_object(element: Any) -> tuple[ParameterDescriptor, ...] | None:
    if not isinstance(element, Mapping):
        return None

    properties = element.get("properties")
    if not isinstance(properties, Mapping):
        return None

    required = element.get("required")
    required_names = (
        {name for name in required if isinstance(name, str)}
        if isinstance(required, list)
        else set()
    )

    params = []
    for name, prop in properties.items():
        param = _parse_parameter(name, prop, name in required_names)
        if param is not None:
            params.append(param)
    return tuple(params)


def _parse_parameter(name: str, element: Any, required: bool) -> ParameterDescriptor | None:
    if not isinstance(element, Mapping):
        return None

    param_type = _get_str(element, "type") or DEFAULT_TYPE
    nested_schema = None
    items_type = None
    additional_properties_type = None

    if param_type == "array":
        items = element.get("items")
        if isinstance(items, Mapping):
            items_type = _get_str(items, "type")
            if items_type == "object":
                nested_schema = _parse_object(items)

    if param_type == "object":
        if "properties" in element:
            nested_schema = _parse_object(element)

        additional = element.get("additionalProperties")
        if additional is True:
            additional_properties_type = ANY_TYPE
        elif isinstance(additional, Mapping):
            additional_properties_type = _get_str(additional, "type") or DEFAULT_TYPE

    return ParameterDescriptor(
        name=name,
        type=param_type,
        description=_get_str(element, "description"),
        required=required,
        enum_values=_get_enum_values(element),
        default=_get_default(element),
        items_type=items_type,
        nested_schema=nested_schema,
        additional_properties_type=additional_properties_type,
    )


def _get_str(element: Mapping[str, Any], key: str) -> str | None:
    value = element.get(key)
    return value if isinstance(value, str) else None


def _get_enum_values(element: Mapping[str, Any]) -> tuple[str, ...] | None:
    values = element.get("enum")
    if not isinstance(values, list):
        return None
    strings = tuple(v for v in values if isinstance(v, str))
    return strings or None


def _get_default(element: Mapping[str, Any]) -> Scalar | None:
    value = element.get("default")
    # bool is an int subclass; keep it as-is
    if isinstance(value, bool | str | int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else value
    return None
