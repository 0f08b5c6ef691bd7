"""Shape classification for resolved schema nodes."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from .schema_nodes import SchemaNode

_MAX_NESTING_DEPTH = 32


class SchemaShape(str, Enum):
    """Mutually exclusive schema shapes, listed in classification priority."""

    REFERENCE = "reference"
    PRIMITIVE = "primitive"
    MAP = "map"
    ARRAY_OF_PRIMITIVES = "array_of_primitives"
    ARRAY_OF_MAPS = "array_of_maps"
    ARRAY_OF_ARRAYS = "array_of_arrays"
    ARRAY_OF_AMBIGUOUS_OBJECTS = "array_of_ambiguous_objects"
    ARRAY_OF_OBJECTS = "array_of_objects"
    UNTYPED_ARRAY = "untyped_array"
    AMBIGUOUS_OBJECT = "ambiguous_object"
    OBJECT = "object"
    UNTYPED = "untyped"

    @property
    def is_array(self) -> bool:
        return self.value.startswith("array_of_") or self is SchemaShape.UNTYPED_ARRAY


def is_map_object(schema: SchemaNode) -> bool:
    """Return whether the schema is a free-form map without declared properties."""
    return (
        schema.type in ("object", None)
        and not schema.properties
        and schema.additional is not None
    )


def is_ambiguous_object(schema: SchemaNode) -> bool:
    """Return whether the schema is an object that declares neither properties nor values."""
    return (
        schema.type == "object"
        and not schema.properties
        and schema.additional is None
        and not schema.recursive
    )


def is_object(schema: SchemaNode) -> bool:
    """Return whether the schema is a well-formed object with declared properties."""
    return bool(schema.properties) and schema.type in ("object", None)


def is_ambiguous_array(schema: SchemaNode) -> bool:
    """Return whether the schema is an array whose items are ambiguous objects."""
    return schema.is_array and schema.items is not None and is_ambiguous_object(schema.items)


def classify_shape(schema: SchemaNode) -> SchemaShape:
    """Classify ``schema`` into exactly one :class:`SchemaShape`.

    Args:
        schema (SchemaNode): Resolved schema node.

    Returns:
        SchemaShape: The first matching shape in priority order.
    """
    if schema.recursive:
        return SchemaShape.REFERENCE
    if schema.is_primitive:
        return SchemaShape.PRIMITIVE
    if is_map_object(schema):
        return SchemaShape.MAP
    if schema.is_array:
        return _classify_array_items(schema.items)
    if is_ambiguous_object(schema):
        return SchemaShape.AMBIGUOUS_OBJECT
    if is_object(schema):
        return SchemaShape.OBJECT
    return SchemaShape.UNTYPED


def _classify_array_items(items: Optional[SchemaNode]) -> SchemaShape:
    if items is None:
        return SchemaShape.UNTYPED_ARRAY
    item_shape = classify_shape(items)
    if item_shape is SchemaShape.PRIMITIVE:
        return SchemaShape.ARRAY_OF_PRIMITIVES
    if item_shape is SchemaShape.MAP:
        return SchemaShape.ARRAY_OF_MAPS
    if item_shape.is_array:
        return SchemaShape.ARRAY_OF_ARRAYS
    if item_shape is SchemaShape.AMBIGUOUS_OBJECT:
        return SchemaShape.ARRAY_OF_AMBIGUOUS_OBJECTS
    if item_shape in (SchemaShape.OBJECT, SchemaShape.REFERENCE):
        return SchemaShape.ARRAY_OF_OBJECTS
    return SchemaShape.UNTYPED_ARRAY


def has_ambiguous_nested_objects(schema: SchemaNode, *, depth: int = 0) -> bool:
    """Return whether any property below ``schema`` is an ambiguous object."""
    if depth > _MAX_NESTING_DEPTH or schema.recursive:
        return False
    for property_schema in schema.properties.values():
        if is_ambiguous_object(property_schema):
            return True
        if has_ambiguous_nested_objects(property_schema, depth=depth + 1):
            return True
    if schema.items is not None:
        if is_ambiguous_object(schema.items):
            return True
        if has_ambiguous_nested_objects(schema.items, depth=depth + 1):
            return True
    if schema.additional is not None:
        return has_ambiguous_nested_objects(schema.additional, depth=depth + 1)
    return False
