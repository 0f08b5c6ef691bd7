"""Build ordered field models and nested types from resolved schemas."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Optional

from .aliasing import AliasOptimizer
from .model_types import AliasDecision, Field, TypeRef, TypeSection
from .naming import camel_case, normalize_required_name, sanitize_identifier
from .provider import EmptySchemaError, QueryParameter
from .schema_nodes import SchemaNode
from .shapes import SchemaShape, classify_shape
from .type_registry import TypeRegistry

logger = logging.getLogger(__name__)

PRIMITIVE_ANNOTATIONS: dict[str, str] = {
    "string": "str",
    "integer": "int",
    "number": "float",
    "boolean": "bool",
}
ANY = TypeRef.primitive("Any")
_SKIPPED_PROPERTY_SHAPES = frozenset(
    {SchemaShape.AMBIGUOUS_OBJECT, SchemaShape.ARRAY_OF_AMBIGUOUS_OBJECTS}
)


@dataclass
class BuildContext:
    """Per-model state shared by one recursive build."""

    registry: TypeRegistry
    section: TypeSection
    notes: list[str] = field(default_factory=list)
    aliases: list[AliasDecision] = field(default_factory=list)

    def note(self, message: str) -> None:
        logger.info(message)
        self.notes.append(message)


def order_fields(fields: Iterable[Field]) -> tuple[Field, ...]:
    """Return fields required-first, then alphabetically by name."""
    return tuple(sorted(fields, key=lambda item: (not item.required, item.name)))


def field_name(source_key: str) -> str:
    """Return the CamelCase field name for a schema property or parameter name."""
    return camel_case(sanitize_identifier(source_key, lowercase=False))


def primitive_type(schema: SchemaNode) -> TypeRef:
    """Map a primitive (or untyped) schema to its scalar type reference."""
    return TypeRef.primitive(PRIMITIVE_ANNOTATIONS.get(schema.type or "string", "str"))


class FieldModelBuilder:
    """Turn object schemas into ordered fields plus registered nested types.

    Args:
        aliases (Optional[AliasOptimizer]): Used for direct component references
            in properties when ``alias_nested_references`` is set.
        alias_nested_references (bool): Alias properties that reference a component.
    """

    def __init__(
        self,
        *,
        aliases: Optional[AliasOptimizer] = None,
        alias_nested_references: bool = False,
    ) -> None:
        self._aliases = aliases
        self._alias_nested = alias_nested_references and aliases is not None

    def build_fields(
        self,
        schema: SchemaNode,
        *,
        type_name: str,
        context: BuildContext,
    ) -> tuple[Field, ...]:
        """Build the fields of an object schema.

        Properties that are ambiguous objects, or arrays of them, are dropped
        with a note; the rest of the model is still built.

        Args:
            schema (SchemaNode): Resolved object schema.
            type_name (str): Name of the type being built; prefixes nested type names.
            context (BuildContext): Registry, section and note sink.

        Returns:
            tuple[Field, ...]: Fields ordered required-first, then by name.
        """
        if schema.is_empty:
            raise EmptySchemaError(f"{type_name}: schema declares nothing that can be typed")
        shape = classify_shape(schema)
        if shape is not SchemaShape.OBJECT:
            raise EmptySchemaError(f"{type_name}: expected an object schema, got {shape.value}")
        return self._object_fields(schema, type_name, context)

    def build_parameter_fields(
        self,
        parameters: Iterable[QueryParameter],
        *,
        excluded: Iterable[str] = (),
    ) -> tuple[Field, ...]:
        """Build fields for primitive query parameters.

        Parameters in ``excluded`` and names containing ``__`` are skipped.
        """
        excluded_names = set(excluded)
        fields: list[Field] = []
        for parameter in sorted(parameters, key=lambda item: item.name):
            if parameter.name in excluded_names or "__" in parameter.name:
                continue
            if not parameter.schema.is_primitive:
                logger.debug("Skipping non-primitive query parameter %s", parameter.name)
                continue
            fields.append(
                Field(
                    name=field_name(parameter.name),
                    type_ref=primitive_type(parameter.schema),
                    source_key=parameter.name,
                    required=parameter.required,
                    description=parameter.description or parameter.schema.description,
                )
            )
        return order_fields(fields)

    def _object_fields(
        self,
        schema: SchemaNode,
        parent: str,
        context: BuildContext,
    ) -> tuple[Field, ...]:
        required = {normalize_required_name(name) for name in schema.required}
        fields: list[Field] = []
        seen: set[str] = set()
        for source_key in sorted(schema.properties):
            property_schema = schema.properties[source_key]
            shape = classify_shape(property_schema)
            if shape in _SKIPPED_PROPERTY_SHAPES:
                context.note(f"{parent}.{source_key}: skipped {shape.value.replace('_', ' ')}")
                continue
            name = field_name(source_key)
            if name in seen:
                context.note(f"{parent}.{source_key}: duplicate field name {name} skipped")
                continue
            seen.add(name)
            type_ref = self._type_ref(
                property_schema,
                shape,
                nested_name=f"{parent}_{name}",
                context=context,
                in_array=False,
            )
            fields.append(
                Field(
                    name=name,
                    type_ref=type_ref,
                    source_key=source_key,
                    required=normalize_required_name(source_key) in required,
                    description=property_schema.description,
                )
            )
        return order_fields(fields)

    def _type_ref(
        self,
        schema: SchemaNode,
        shape: SchemaShape,
        *,
        nested_name: str,
        context: BuildContext,
        in_array: bool,
    ) -> TypeRef:
        type_ref = self._unwrapped_type_ref(
            schema,
            shape,
            nested_name=nested_name,
            context=context,
            in_array=in_array,
        )
        wraps = shape.is_array or shape in (SchemaShape.OBJECT, SchemaShape.REFERENCE)
        if wraps and not in_array:
            return type_ref.wrapped()
        return type_ref

    def _unwrapped_type_ref(
        self,
        schema: SchemaNode,
        shape: SchemaShape,
        *,
        nested_name: str,
        context: BuildContext,
        in_array: bool,
    ) -> TypeRef:
        if shape is SchemaShape.PRIMITIVE:
            return primitive_type(schema)
        if shape is SchemaShape.REFERENCE:
            return TypeRef.component(schema.ref) if schema.ref else ANY
        if shape is SchemaShape.MAP:
            return TypeRef.map_of(self._map_value(schema, nested_name, context, in_array))
        if shape.is_array:
            return TypeRef.array(self._array_item(schema, shape, nested_name, context))
        if shape is SchemaShape.AMBIGUOUS_OBJECT:
            return TypeRef.map_of(ANY)
        if shape is SchemaShape.OBJECT:
            return self._nested_object(schema, nested_name, context)
        return primitive_type(schema)

    def _map_value(
        self,
        schema: SchemaNode,
        nested_name: str,
        context: BuildContext,
        in_array: bool,
    ) -> TypeRef:
        value = schema.additional
        if value is None or value.is_empty:
            return ANY
        value_shape = classify_shape(value)
        if value_shape is SchemaShape.ARRAY_OF_AMBIGUOUS_OBJECTS:
            return TypeRef.array(TypeRef.map_of(ANY))
        type_ref = self._unwrapped_type_ref(
            value,
            value_shape,
            nested_name=f"{nested_name}Value",
            context=context,
            in_array=in_array,
        )
        return type_ref

    def _array_item(
        self,
        schema: SchemaNode,
        shape: SchemaShape,
        nested_name: str,
        context: BuildContext,
    ) -> TypeRef:
        items = schema.items
        if items is None or shape is SchemaShape.UNTYPED_ARRAY:
            return ANY
        if shape is SchemaShape.ARRAY_OF_AMBIGUOUS_OBJECTS:
            return TypeRef.map_of(ANY)
        return self._type_ref(
            items,
            classify_shape(items),
            nested_name=f"{nested_name}Item",
            context=context,
            in_array=True,
        )

    def _nested_object(self, schema: SchemaNode, name: str, context: BuildContext) -> TypeRef:
        if self._alias_nested and self._aliases is not None and schema.ref is not None:
            decision = self._aliases.decide(name, schema)
            if decision is not None:
                context.aliases.append(decision)
                return TypeRef.component(decision.component)
        if name not in context.registry:
            fields = self._object_fields(schema, name, context)
            context.registry.register(name, fields, context.section)
        return TypeRef.named(name)
