"""Resolved schema nodes handed out by schema providers."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Optional

PRIMITIVE_TYPES: frozenset[str] = frozenset({"string", "integer", "number", "boolean"})


@dataclass(frozen=True)
class SchemaNode:
    """One resolved schema.

    ``ref`` holds the component name when the node was written as a bare
    ``$ref`` to a named component. Structurally identical inline schemas
    never carry it. ``recursive`` marks a back-reference that was not
    expanded again.
    """

    type: Optional[str] = None
    properties: Mapping[str, SchemaNode] = field(default_factory=dict)
    required: tuple[str, ...] = ()
    items: Optional[SchemaNode] = None
    additional: Optional[SchemaNode] = None
    ref: Optional[str] = None
    recursive: bool = False
    description: Optional[str] = None
    format: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        """Whether the node declares nothing that could be typed."""
        return (
            self.type is None
            and not self.properties
            and self.items is None
            and self.additional is None
            and not self.recursive
        )

    @property
    def is_primitive(self) -> bool:
        return self.type in PRIMITIVE_TYPES

    @property
    def is_array(self) -> bool:
        return self.type == "array"
