"""Substitute shared component types for direct component references."""

from __future__ import annotations

import logging
from typing import Optional

from .model_types import AliasDecision
from .provider import SchemaProvider, SchemaResolutionError
from .schema_nodes import SchemaNode
from .shapes import SchemaShape, classify_shape

logger = logging.getLogger(__name__)

COMPONENT_REFERENCE_PREFIX = "#/components/schemas/"


class AliasOptimizer:
    """Decide when a model or field should alias a reusable component.

    Only reference identity counts: a schema aliases a component when it was
    written as a bare ``$ref`` to it, never because it looks the same.
    """

    def __init__(self, provider: SchemaProvider) -> None:
        self._provider = provider
        self._aliasable: dict[str, bool] = {}

    def decide(self, target: str, schema: SchemaNode) -> Optional[AliasDecision]:
        """Return an alias decision for ``schema`` or its array items, if one applies.

        Args:
            target (str): Model or field name the decision is made for.
            schema (SchemaNode): Resolved schema, possibly an array.

        Returns:
            Optional[AliasDecision]: The decision, or ``None`` to generate fields.
        """
        candidate = schema.items if schema.is_array and schema.items is not None else schema
        component = candidate.ref
        if component is None or not self.is_aliasable(component):
            return None
        logger.debug("Aliasing %s to component %s", target, component)
        return AliasDecision(
            target=target,
            component=component,
            reference=f"{COMPONENT_REFERENCE_PREFIX}{component}",
        )

    def is_aliasable(self, component: str) -> bool:
        """Return whether ``component`` resolves to a well-formed object schema."""
        cached = self._aliasable.get(component)
        if cached is not None:
            return cached
        try:
            resolved = self._provider.resolve_component(component)
        except SchemaResolutionError as exc:
            logger.debug("Component %s cannot be aliased: %s", component, exc)
            verdict = False
        else:
            verdict = classify_shape(resolved) is SchemaShape.OBJECT
        self._aliasable[component] = verdict
        return verdict
