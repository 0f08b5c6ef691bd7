"""Group registered markers by the declaration they are attached to."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Optional

from .json_types import MarkerValue
from .markers import (
    MarkerDefinition,
    MarkerParseError,
    MarkerRegistry,
    MarkerTarget,
    split_marker_options,
    split_marker_text,
)
from .source_facts import AnnotationFact

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CollectedMarker:
    """A recognized marker with its decoded value."""

    name: str
    value: MarkerValue
    text: str
    location: str


@dataclass(frozen=True)
class DeclarationMarkers:
    """Recognized markers of one declaration, in source order."""

    declaration: str
    target: MarkerTarget
    markers: tuple[CollectedMarker, ...]


class MarkerCollector:
    """Filter annotation facts through a marker registry."""

    def __init__(self, registry: MarkerRegistry) -> None:
        self._registry = registry

    def collect(
        self,
        facts: Iterable[AnnotationFact],
        *,
        target: MarkerTarget = MarkerTarget.TYPE,
    ) -> list[DeclarationMarkers]:
        """Return registered markers grouped per declaration for ``target``.

        Declarations keep the order in which they were first seen. Unknown
        markers and markers whose value does not match the declared shape are
        logged and skipped.
        """
        grouped: dict[str, list[CollectedMarker]] = {}
        for fact in facts:
            if fact.target is not target:
                continue
            definition = self._registry.lookup(fact.text, target)
            name = definition.name if definition is not None else ""
            if definition is None:
                definition, name = self._lookup_with_options(fact.text, target)
            if definition is None:
                logger.debug("Ignoring unregistered marker %s at %s", fact.text, fact.location)
                continue
            try:
                value = definition.parse(fact.text)
            except MarkerParseError as exc:
                logger.warning("Skipping marker at %s: %s", fact.location, exc)
                continue
            grouped.setdefault(fact.declaration, []).append(
                CollectedMarker(
                    name=name,
                    value=value,
                    text=fact.text,
                    location=fact.location,
                )
            )
        return [
            DeclarationMarkers(declaration=declaration, target=target, markers=tuple(markers))
            for declaration, markers in grouped.items()
        ]

    def _lookup_with_options(
        self,
        marker_text: str,
        target: MarkerTarget,
    ) -> tuple[Optional[MarkerDefinition], str]:
        # Keep markers whose option value is unknown so assembly can report it.
        name, _ = split_marker_text(marker_text)
        clean_name, options = split_marker_options(name)
        if not options:
            return None, ""
        definition = self._registry.lookup(clean_name, target)
        return definition, name
