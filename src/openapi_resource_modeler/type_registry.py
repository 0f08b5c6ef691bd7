"""First-writer-wins registry of generated composite types."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from typing import Optional

from .model_types import Field, TypeNode, TypeSection

logger = logging.getLogger(__name__)


class TypeRegistry:
    """Named composite types generated during one run."""

    def __init__(self) -> None:
        self._nodes: dict[str, TypeNode] = {}

    def register(self, name: str, fields: Iterable[Field], section: TypeSection) -> TypeNode:
        """Register ``name`` unless it exists; always return the stored node."""
        existing = self._nodes.get(name)
        if existing is not None:
            logger.debug("Type %s already registered; keeping the first definition", name)
            return existing
        node = TypeNode(name=name, fields=tuple(fields), section=section)
        self._nodes[name] = node
        return node

    def get(self, name: str) -> Optional[TypeNode]:
        return self._nodes.get(name)

    def nodes(self) -> tuple[TypeNode, ...]:
        """Return registered types sorted by name."""
        return tuple(self._nodes[name] for name in sorted(self._nodes))

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name in self._nodes

    def __iter__(self) -> Iterator[TypeNode]:
        return iter(self.nodes())

    def __len__(self) -> int:
        return len(self._nodes)
