"""
Base class for topology node builders.

Each builder turns declared values into resource intents for one kind of
node and commits them to the build context it was constructed with.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Any

from ..context import BuildContext, Handle, NodeKind
from ..intents import ResourceIntent


class NodeBuilder(ABC):
    """
    Base class for node builders.

    Builders are constructed with the build context of the current pass;
    there is no ambient registry.
    """

    def __init__(self, context: BuildContext):
        self.context = context

    @property
    @abstractmethod
    def kind(self) -> NodeKind:
        """The kind of node this builder materializes."""
        pass

    def _reserve(self, node_id: str) -> Handle:
        return self.context.reserve(self.kind, node_id)

    def _intent(
        self,
        logical_id: str,
        resource_type: str,
        properties: dict[str, Any],
        node_id: str,
        depends_on: tuple[str, ...] = (),
    ) -> ResourceIntent:
        """Create an intent tagged with its owning node."""
        return ResourceIntent(
            logical_id=logical_id,
            type=resource_type,
            properties=properties,
            depends_on=depends_on,
            node_id=node_id,
        )

    def _tags(self, name: str) -> list[dict[str, str]]:
        return [
            {"Key": "Name", "Value": f"{self.context.name}/{name}"},
            {"Key": "stackweave:stack", "Value": self.context.name},
        ]


def logical_id(*parts: str) -> str:
    """
    Build a CamelCase logical id from name parts.

    logical_id("edge", "https-listener") -> "EdgeHttpsListener"
    """
    words: list[str] = []
    for part in parts:
        words.extend(w for w in re.split(r"[^A-Za-z0-9]+", part) if w)
    return "".join(w[0].upper() + w[1:] for w in words)


__all__ = ["NodeBuilder", "logical_id"]
