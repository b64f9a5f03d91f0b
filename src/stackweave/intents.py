"""
Resource-intent records for the external provisioning engine.

The assembler never talks to a cloud API. It emits an ordered list of
``ResourceIntent`` records; generated identifiers (ARNs, DNS names, secret
ids) flow between records as ``Ref`` tokens that the engine resolves.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

# =============================================================================
# Reference Tokens
# =============================================================================


@dataclass(frozen=True)
class Ref:
    """
    Token standing for a generated attribute of another intent.

    ``Ref("Db")`` is the resource's primary identifier,
    ``Ref("Db", "Endpoint.Address")`` one of its attributes.
    """

    logical_id: str
    attribute: str | None = None

    def to_token(self) -> dict[str, Any]:
        """Render as a CloudFormation intrinsic."""
        if self.attribute is None:
            return {"Ref": self.logical_id}
        return {"Fn::GetAtt": [self.logical_id, self.attribute]}

    def sub_expr(self) -> str:
        """Render as a ``Fn::Sub`` placeholder."""
        if self.attribute is None:
            return f"${{{self.logical_id}}}"
        return f"${{{self.logical_id}.{self.attribute}}}"

    def __str__(self) -> str:
        return self.sub_expr()


@dataclass(frozen=True)
class Join:
    """Concatenation of literal strings and refs."""

    parts: tuple[str | Ref, ...]

    def to_token(self) -> dict[str, Any]:
        return {"Fn::Join": ["", [render_value(p) for p in self.parts]]}

    def refs(self) -> Iterator[Ref]:
        for part in self.parts:
            if isinstance(part, Ref):
                yield part


@dataclass(frozen=True)
class Sub:
    """A template string whose ``${...}`` placeholders are refs."""

    template: str
    refs: tuple[Ref, ...] = ()

    def to_token(self) -> dict[str, Any]:
        return {"Fn::Sub": self.template}


def secret_field_reference(secret: Ref, key: str) -> Join:
    """
    Dynamic reference to one JSON field of a secret.

    The provisioning engine resolves this at deploy time, so the literal value
    never appears in the plan.
    """
    return Join(
        (
            "{{resolve:secretsmanager:",
            secret,
            f":SecretString:{key}::}}}}",
        )
    )


def render_value(value: Any) -> Any:
    """Recursively render refs and joins inside a property value."""
    if isinstance(value, Ref | Join | Sub):
        return value.to_token()
    if isinstance(value, dict):
        return {k: render_value(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [render_value(v) for v in value]
    return value


def collect_refs(value: Any) -> set[str]:
    """Collect the logical ids referenced anywhere inside a value."""
    found: set[str] = set()
    if isinstance(value, Ref):
        found.add(value.logical_id)
    elif isinstance(value, Join):
        found.update(r.logical_id for r in value.refs())
    elif isinstance(value, Sub):
        found.update(r.logical_id for r in value.refs)
    elif isinstance(value, dict):
        for v in value.values():
            found |= collect_refs(v)
    elif isinstance(value, list | tuple):
        for v in value:
            found |= collect_refs(v)
    return found


# =============================================================================
# Intent Records
# =============================================================================


@dataclass(frozen=True)
class ResourceIntent:
    """One desired resource: type, attributes and what it depends on."""

    logical_id: str
    type: str
    properties: dict[str, Any] = field(default_factory=dict)
    depends_on: tuple[str, ...] = ()
    node_id: str = ""

    def ref(self, attribute: str | None = None) -> Ref:
        """Token for this intent's identifier or one of its attributes."""
        return Ref(self.logical_id, attribute)

    @property
    def dependencies(self) -> set[str]:
        """Explicit plus implicit (ref-derived) dependencies."""
        return set(self.depends_on) | collect_refs(self.properties)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data: dict[str, Any] = {
            "logical_id": self.logical_id,
            "type": self.type,
            "node": self.node_id,
            "properties": render_value(self.properties),
        }
        if self.depends_on:
            data["depends_on"] = list(self.depends_on)
        return data


@dataclass
class SynthesisPlan:
    """Ordered intent list produced by one successful synthesis pass."""

    name: str
    intents: list[ResourceIntent] = field(default_factory=list)
    exports: dict[str, Ref] = field(default_factory=dict)
    environment: dict[str, str | None] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.intents)

    def __iter__(self) -> Iterator[ResourceIntent]:
        return iter(self.intents)

    def by_type(self, resource_type: str) -> list[ResourceIntent]:
        """All intents of one resource type, in emission order."""
        return [i for i in self.intents if i.type == resource_type]

    def resource_count(self, resource_type: str) -> int:
        return len(self.by_type(resource_type))

    def get(self, logical_id: str) -> ResourceIntent:
        for intent in self.intents:
            if intent.logical_id == logical_id:
                return intent
        raise KeyError(logical_id)

    def index_of(self, logical_id: str) -> int:
        """Position of an intent in emission order."""
        for index, intent in enumerate(self.intents):
            if intent.logical_id == logical_id:
                return index
        raise KeyError(logical_id)

    def summary(self) -> dict[str, int]:
        """Count of intents per resource type."""
        counts: dict[str, int] = {}
        for intent in self.intents:
            counts[intent.type] = counts.get(intent.type, 0) + 1
        return counts

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "environment": self.environment,
            "intents": [i.to_dict() for i in self.intents],
            "exports": {k: v.to_token() for k, v in self.exports.items()},
        }

    def to_template(self) -> dict[str, Any]:
        """Render as a CloudFormation template body."""
        resources: dict[str, Any] = {}
        for intent in self.intents:
            resource: dict[str, Any] = {
                "Type": intent.type,
                "Properties": render_value(intent.properties),
                "Metadata": {"stackweave:node": intent.node_id},
            }
            if intent.depends_on:
                resource["DependsOn"] = list(intent.depends_on)
            resources[intent.logical_id] = resource
        return {
            "Description": f"{self.name} (generated by stackweave)",
            "Resources": resources,
            "Outputs": {
                key: {"Value": ref.to_token(), "Export": {"Name": f"{self.name}-{key}"}}
                for key, ref in self.exports.items()
            },
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


__all__ = [
    "Ref",
    "Join",
    "Sub",
    "secret_field_reference",
    "render_value",
    "collect_refs",
    "ResourceIntent",
    "SynthesisPlan",
]
