"""
DNS binder.

Aliases a public name to the edge tier's stable identity in an existing
hosted zone. Binding is idempotent per name; rebinding a name to another
identity is a conflict the caller must resolve.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from ..context import BuildContext, NodeKind, NodeState
from ..errors import DNSConflictError, ZoneLookupError
from .base import NodeBuilder, logical_id
from .edge import PublicIdentity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HostedZone:
    zone_id: str
    name: str


class ZoneResolver(Protocol):
    """External lookup of an existing hosted zone by domain name."""

    def lookup(self, domain_name: str) -> HostedZone | None: ...


class StaticZoneResolver:
    """
    Resolve zones from a fixed name -> id mapping.

    Equivalent to cached context lookups: the most specific zone whose name
    is a suffix of the queried domain wins.
    """

    def __init__(self, zones: dict[str, str]):
        self._zones = {normalize_name(name): zone_id for name, zone_id in zones.items()}

    def lookup(self, domain_name: str) -> HostedZone | None:
        domain = normalize_name(domain_name)
        candidates = [
            name for name in self._zones if domain == name or domain.endswith(f".{name}")
        ]
        if not candidates:
            return None
        best = max(candidates, key=len)
        return HostedZone(zone_id=self._zones[best], name=best)


def normalize_name(name: str) -> str:
    return name.strip().rstrip(".").lower()


class DNSBinder(NodeBuilder):
    """Generate alias records for the edge tier."""

    def __init__(self, context: BuildContext, resolver: ZoneResolver):
        super().__init__(context)
        self.resolver = resolver

    @property
    def kind(self) -> NodeKind:
        return NodeKind.DNS_RECORD

    def bind(self, zone: str, name: str, public_identity: PublicIdentity) -> None:
        """
        Alias ``name`` in ``zone`` to a public identity.

        Raises:
            ZoneLookupError: If the zone cannot be resolved
            DNSConflictError: If the name is already bound to another identity
        """
        fqdn = self._qualify(zone, name)
        node_id = f"dns:{fqdn}"

        hosted_zone = self.resolver.lookup(zone)
        if hosted_zone is None:
            raise ZoneLookupError(f"No hosted zone found for '{zone}'", node_id=node_id)

        existing = self.context.find(self.kind, node_id)
        if existing is not None and existing.state == NodeState.MATERIALIZED:
            if existing.attributes.get("identity") == public_identity:
                logger.debug(f"{fqdn} already aliased to the same identity")
                return
            raise DNSConflictError(
                f"'{fqdn}' is already bound to another identity; remove it explicitly first",
                node_id=node_id,
            )

        handle = self._reserve(node_id)
        record_id = logical_id("dns", fqdn, "alias")
        intent = self._intent(
            record_id,
            "AWS::Route53::RecordSet",
            {
                "HostedZoneId": hosted_zone.zone_id,
                "Name": f"{fqdn}.",
                "Type": "A",
                "AliasTarget": {
                    "DNSName": public_identity.dns_name,
                    "HostedZoneId": public_identity.hosted_zone_id,
                    "EvaluateTargetHealth": False,
                },
            },
            node_id,
        )
        self.context.commit(
            handle,
            [intent],
            attributes={"identity": public_identity, "zone_id": hosted_zone.zone_id},
        )

    @staticmethod
    def _qualify(zone: str, name: str) -> str:
        """Treat names outside the zone as labels relative to it."""
        zone_name = normalize_name(zone)
        record = normalize_name(name)
        if record == zone_name or record.endswith(f".{zone_name}"):
            return record
        return f"{record}.{zone_name}"


__all__ = [
    "HostedZone",
    "ZoneResolver",
    "StaticZoneResolver",
    "DNSBinder",
    "normalize_name",
]
