"""
Declared node value types.

These are the inputs builders consume. They hold no generated values;
generated identifiers live on handles as ``Ref`` tokens.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from .intents import Ref

# =============================================================================
# Enums
# =============================================================================


class Direction(StrEnum):
    INGRESS = "ingress"
    EGRESS = "egress"


class Protocol(StrEnum):
    TCP = "tcp"
    UDP = "udp"
    ALL = "-1"


class SubnetTier(StrEnum):
    PUBLIC = "public"
    PRIVATE = "private"


class ListenerProtocol(StrEnum):
    HTTP = "HTTP"
    HTTPS = "HTTPS"


class ValidationMethod(StrEnum):
    DNS = "DNS"
    EMAIL = "EMAIL"


class CertificateState(StrEnum):
    PENDING = "Pending"
    VALIDATED = "Validated"
    FAILED = "Failed"


class DatabaseEngine(StrEnum):
    """Managed relational engines."""

    MYSQL = "mysql"
    MARIADB = "mariadb"
    POSTGRES = "postgres"

    @property
    def default_port(self) -> int:
        return 5432 if self == DatabaseEngine.POSTGRES else 3306


# =============================================================================
# Network
# =============================================================================


@dataclass(frozen=True)
class Subnet:
    """One subnet of the fabric, pinned to a zone."""

    logical_id: str
    cidr: str
    zone: str
    tier: SubnetTier

    @property
    def ref(self) -> Ref:
        return Ref(self.logical_id)


# =============================================================================
# Trust Boundaries
# =============================================================================


@dataclass(frozen=True)
class AnyIPv4:
    """Open peer range."""

    cidr: str = "0.0.0.0/0"


@dataclass(frozen=True)
class BoundaryPeer:
    """Peer that is another named trust boundary."""

    boundary_id: str


Peer = AnyIPv4 | BoundaryPeer


@dataclass(frozen=True)
class RuleDecl:
    """A single traffic rule of a trust boundary."""

    direction: Direction
    protocol: Protocol
    port: int | None
    peer: Peer
    description: str = ""


@dataclass(frozen=True)
class TrustBoundaryDecl:
    """Named traffic filter declaration."""

    id: str
    description: str
    rules: tuple[RuleDecl, ...] = ()
    allow_all_outbound: bool = True

    @property
    def peer_ids(self) -> list[str]:
        """Ids of the boundaries this one trusts."""
        return [r.peer.boundary_id for r in self.rules if isinstance(r.peer, BoundaryPeer)]


def ingress(port: int, peer: Peer, description: str = "", protocol: Protocol = Protocol.TCP) -> RuleDecl:
    """Shorthand for an ingress rule."""
    return RuleDecl(Direction.INGRESS, protocol, port, peer, description)


# =============================================================================
# Edge
# =============================================================================


@dataclass(frozen=True)
class Redirect:
    protocol: ListenerProtocol = ListenerProtocol.HTTPS
    port: int = 443
    permanent: bool = True

    def to_action(self) -> dict:
        return {
            "Type": "redirect",
            "RedirectConfig": {
                "Protocol": self.protocol.value,
                "Port": str(self.port),
                "StatusCode": "HTTP_301" if self.permanent else "HTTP_302",
            },
        }


@dataclass(frozen=True)
class FixedResponse:
    status_code: int = 200
    body: str = "OK"
    content_type: str = "text/plain"

    def to_action(self) -> dict:
        return {
            "Type": "fixed-response",
            "FixedResponseConfig": {
                "StatusCode": str(self.status_code),
                "ContentType": self.content_type,
                "MessageBody": self.body,
            },
        }


@dataclass(frozen=True)
class Forward:
    """Forward to a target group; None means the edge tier's registration target."""

    target: Ref | None = None

    def to_action(self) -> dict:
        if self.target is None:
            raise ValueError("Forward target is not resolved")
        return {"Type": "forward", "TargetGroupArn": self.target}


ListenerAction = Redirect | FixedResponse | Forward


@dataclass(frozen=True)
class ListenerDecl:
    port: int
    protocol: ListenerProtocol
    action: ListenerAction


@dataclass(frozen=True)
class HealthCheck:
    """Target health policy; deregistration is done by the provisioning engine."""

    path: str = "/"
    interval_seconds: int = 30
    healthy_threshold: int = 5
    unhealthy_threshold: int = 2
    timeout_seconds: int = 5
    matcher: str = "200"


# =============================================================================
# Compute
# =============================================================================


@dataclass(frozen=True)
class ScalingBounds:
    min: int
    max: int
    desired: int | None = None


@dataclass(frozen=True)
class InstanceIdentity:
    """Role assumed by compute instances."""

    name: str
    service_principal: str = "ec2.amazonaws.com"
    managed_policies: tuple[str, ...] = ("AmazonSSMManagedInstanceCore",)

    @property
    def managed_policy_arns(self) -> list[str]:
        return [f"arn:aws:iam::aws:policy/{p}" for p in self.managed_policies]


# =============================================================================
# Credentials
# =============================================================================


@dataclass(frozen=True)
class GeneratedFieldSpec:
    """Which field the provider generates and its character constraints."""

    key: str = "password"
    length: int = 32
    exclude_punctuation: bool = True
    exclude_characters: str = ""
    exclude_uppercase: bool = False
    exclude_lowercase: bool = False
    exclude_numbers: bool = False
    include_space: bool = False


__all__ = [
    "Direction",
    "Protocol",
    "SubnetTier",
    "ListenerProtocol",
    "ValidationMethod",
    "CertificateState",
    "DatabaseEngine",
    "Subnet",
    "AnyIPv4",
    "BoundaryPeer",
    "Peer",
    "RuleDecl",
    "TrustBoundaryDecl",
    "ingress",
    "Redirect",
    "FixedResponse",
    "Forward",
    "ListenerAction",
    "ListenerDecl",
    "HealthCheck",
    "ScalingBounds",
    "InstanceIdentity",
    "GeneratedFieldSpec",
]
