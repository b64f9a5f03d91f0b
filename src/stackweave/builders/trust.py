"""
Trust boundary resolver.

Resolves an ordered list of boundary declarations into security groups.
A rule may only trust a boundary declared earlier in the list, so the
reference graph is acyclic and every peer is materialized first.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..context import Handle, NodeKind
from ..errors import CycleError, UnresolvedReferenceError
from ..intents import Ref, ResourceIntent
from ..models import (
    AnyIPv4,
    BoundaryPeer,
    Direction,
    Protocol,
    RuleDecl,
    TrustBoundaryDecl,
    ingress,
)
from .base import NodeBuilder, logical_id
from .network import NetworkFabric


@dataclass(frozen=True)
class TrustBoundary:
    """Handle to a materialized trust boundary."""

    handle: Handle
    id: str
    group: Ref
    rules: tuple[RuleDecl, ...]

    @property
    def group_id(self) -> Ref:
        return Ref(self.group.logical_id, "GroupId")


@dataclass
class TrustBoundarySet:
    """Resolved boundaries keyed by id, in declaration order."""

    boundaries: dict[str, TrustBoundary] = field(default_factory=dict)

    def __getitem__(self, boundary_id: str) -> TrustBoundary:
        return self.boundaries[boundary_id]

    def __contains__(self, boundary_id: str) -> bool:
        return boundary_id in self.boundaries

    def __len__(self) -> int:
        return len(self.boundaries)

    @property
    def ids(self) -> list[str]:
        return list(self.boundaries)


def detect_cycles(declarations: list[TrustBoundaryDecl]) -> list[str] | None:
    """
    Find a cycle in the boundary reference graph.

    Returns:
        The cycle path (first node repeated at the end), or None
    """
    graph = {d.id: d.peer_ids for d in declarations}

    def dfs(node: str, path: list[str], visiting: set[str]) -> list[str] | None:
        if node in visiting:
            return path[path.index(node) :] + [node]
        if node not in graph:
            return None
        visiting.add(node)
        path.append(node)
        for peer in graph[node]:
            cycle = dfs(peer, path, visiting)
            if cycle:
                return cycle
        path.pop()
        visiting.discard(node)
        return None

    for decl in declarations:
        cycle = dfs(decl.id, [], set())
        if cycle:
            return cycle
    return None


class TrustBoundaryResolver(NodeBuilder):
    """Resolve trust boundary declarations into security groups."""

    @property
    def kind(self) -> NodeKind:
        return NodeKind.TRUST_BOUNDARY

    def resolve(
        self, fabric: NetworkFabric, declarations: list[TrustBoundaryDecl]
    ) -> TrustBoundarySet:
        """
        Check references, then materialize boundaries in declaration order.

        Raises:
            CycleError: If boundaries reference each other in a cycle
            UnresolvedReferenceError: If a rule trusts a boundary that is not
                declared earlier in the list
        """
        cycle = detect_cycles(declarations)
        if cycle:
            raise CycleError(cycle)

        declared: set[str] = set()
        for decl in declarations:
            for peer_id in decl.peer_ids:
                if peer_id not in declared:
                    raise UnresolvedReferenceError(
                        f"Boundary '{decl.id}' trusts '{peer_id}', which is not declared before it",
                        node_id=decl.id,
                    )
            declared.add(decl.id)

        self.context.require(fabric.handle, by=declarations[0].id if declarations else "trust")

        resolved = TrustBoundarySet()
        for decl in declarations:
            resolved.boundaries[decl.id] = self._materialize(fabric, decl, resolved)
        return resolved

    def _materialize(
        self, fabric: NetworkFabric, decl: TrustBoundaryDecl, resolved: TrustBoundarySet
    ) -> TrustBoundary:
        handle = self._reserve(decl.id)
        group_id = logical_id(decl.id, "security", "group")

        inline_ingress = [
            self._cidr_rule(rule, rule.peer)
            for rule in decl.rules
            if rule.direction == Direction.INGRESS and isinstance(rule.peer, AnyIPv4)
        ]
        egress = [
            self._cidr_rule(rule, rule.peer)
            for rule in decl.rules
            if rule.direction == Direction.EGRESS and isinstance(rule.peer, AnyIPv4)
        ]
        if decl.allow_all_outbound:
            egress.insert(0, {"IpProtocol": "-1", "CidrIp": "0.0.0.0/0"})
        else:
            # a group with no egress entries gets allow-all from the provider
            egress.insert(
                0,
                {
                    "IpProtocol": "icmp",
                    "CidrIp": "255.255.255.255/32",
                    "FromPort": 252,
                    "ToPort": 86,
                    "Description": "Disallow all traffic",
                },
            )

        intents: list[ResourceIntent] = [
            self._intent(
                group_id,
                "AWS::EC2::SecurityGroup",
                {
                    "GroupDescription": decl.description,
                    "VpcId": fabric.vpc,
                    "SecurityGroupIngress": inline_ingress,
                    "SecurityGroupEgress": egress,
                    "Tags": self._tags(decl.id),
                },
                decl.id,
            )
        ]

        for index, rule in enumerate(decl.rules):
            if not isinstance(rule.peer, BoundaryPeer):
                continue
            peer = resolved[rule.peer.boundary_id]
            resource_type, own_key, peer_key = (
                ("AWS::EC2::SecurityGroupIngress", "GroupId", "SourceSecurityGroupId")
                if rule.direction == Direction.INGRESS
                else ("AWS::EC2::SecurityGroupEgress", "GroupId", "DestinationSecurityGroupId")
            )
            properties = {
                own_key: Ref(group_id, "GroupId"),
                peer_key: peer.group_id,
                "IpProtocol": rule.protocol.value,
                "Description": rule.description or f"from {peer.id}",
            }
            properties.update(self._port_range(rule))
            intents.append(
                self._intent(
                    logical_id(decl.id, "from", peer.id, str(index + 1)),
                    resource_type,
                    properties,
                    decl.id,
                )
            )

        self.context.commit(
            handle,
            intents,
            exports={f"{logical_id(decl.id)}GroupId": Ref(group_id, "GroupId")},
        )
        return TrustBoundary(handle=handle, id=decl.id, group=Ref(group_id), rules=decl.rules)

    def _cidr_rule(self, rule: RuleDecl, peer: AnyIPv4) -> dict:
        properties = {
            "IpProtocol": rule.protocol.value,
            "CidrIp": peer.cidr,
            "Description": rule.description,
        }
        properties.update(self._port_range(rule))
        return properties

    @staticmethod
    def _port_range(rule: RuleDecl) -> dict[str, int]:
        if rule.protocol == Protocol.ALL or rule.port is None:
            return {}
        return {"FromPort": rule.port, "ToPort": rule.port}


def default_trust_chain(app_port: int = 80, database_port: int = 3306) -> list[TrustBoundaryDecl]:
    """
    The edge -> compute -> database chain.

    The load balancer accepts HTTP and HTTPS from anywhere, instances accept
    application traffic only from the load balancer, and the database accepts
    its engine port only from instances.
    """
    return [
        TrustBoundaryDecl(
            id="edge",
            description="Load balancer",
            rules=(
                ingress(80, AnyIPv4(), "Allow HTTP"),
                ingress(443, AnyIPv4(), "Allow HTTPS"),
            ),
        ),
        TrustBoundaryDecl(
            id="compute",
            description="Application instances",
            rules=(ingress(app_port, BoundaryPeer("edge"), "Allow load balancer to reach instances"),),
        ),
        TrustBoundaryDecl(
            id="database",
            description="Database",
            rules=(
                ingress(database_port, BoundaryPeer("compute"), "Allow instances to reach database"),
            ),
            allow_all_outbound=False,
        ),
    ]


__all__ = [
    "TrustBoundary",
    "TrustBoundarySet",
    "TrustBoundaryResolver",
    "detect_cycles",
    "default_trust_chain",
]
