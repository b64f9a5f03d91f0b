"""
Edge tier builder.

Generates the internet-facing load balancer, its target group and
listeners. TLS terminates on 443; plaintext 80 only ever redirects.
The build blocks on the certificate gate before anything is emitted.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from ..context import Handle, NodeKind
from ..errors import ListenerPolicyError, TopologyConfigError
from ..intents import Ref, ResourceIntent
from ..models import (
    Forward,
    HealthCheck,
    ListenerDecl,
    ListenerProtocol,
    Redirect,
    SubnetTier,
)
from .base import NodeBuilder, logical_id
from .certificate import CertificateHandle
from .network import NetworkFabric
from .trust import TrustBoundary


@dataclass(frozen=True)
class PublicIdentity:
    """Stable public network identity an alias record can point at."""

    dns_name: Ref
    hosted_zone_id: Ref


@dataclass(frozen=True)
class EdgeHandle:
    """Handle to a materialized edge tier."""

    handle: Handle
    load_balancer: Ref
    registration_target: Ref
    listeners: tuple[ListenerDecl, ...]

    @property
    def public_identity(self) -> PublicIdentity:
        return PublicIdentity(
            dns_name=Ref(self.load_balancer.logical_id, "DNSName"),
            hosted_zone_id=Ref(self.load_balancer.logical_id, "CanonicalHostedZoneID"),
        )


def default_listeners() -> list[ListenerDecl]:
    """HTTPS forwarding to the registration target, HTTP redirecting to HTTPS."""
    return [
        ListenerDecl(80, ListenerProtocol.HTTP, Redirect(ListenerProtocol.HTTPS, 443, permanent=True)),
        ListenerDecl(443, ListenerProtocol.HTTPS, Forward()),
    ]


def check_listener_policy(listeners: list[ListenerDecl], node_id: str) -> None:
    """
    Enforce the plaintext-redirect policy over every declared listener.

    Port 80 and any HTTP listener may only redirect to an HTTPS listener on
    443 of the same tier.

    Raises:
        ListenerPolicyError: On the first violating listener
    """
    ports = [listener.port for listener in listeners]
    duplicates = sorted({p for p in ports if ports.count(p) > 1})
    if duplicates:
        raise ListenerPolicyError(f"Duplicate listener ports: {duplicates}", node_id=node_id)

    has_https_443 = any(
        listener.port == 443 and listener.protocol == ListenerProtocol.HTTPS
        for listener in listeners
    )

    for listener in listeners:
        plaintext = listener.port == 80 or listener.protocol == ListenerProtocol.HTTP
        if not plaintext:
            continue
        if listener.protocol == ListenerProtocol.HTTPS:
            raise ListenerPolicyError(
                "Port 80 must not terminate TLS; it may only redirect", node_id=node_id
            )
        action = listener.action
        if not isinstance(action, Redirect):
            kind = "forwards" if isinstance(action, Forward) else "answers"
            raise ListenerPolicyError(
                f"Plaintext listener on port {listener.port} {kind} traffic; "
                "it may only redirect to HTTPS 443",
                node_id=node_id,
            )
        if action.protocol != ListenerProtocol.HTTPS or action.port != 443:
            raise ListenerPolicyError(
                f"Plaintext listener on port {listener.port} redirects to "
                f"{action.protocol.value}:{action.port}, not HTTPS:443",
                node_id=node_id,
            )
        if not has_https_443:
            raise ListenerPolicyError(
                f"Plaintext listener on port {listener.port} redirects to HTTPS 443, "
                "but no HTTPS listener is declared on 443",
                node_id=node_id,
            )


def check_health_check(health_check: HealthCheck, node_id: str) -> None:
    if not health_check.path.startswith("/"):
        raise TopologyConfigError(
            f"Health check path must be absolute, got '{health_check.path}'", node_id=node_id
        )
    if not 5 <= health_check.interval_seconds <= 300:
        raise TopologyConfigError("Health check interval must be 5-300 seconds", node_id=node_id)
    if health_check.timeout_seconds >= health_check.interval_seconds:
        raise TopologyConfigError(
            "Health check timeout must be shorter than the interval", node_id=node_id
        )
    for name, value in (
        ("healthy", health_check.healthy_threshold),
        ("unhealthy", health_check.unhealthy_threshold),
    ):
        if not 2 <= value <= 10:
            raise TopologyConfigError(
                f"Health check {name} threshold must be 2-10, got {value}", node_id=node_id
            )


class EdgeTierBuilder(NodeBuilder):
    """Generate the load-balancing tier."""

    @property
    def kind(self) -> NodeKind:
        return NodeKind.EDGE

    def build(
        self,
        fabric: NetworkFabric,
        trust_boundary: TrustBoundary,
        certificate: CertificateHandle,
        health_check: HealthCheck,
        *,
        deadline: float,
        listeners: list[ListenerDecl] | None = None,
        target_port: int = 80,
        node_id: str = "edge",
    ) -> EdgeHandle:
        """
        Wait for the certificate, then materialize the edge tier.

        Raises:
            ValidationTimeout: If the certificate is not validated in time
            ValidationFailed: If certificate validation was rejected
            ListenerPolicyError: If a plaintext listener carries traffic
        """
        declared = list(listeners) if listeners is not None else default_listeners()
        check_listener_policy(declared, node_id)
        check_health_check(health_check, node_id)

        certificate.wait(deadline)
        self.context.require(certificate.handle, by=node_id)
        self.context.require(fabric.handle, by=node_id)
        self.context.require(trust_boundary.handle, by=node_id)

        handle = self._reserve(node_id)
        lb_id = logical_id(node_id, "load", "balancer")
        tg_id = logical_id(node_id, "targets")
        load_balancer = Ref(lb_id)
        target_group = Ref(tg_id)

        resolved = [
            replace(listener, action=Forward(target_group))
            if isinstance(listener.action, Forward) and listener.action.target is None
            else listener
            for listener in declared
        ]

        intents: list[ResourceIntent] = [
            self._intent(
                lb_id,
                "AWS::ElasticLoadBalancingV2::LoadBalancer",
                {
                    "Type": "application",
                    "Scheme": "internet-facing",
                    "Subnets": fabric.subnet_refs(SubnetTier.PUBLIC),
                    "SecurityGroups": [trust_boundary.group_id],
                    "Tags": self._tags(node_id),
                },
                node_id,
            ),
            self._intent(
                tg_id,
                "AWS::ElasticLoadBalancingV2::TargetGroup",
                {
                    "Port": target_port,
                    "Protocol": "HTTP",
                    "TargetType": "instance",
                    "VpcId": fabric.vpc,
                    "HealthCheckPath": health_check.path,
                    "HealthCheckIntervalSeconds": health_check.interval_seconds,
                    "HealthCheckTimeoutSeconds": health_check.timeout_seconds,
                    "HealthyThresholdCount": health_check.healthy_threshold,
                    "UnhealthyThresholdCount": health_check.unhealthy_threshold,
                    "Matcher": {"HttpCode": health_check.matcher},
                },
                node_id,
            ),
        ]

        for listener in resolved:
            properties: dict = {
                "LoadBalancerArn": load_balancer,
                "Port": listener.port,
                "Protocol": listener.protocol.value,
                "DefaultActions": [listener.action.to_action()],
            }
            if listener.protocol == ListenerProtocol.HTTPS:
                properties["Certificates"] = [{"CertificateArn": certificate.arn}]
                properties["SslPolicy"] = "ELBSecurityPolicy-TLS13-1-2-2021-06"
            intents.append(
                self._intent(
                    logical_id(node_id, listener.protocol.value.lower(), str(listener.port), "listener"),
                    "AWS::ElasticLoadBalancingV2::Listener",
                    properties,
                    node_id,
                )
            )

        self.context.commit(
            handle,
            intents,
            exports={"LoadBalancerDNS": Ref(lb_id, "DNSName")},
        )
        return EdgeHandle(
            handle=handle,
            load_balancer=load_balancer,
            registration_target=target_group,
            listeners=tuple(resolved),
        )


__all__ = [
    "PublicIdentity",
    "EdgeHandle",
    "EdgeTierBuilder",
    "default_listeners",
    "check_listener_policy",
    "check_health_check",
]
