"""
Topology node builders.

Each module materializes one kind of node into the build context:
- network: VPC, subnets, gateways
- trust: security groups and the rules between them
- certificate: TLS certificate gated on ownership validation
- credentials: database secret and read grants
- database: RDS subnet group and instance
- edge: load balancer, target group, listeners
- compute: instance identity, launch template, scaling group
- bootscript: first-boot script assembly
- dns: alias records
"""

from .base import NodeBuilder, logical_id
from .bootscript import BootPhase, BootScript, BootScriptAssembler, BootStep
from .certificate import (
    AutoApproveAuthority,
    CertificateGate,
    CertificateHandle,
    ManualValidationAuthority,
    ValidationAuthority,
)
from .compute import Blueprint, ComputeTierBuilder, ScalingGroupHandle, wordpress_boot_steps
from .credentials import AccessGrant, CredentialHandle, CredentialStoreBuilder
from .database import DatabaseHandle, DatabaseTierBuilder
from .dns import DNSBinder, HostedZone, StaticZoneResolver, ZoneResolver
from .edge import EdgeHandle, EdgeTierBuilder, PublicIdentity, default_listeners
from .network import NetworkFabric, NetworkFabricBuilder
from .trust import TrustBoundary, TrustBoundaryResolver, TrustBoundarySet, default_trust_chain

__all__ = [
    "NodeBuilder",
    "logical_id",
    # Network and trust
    "NetworkFabric",
    "NetworkFabricBuilder",
    "TrustBoundary",
    "TrustBoundarySet",
    "TrustBoundaryResolver",
    "default_trust_chain",
    # Certificates
    "CertificateHandle",
    "CertificateGate",
    "ValidationAuthority",
    "AutoApproveAuthority",
    "ManualValidationAuthority",
    # Data
    "CredentialHandle",
    "AccessGrant",
    "CredentialStoreBuilder",
    "DatabaseHandle",
    "DatabaseTierBuilder",
    # Edge and compute
    "PublicIdentity",
    "EdgeHandle",
    "EdgeTierBuilder",
    "default_listeners",
    "BootPhase",
    "BootStep",
    "BootScript",
    "BootScriptAssembler",
    "Blueprint",
    "ScalingGroupHandle",
    "ComputeTierBuilder",
    "wordpress_boot_steps",
    # DNS
    "HostedZone",
    "ZoneResolver",
    "StaticZoneResolver",
    "DNSBinder",
]
