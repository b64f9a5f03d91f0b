"""Shared pytest fixtures for stackweave tests."""

import pytest

from stackweave.builders import (
    CertificateGate,
    CertificateHandle,
    CredentialHandle,
    CredentialStoreBuilder,
    DatabaseHandle,
    DatabaseTierBuilder,
    EdgeHandle,
    EdgeTierBuilder,
    NetworkFabric,
    NetworkFabricBuilder,
    TrustBoundaryResolver,
    TrustBoundarySet,
    default_trust_chain,
)
from stackweave.config import TopologyConfig
from stackweave.context import BuildContext
from stackweave.models import DatabaseEngine, GeneratedFieldSpec, HealthCheck


@pytest.fixture
def context() -> BuildContext:
    """Return a fresh build context."""
    return BuildContext("test-stack", environment={"region": "us-west-2"})


@pytest.fixture
def fabric(context: BuildContext) -> NetworkFabric:
    """Return a two-zone fabric materialized in the context."""
    return NetworkFabricBuilder(context).build("10.0.0.0/16", ["us-west-2a", "us-west-2b"])


@pytest.fixture
def boundaries(context: BuildContext, fabric: NetworkFabric) -> TrustBoundarySet:
    """Return the default edge -> compute -> database chain."""
    return TrustBoundaryResolver(context).resolve(fabric, default_trust_chain())


@pytest.fixture
def credential(context: BuildContext) -> CredentialHandle:
    """Return the database credential store."""
    return CredentialStoreBuilder(context).create({"username": "admin"}, GeneratedFieldSpec())


@pytest.fixture
def certificate(context: BuildContext) -> CertificateHandle:
    """Return an auto-approved, materialized certificate."""
    cert = CertificateGate(context).bind("example.com")
    cert.wait(1.0)
    return cert


@pytest.fixture
def database(
    context: BuildContext,
    fabric: NetworkFabric,
    boundaries: TrustBoundarySet,
    credential: CredentialHandle,
) -> DatabaseHandle:
    """Return a multi-AZ MySQL database tier."""
    return DatabaseTierBuilder(context).create(
        DatabaseEngine.MYSQL, boundaries["database"], credential, True, 20, fabric=fabric
    )


@pytest.fixture
def edge(
    context: BuildContext,
    fabric: NetworkFabric,
    boundaries: TrustBoundarySet,
    certificate: CertificateHandle,
) -> EdgeHandle:
    """Return an edge tier with the default listeners."""
    return EdgeTierBuilder(context).build(
        fabric,
        boundaries["edge"],
        certificate,
        HealthCheck(path="/index.php"),
        deadline=1.0,
    )


@pytest.fixture
def topology_config() -> TopologyConfig:
    """Return a configuration whose domain has a hosted zone."""
    return TopologyConfig.model_validate(
        {
            "environment": {"account": "123456789012", "region": "us-west-2"},
            "dns": {
                "domain_name": "yourdomain.com",
                "hosted_zones": {"yourdomain.com": "Z0123456789"},
                "validation_timeout_seconds": 5,
            },
        }
    )
