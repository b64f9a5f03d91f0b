"""
Topology assembler.

Runs one synthesis pass over the WordPress topology:

    fabric -> trust boundaries -> {certificate, credential store}
      -> database, edge -> compute -> scaling group -> DNS

Independent subgraphs (fabric plus trust boundaries, the credential store,
and the certificate wait) run on a thread pool. Every node commits into the
pass's build context, which orders intents by node kind, so the plan is the
same whichever branch finishes first. The pass is all-or-nothing.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import Any

from .builders import (
    CertificateGate,
    CertificateHandle,
    ComputeTierBuilder,
    CredentialHandle,
    CredentialStoreBuilder,
    DatabaseHandle,
    DatabaseTierBuilder,
    DNSBinder,
    EdgeTierBuilder,
    NetworkFabric,
    NetworkFabricBuilder,
    StaticZoneResolver,
    TrustBoundary,
    TrustBoundaryResolver,
    ValidationAuthority,
    ZoneResolver,
    default_trust_chain,
    wordpress_boot_steps,
)
from .builders.bootscript import BootStep
from .config import TopologyConfig
from .context import BuildContext
from .errors import SynthesisAborted, TopologyError, UnresolvedReferenceError
from .intents import SynthesisPlan
from .models import (
    GeneratedFieldSpec,
    HealthCheck,
    InstanceIdentity,
    ListenerDecl,
    ScalingBounds,
    TrustBoundaryDecl,
)

logger = logging.getLogger(__name__)

BootProfile = Callable[[CredentialHandle, DatabaseHandle], list[BootStep]]

TIER_ROLES = ("edge", "compute", "database")


class TopologyAssembler:
    """
    Assemble the topology described by a TopologyConfig into a plan.

    Usage:
        assembler = TopologyAssembler(config)
        plan = assembler.synthesize()

    Raises SynthesisAborted wrapping the first violated invariant; a failed
    pass returns no plan and leaves nothing behind.
    """

    def __init__(
        self,
        config: TopologyConfig,
        authority: ValidationAuthority | None = None,
        zone_resolver: ZoneResolver | None = None,
        trust_declarations: list[TrustBoundaryDecl] | None = None,
        listeners: list[ListenerDecl] | None = None,
        boot_profile: BootProfile | None = None,
        boundary_roles: dict[str, str] | None = None,
        max_workers: int = 3,
    ):
        self.config = config
        self.authority = authority
        self.zone_resolver = zone_resolver or StaticZoneResolver(config.dns.hosted_zones)
        self.trust_declarations = trust_declarations
        self.listeners = listeners
        self.boot_profile = boot_profile
        self.boundary_roles = {role: role for role in TIER_ROLES}
        self.boundary_roles.update(boundary_roles or {})
        self.max_workers = max_workers

    def synthesize(self) -> SynthesisPlan:
        """Run one synthesis pass."""
        config = self.config
        context = BuildContext(
            config.name,
            environment={
                "account": config.environment.account,
                "region": config.environment.region,
            },
        )
        started = time.monotonic()
        deadline = config.dns.validation_timeout_seconds
        logger.info(f"Synthesizing '{config.name}' in {config.environment.region}")

        certificate: CertificateHandle | None = None
        pending: list[Future[Any]] = []
        succeeded = False
        pool = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="stackweave")
        try:
            certificate = self._bind_certificate(context)
            foundation = pool.submit(self._build_foundation, context)
            credential_future = pool.submit(self._build_credentials, context)
            validation = pool.submit(certificate.wait, deadline)
            pending = [foundation, credential_future, validation]
            self._gather(pending, release=certificate.cancel)

            fabric, tiers = foundation.result()
            credential = credential_future.result()
            plan = self._build_tiers(
                context,
                fabric,
                tiers,
                credential,
                certificate,
                remaining=deadline - (time.monotonic() - started),
            )
            succeeded = True
        except TopologyError as e:
            logger.error(f"Synthesis of '{config.name}' aborted: {e}")
            raise SynthesisAborted(e) from e
        finally:
            if certificate is not None:
                certificate.cancel()
            if not succeeded:
                for future in pending:
                    future.cancel()
            pool.shutdown(wait=True, cancel_futures=True)
            if not succeeded:
                context.discard()

        logger.info(
            f"Synthesized '{config.name}': {len(plan)} intents in "
            f"{time.monotonic() - started:.2f}s"
        )
        return plan

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    def _gather(self, futures: list[Future[Any]], release: Callable[[], None]) -> None:
        """
        Wait for the concurrent stage; re-raise the first failure in submission order.

        On the first failure ``release`` unblocks the certificate wait, and the
        remaining branches run to completion so the reported failure does not
        depend on which thread finished first.
        """
        _, not_done = wait(futures, return_when=FIRST_EXCEPTION)
        if not_done:
            release()
            wait(not_done)
        for future in futures:
            error = future.exception()
            if error is not None:
                raise error

    def _bind_certificate(self, context: BuildContext) -> CertificateHandle:
        dns = self.config.dns
        zone = self.zone_resolver.lookup(dns.domain_name)
        names = tuple(n for n in (dns.fqdn,) if n != dns.domain_name)
        return CertificateGate(context, self.authority).bind(
            dns.domain_name,
            validation_method=dns.validation_method,
            subject_alternative_names=names,
            hosted_zone_id=zone.zone_id if zone else None,
        )

    def _build_foundation(
        self, context: BuildContext
    ) -> tuple[NetworkFabric, dict[str, TrustBoundary]]:
        network = self.config.network
        fabric = NetworkFabricBuilder(context).build(
            network.vpc_cidr,
            self.config.zone_names(),
            nat_gateways=network.nat_gateways,
            subnet_prefix=network.subnet_prefix,
        )
        declarations = self.trust_declarations
        if declarations is None:
            declarations = default_trust_chain(
                app_port=self.config.compute.app_port,
                database_port=self.config.database.port,
            )
        declared = {decl.id for decl in declarations}
        for role in TIER_ROLES:
            boundary_id = self.boundary_roles[role]
            if boundary_id not in declared:
                raise UnresolvedReferenceError(
                    f"No trust boundary '{boundary_id}' is declared for the {role} tier",
                    node_id=role,
                )

        boundaries = TrustBoundaryResolver(context).resolve(fabric, declarations)
        return fabric, {role: boundaries[self.boundary_roles[role]] for role in TIER_ROLES}

    def _build_credentials(self, context: BuildContext) -> CredentialHandle:
        credentials = self.config.credentials
        return CredentialStoreBuilder(context).create(
            {"username": credentials.username},
            GeneratedFieldSpec(
                key=credentials.password_key,
                length=credentials.password_length,
                exclude_punctuation=credentials.exclude_punctuation,
                exclude_characters=credentials.exclude_characters,
            ),
        )

    def _build_tiers(
        self,
        context: BuildContext,
        fabric: NetworkFabric,
        tiers: dict[str, TrustBoundary],
        credential: CredentialHandle,
        certificate: CertificateHandle,
        remaining: float,
    ) -> SynthesisPlan:
        config = self.config

        database = DatabaseTierBuilder(context).create(
            config.database.engine,
            tiers["database"],
            credential,
            config.database.multi_az,
            config.database.allocated_storage,
            fabric=fabric,
            version=config.database.engine_version,
            instance_class=config.database.instance_class,
            database_name=config.database.database_name,
        )

        compute_config = config.compute
        edge = EdgeTierBuilder(context).build(
            fabric,
            tiers["edge"],
            certificate,
            HealthCheck(
                path=compute_config.health_check_path,
                interval_seconds=compute_config.health_check_interval,
                healthy_threshold=compute_config.healthy_threshold,
                unhealthy_threshold=compute_config.unhealthy_threshold,
            ),
            deadline=remaining,
            listeners=self.listeners,
            target_port=compute_config.app_port,
        )

        compute = ComputeTierBuilder(context)
        if self.boot_profile is not None:
            steps = self.boot_profile(credential, database)
        else:
            steps = wordpress_boot_steps(
                credential,
                database,
                artifact_url=compute_config.artifact_url,
                region=config.environment.region,
            )
        boot_script = compute.assemble_boot_script(steps)
        blueprint = compute.build_blueprint(
            compute_config.image,
            compute_config.instance_class,
            tiers["compute"],
            InstanceIdentity(name=f"{config.name}-instance"),
            boot_script,
        )
        CredentialStoreBuilder(context).grant_read(
            credential, blueprint.role, node_id="compute-secret-read"
        )
        compute.build_scaling_group(
            blueprint,
            ScalingBounds(
                compute_config.min_capacity,
                compute_config.max_capacity,
                compute_config.desired_capacity,
            ),
            edge,
            fabric,
        )

        DNSBinder(context, self.zone_resolver).bind(
            config.dns.domain_name, config.dns.fqdn, edge.public_identity
        )
        return context.to_plan()


def synthesize(config: TopologyConfig, **kwargs: Any) -> SynthesisPlan:
    """Convenience wrapper around TopologyAssembler.synthesize."""
    return TopologyAssembler(config, **kwargs).synthesize()


__all__ = ["TopologyAssembler", "BootProfile", "synthesize"]
