"""
Database tier builder.

Generates the RDS subnet group and instance. The master credentials come
from a credential store that must already be materialized; the password is
a dynamic reference the provisioning engine resolves.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..context import Handle, NodeKind
from ..errors import TopologyConfigError
from ..intents import Ref
from ..models import DatabaseEngine, SubnetTier
from .base import NodeBuilder, logical_id
from .credentials import CredentialHandle
from .network import NetworkFabric
from .trust import TrustBoundary


@dataclass(frozen=True)
class DatabaseHandle:
    """Handle to a materialized database instance."""

    handle: Handle
    engine: DatabaseEngine
    instance: Ref
    database_name: str
    credential: CredentialHandle

    @property
    def endpoint_address(self) -> Ref:
        return Ref(self.instance.logical_id, "Endpoint.Address")

    @property
    def endpoint_port(self) -> Ref:
        return Ref(self.instance.logical_id, "Endpoint.Port")


class DatabaseTierBuilder(NodeBuilder):
    """Generate the managed relational database."""

    @property
    def kind(self) -> NodeKind:
        return NodeKind.DATABASE

    def create(
        self,
        engine: DatabaseEngine,
        trust_boundary: TrustBoundary,
        credential: CredentialHandle,
        multi_az: bool,
        storage: int,
        *,
        fabric: NetworkFabric,
        version: str = "8.0",
        instance_class: str = "db.t3.micro",
        database_name: str = "wordpress",
        node_id: str = "database",
    ) -> DatabaseHandle:
        """
        Materialize the database in the fabric's private subnets.

        Raises:
            DependencyNotMaterializedError: If the credential store, trust
                boundary or fabric is not materialized in this pass
            TopologyConfigError: If the credential store has no username field
        """
        self.context.require(credential.handle, by=node_id)
        self.context.require(trust_boundary.handle, by=node_id)
        self.context.require(fabric.handle, by=node_id)
        if credential.username_key not in credential.fixed_keys:
            raise TopologyConfigError(
                f"Credential store '{credential.node_id}' has no '{credential.username_key}' field "
                "for the master username",
                node_id=node_id,
            )

        handle = self._reserve(node_id)
        subnet_group_id = logical_id(node_id, "subnet", "group")
        instance_id = logical_id(node_id, "instance")
        secret_key = credential.generated_key
        username_key = credential.username_key

        intents = [
            self._intent(
                subnet_group_id,
                "AWS::RDS::DBSubnetGroup",
                {
                    "DBSubnetGroupDescription": f"Private subnets for {node_id}",
                    "SubnetIds": fabric.subnet_refs(SubnetTier.PRIVATE),
                },
                node_id,
            ),
            self._intent(
                instance_id,
                "AWS::RDS::DBInstance",
                {
                    "Engine": engine.value,
                    "EngineVersion": version,
                    "DBInstanceClass": instance_class,
                    "DBName": database_name,
                    "MultiAZ": multi_az,
                    "AllocatedStorage": str(storage),
                    "StorageType": "gp2",
                    "StorageEncrypted": True,
                    "PubliclyAccessible": False,
                    "DBSubnetGroupName": Ref(subnet_group_id),
                    "VPCSecurityGroups": [trust_boundary.group_id],
                    "MasterUsername": credential.field_reference(username_key),
                    "MasterUserPassword": credential.field_reference(secret_key),
                    "Tags": self._tags(node_id),
                },
                node_id,
            ),
        ]

        instance = Ref(instance_id)
        self.context.commit(
            handle,
            intents,
            exports={"DatabaseEndpoint": Ref(instance_id, "Endpoint.Address")},
        )
        return DatabaseHandle(
            handle=handle,
            engine=engine,
            instance=instance,
            database_name=database_name,
            credential=credential,
        )


__all__ = ["DatabaseHandle", "DatabaseTierBuilder"]
