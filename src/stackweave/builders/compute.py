"""
Compute tier builder.

Generates the instance identity, launch template and auto scaling group.
Instances configure themselves at first boot from the assembled boot
script and register into the edge tier's target group.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..context import Handle, NodeKind
from ..errors import TopologyConfigError
from ..intents import Ref
from ..models import InstanceIdentity, ScalingBounds, SubnetTier
from .base import NodeBuilder, logical_id
from .bootscript import (
    BootPhase,
    BootScript,
    BootScriptAssembler,
    BootStep,
    credential_retrieval_step,
)
from .credentials import CredentialHandle
from .database import DatabaseHandle
from .edge import EdgeHandle
from .network import NetworkFabric
from .trust import TrustBoundary

WEB_ROOT = "/var/www/html"


@dataclass(frozen=True)
class Blueprint:
    """Handle to a materialized instance blueprint."""

    handle: Handle
    launch_template: Ref
    role: Ref
    instance_profile: Ref
    identity: InstanceIdentity
    boot_script: BootScript


@dataclass(frozen=True)
class ScalingGroupHandle:
    """Handle to a materialized auto scaling group."""

    handle: Handle
    group: Ref
    bounds: ScalingBounds
    target: Ref


def check_scaling_bounds(bounds: ScalingBounds, node_id: str) -> None:
    """
    Raises:
        TopologyConfigError: Unless 1 <= min <= desired <= max
    """
    if bounds.min < 1:
        raise TopologyConfigError(
            f"Minimum capacity must be at least 1, got {bounds.min}", node_id=node_id
        )
    if bounds.min > bounds.max:
        raise TopologyConfigError(
            f"Minimum capacity {bounds.min} exceeds maximum {bounds.max}", node_id=node_id
        )
    if bounds.desired is not None and not bounds.min <= bounds.desired <= bounds.max:
        raise TopologyConfigError(
            f"Desired capacity {bounds.desired} is outside {bounds.min}-{bounds.max}",
            node_id=node_id,
        )


class ComputeTierBuilder(NodeBuilder):
    """Generate the auto-scaling compute tier."""

    @property
    def kind(self) -> NodeKind:
        return NodeKind.COMPUTE

    def assemble_boot_script(self, steps: list[BootStep], node_id: str = "compute") -> BootScript:
        return BootScriptAssembler(self.context).assemble(steps, node_id=node_id)

    def build_blueprint(
        self,
        image: str,
        instance_class: str,
        trust_boundary: TrustBoundary,
        identity: InstanceIdentity,
        boot_script: BootScript,
        node_id: str = "compute",
    ) -> Blueprint:
        """Materialize the instance role, profile and launch template."""
        self.context.require(trust_boundary.handle, by=node_id)

        handle = self._reserve(node_id)
        role_id = logical_id(node_id, "instance", "role")
        profile_id = logical_id(node_id, "instance", "profile")
        template_id = logical_id(node_id, "launch", "template")

        intents = [
            self._intent(
                role_id,
                "AWS::IAM::Role",
                {
                    "RoleName": identity.name,
                    "AssumeRolePolicyDocument": {
                        "Version": "2012-10-17",
                        "Statement": [
                            {
                                "Effect": "Allow",
                                "Principal": {"Service": identity.service_principal},
                                "Action": "sts:AssumeRole",
                            }
                        ],
                    },
                    "ManagedPolicyArns": identity.managed_policy_arns,
                },
                node_id,
            ),
            self._intent(
                profile_id,
                "AWS::IAM::InstanceProfile",
                {"Roles": [Ref(role_id)]},
                node_id,
            ),
            self._intent(
                template_id,
                "AWS::EC2::LaunchTemplate",
                {
                    "LaunchTemplateData": {
                        "ImageId": image,
                        "InstanceType": instance_class,
                        "SecurityGroupIds": [trust_boundary.group_id],
                        "IamInstanceProfile": {"Arn": Ref(profile_id, "Arn")},
                        "UserData": boot_script.to_user_data(),
                        "MetadataOptions": {"HttpTokens": "required"},
                    },
                    "TagSpecifications": [
                        {"ResourceType": "launch-template", "Tags": self._tags(node_id)}
                    ],
                },
                node_id,
            ),
        ]

        self.context.commit(handle, intents)
        return Blueprint(
            handle=handle,
            launch_template=Ref(template_id),
            role=Ref(role_id),
            instance_profile=Ref(profile_id),
            identity=identity,
            boot_script=boot_script,
        )

    def build_scaling_group(
        self,
        blueprint: Blueprint,
        bounds: ScalingBounds,
        edge: EdgeHandle,
        fabric: NetworkFabric,
        node_id: str = "scaling-group",
    ) -> ScalingGroupHandle:
        """Materialize the scaling group and register it as the edge tier's target."""
        check_scaling_bounds(bounds, node_id)
        self.context.require(blueprint.handle, by=node_id)
        self.context.require(edge.handle, by=node_id)
        self.context.require(fabric.handle, by=node_id)

        handle = self.context.reserve(NodeKind.SCALING_GROUP, node_id)
        group_id = logical_id(node_id)

        properties: dict = {
            "MinSize": str(bounds.min),
            "MaxSize": str(bounds.max),
            "LaunchTemplate": {
                "LaunchTemplateId": blueprint.launch_template,
                "Version": Ref(blueprint.launch_template.logical_id, "LatestVersionNumber"),
            },
            "VPCZoneIdentifier": fabric.subnet_refs(SubnetTier.PRIVATE),
            "TargetGroupARNs": [edge.registration_target],
            "HealthCheckType": "ELB",
            "HealthCheckGracePeriod": 300,
        }
        if bounds.desired is not None:
            properties["DesiredCapacity"] = str(bounds.desired)

        intent = self._intent(group_id, "AWS::AutoScaling::AutoScalingGroup", properties, node_id)
        self.context.commit(handle, [intent])
        return ScalingGroupHandle(
            handle=handle, group=Ref(group_id), bounds=bounds, target=edge.registration_target
        )


def wordpress_boot_steps(
    credential: CredentialHandle,
    database: DatabaseHandle,
    artifact_url: str = "https://wordpress.org/latest.tar.gz",
    region: str | None = None,
) -> list[BootStep]:
    """Stock WordPress-on-nginx first-boot profile."""
    site = f"{WEB_ROOT}/wordpress"
    config = f"{site}/wp-config.php"
    db_name = database.database_name

    return [
        BootStep(
            BootPhase.PACKAGES,
            (
                "yum update -y",
                "amazon-linux-extras enable nginx1 php8.0",
                "yum install -y nginx php php-fpm php-mysqlnd mariadb jq",
            ),
            name="install-packages",
        ),
        BootStep(
            BootPhase.SERVICES,
            (
                "systemctl enable nginx && systemctl start nginx",
                "systemctl enable php-fpm && systemctl start php-fpm",
            ),
            name="enable-services",
        ),
        BootStep(
            BootPhase.ARTIFACTS,
            (
                f"mkdir -p {WEB_ROOT}",
                f"curl -fsSL -o /tmp/latest.tar.gz {artifact_url}",
                f"tar -xzf /tmp/latest.tar.gz -C {WEB_ROOT}",
                f"chown -R nginx:nginx {site}",
                f"chmod -R 755 {site}",
            ),
            name="fetch-wordpress",
        ),
        credential_retrieval_step(credential, database, region=region),
        BootStep(
            BootPhase.CONFIGURE,
            (
                f'mysql -h "$DB_HOST" -u"$DB_USER" -p"$DB_PASS" '
                f'-e "CREATE DATABASE IF NOT EXISTS {db_name};"',
                f"cp {site}/wp-config-sample.php {config}",
                f'sed -i "s/database_name_here/{db_name}/" {config}',
                f'sed -i "s/username_here/$DB_USER/" {config}',
                f'sed -i "s/password_here/$DB_PASS/" {config}',
                f'sed -i "s/localhost/$DB_HOST/" {config}',
            ),
            name="configure-wordpress",
            consumes=("DB_HOST", "DB_USER", "DB_PASS"),
        ),
        BootStep(
            BootPhase.RESTART,
            ("systemctl restart php-fpm", "systemctl restart nginx"),
            name="restart-services",
        ),
    ]


__all__ = [
    "Blueprint",
    "ScalingGroupHandle",
    "ComputeTierBuilder",
    "check_scaling_bounds",
    "wordpress_boot_steps",
]
