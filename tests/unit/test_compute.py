"""Tests for the compute tier builder."""

import pytest

from stackweave.builders import (
    ComputeTierBuilder,
    NetworkFabric,
    TrustBoundarySet,
    wordpress_boot_steps,
)
from stackweave.builders.bootscript import BootPhase
from stackweave.builders.compute import check_scaling_bounds
from stackweave.context import BuildContext, NodeKind
from stackweave.errors import TopologyConfigError
from stackweave.models import InstanceIdentity, ScalingBounds

IMAGE = "resolve:ssm:/aws/service/ami-amazon-linux-latest/amzn2-ami-hvm-arm64-gp2"


@pytest.fixture
def blueprint(context: BuildContext, boundaries: TrustBoundarySet, credential, database):
    compute = ComputeTierBuilder(context)
    script = compute.assemble_boot_script(wordpress_boot_steps(credential, database))
    return compute.build_blueprint(
        IMAGE, "t4g.medium", boundaries["compute"], InstanceIdentity(name="wp-instance"), script
    )


class TestScalingBounds:
    """Tests for check_scaling_bounds."""

    def test_valid(self):
        """Test ordinary bounds are accepted."""
        check_scaling_bounds(ScalingBounds(2, 5), "asg")
        check_scaling_bounds(ScalingBounds(1, 1, 1), "asg")

    @pytest.mark.parametrize(
        "bounds",
        [ScalingBounds(0, 5), ScalingBounds(6, 5), ScalingBounds(2, 5, 7), ScalingBounds(2, 5, 1)],
    )
    def test_invalid(self, bounds):
        """Test invalid bounds are configuration errors."""
        with pytest.raises(TopologyConfigError):
            check_scaling_bounds(bounds, "asg")


class TestWordpressBootSteps:
    """Tests for the stock WordPress boot profile."""

    def test_phase_coverage(self, credential, database):
        """Test the profile covers every phase once."""
        steps = wordpress_boot_steps(credential, database)

        assert sorted(s.phase for s in steps) == list(BootPhase)

    def test_script_contents(self, context: BuildContext, credential, database):
        """Test the assembled script installs, fetches and configures WordPress."""
        script = ComputeTierBuilder(context).assemble_boot_script(
            wordpress_boot_steps(credential, database, region="us-west-2")
        )

        text = script.text
        assert text.startswith("#!/bin/bash\n")
        assert "yum install -y nginx php php-fpm php-mysqlnd mariadb jq" in text
        assert "tar -xzf /tmp/latest.tar.gz -C /var/www/html" in text
        assert 'CREATE DATABASE IF NOT EXISTS wordpress;' in text
        assert "wp-config.php" in text
        assert "{{resolve:" not in text
        assert text.index("get-secret-value") < text.index("CREATE DATABASE")


class TestComputeTierBuilder:
    """Tests for blueprint and scaling group."""

    def test_blueprint_intents(self, context: BuildContext, blueprint):
        """Test the role, profile and launch template."""
        plan = context.to_plan()

        role = plan.get("ComputeInstanceRole").properties
        assert role["AssumeRolePolicyDocument"]["Statement"][0]["Principal"] == {
            "Service": "ec2.amazonaws.com"
        }
        assert role["ManagedPolicyArns"] == [
            "arn:aws:iam::aws:policy/AmazonSSMManagedInstanceCore"
        ]
        template = plan.get("ComputeLaunchTemplate").properties["LaunchTemplateData"]
        assert template["InstanceType"] == "t4g.medium"
        assert template["ImageId"] == IMAGE
        assert template["SecurityGroupIds"][0].logical_id == "ComputeSecurityGroup"
        assert template["MetadataOptions"] == {"HttpTokens": "required"}

    def test_user_data_rendered_through_sub(self, context: BuildContext, blueprint):
        """Test user data references the secret and endpoint as live refs."""
        template = context.to_plan().to_template()
        user_data = template["Resources"]["ComputeLaunchTemplate"]["Properties"][
            "LaunchTemplateData"
        ]["UserData"]

        body = user_data["Fn::Base64"]["Fn::Sub"]
        assert "${DbSecret}" in body
        assert "${DatabaseInstance.Endpoint.Address}" in body

    def test_scaling_group_registers_into_edge(
        self, context: BuildContext, fabric: NetworkFabric, blueprint, edge
    ):
        """Test instances spread over private subnets and join the target group."""
        compute = ComputeTierBuilder(context)
        group = compute.build_scaling_group(blueprint, ScalingBounds(2, 5), edge, fabric)
        properties = context.to_plan().get("ScalingGroup").properties

        assert properties["MinSize"] == "2"
        assert properties["MaxSize"] == "5"
        assert "DesiredCapacity" not in properties
        assert properties["TargetGroupARNs"] == [edge.registration_target]
        assert [s.logical_id for s in properties["VPCZoneIdentifier"]] == [
            "FabricPrivate1",
            "FabricPrivate2",
        ]
        assert group.target == edge.registration_target

    def test_invalid_bounds_emit_nothing(
        self, context: BuildContext, fabric: NetworkFabric, blueprint, edge
    ):
        """Test bad bounds are rejected before reserving the group."""
        with pytest.raises(TopologyConfigError):
            ComputeTierBuilder(context).build_scaling_group(
                blueprint, ScalingBounds(3, 2), edge, fabric
            )

        assert context.find(NodeKind.SCALING_GROUP, "scaling-group") is None
