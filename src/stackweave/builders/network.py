"""
Network fabric builder.

Generates the VPC, one public and one private subnet per availability
zone, internet and NAT gateways, and their route tables.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass

from ..context import Handle, NodeKind
from ..errors import TopologyConfigError
from ..intents import Ref, ResourceIntent
from ..models import Subnet, SubnetTier
from .base import NodeBuilder, logical_id

MIN_AVAILABILITY_ZONES = 2


@dataclass(frozen=True)
class NetworkFabric:
    """Handle to a materialized network fabric."""

    handle: Handle
    vpc: Ref
    address_space: str
    availability_zones: tuple[str, ...]
    public_subnets: tuple[Subnet, ...]
    private_subnets: tuple[Subnet, ...]

    @property
    def subnets(self) -> tuple[Subnet, ...]:
        return self.public_subnets + self.private_subnets

    def subnet_refs(self, tier: SubnetTier) -> list[Ref]:
        subnets = self.public_subnets if tier == SubnetTier.PUBLIC else self.private_subnets
        return [s.ref for s in subnets]


class NetworkFabricBuilder(NodeBuilder):
    """Generate VPC and subnet resources."""

    @property
    def kind(self) -> NodeKind:
        return NodeKind.NETWORK

    def build(
        self,
        address_space: str,
        zones: list[str],
        nat_gateways: int = 1,
        subnet_prefix: int = 24,
        node_id: str = "fabric",
    ) -> NetworkFabric:
        """
        Carve the address space and materialize the fabric.

        Raises:
            TopologyConfigError: If fewer than two zones are requested or the
                address space cannot hold a subnet pair per zone
        """
        if len(zones) < MIN_AVAILABILITY_ZONES:
            raise TopologyConfigError(
                f"At least {MIN_AVAILABILITY_ZONES} availability zones are required, "
                f"got {len(zones)}",
                node_id=node_id,
            )
        if len(set(zones)) != len(zones):
            raise TopologyConfigError(f"Duplicate availability zones: {zones}", node_id=node_id)

        public_cidrs, private_cidrs = self._carve(address_space, len(zones), subnet_prefix, node_id)

        handle = self._reserve(node_id)
        vpc_id = logical_id(node_id, "vpc")
        vpc = Ref(vpc_id)

        public = tuple(
            Subnet(logical_id(node_id, "public", str(i + 1)), cidr, zone, SubnetTier.PUBLIC)
            for i, (cidr, zone) in enumerate(zip(public_cidrs, zones, strict=True))
        )
        private = tuple(
            Subnet(logical_id(node_id, "private", str(i + 1)), cidr, zone, SubnetTier.PRIVATE)
            for i, (cidr, zone) in enumerate(zip(private_cidrs, zones, strict=True))
        )

        intents: list[ResourceIntent] = [
            self._intent(
                vpc_id,
                "AWS::EC2::VPC",
                {
                    "CidrBlock": address_space,
                    "EnableDnsHostnames": True,
                    "EnableDnsSupport": True,
                    "Tags": self._tags(node_id),
                },
                node_id,
            )
        ]

        for subnet in public + private:
            intents.append(
                self._intent(
                    subnet.logical_id,
                    "AWS::EC2::Subnet",
                    {
                        "VpcId": vpc,
                        "CidrBlock": subnet.cidr,
                        "AvailabilityZone": subnet.zone,
                        "MapPublicIpOnLaunch": subnet.tier == SubnetTier.PUBLIC,
                        "Tags": self._tags(f"{subnet.tier.value}-{subnet.zone}"),
                    },
                    node_id,
                )
            )

        intents.extend(self._gateway_intents(node_id, vpc, public, private, nat_gateways))

        fabric = NetworkFabric(
            handle=handle,
            vpc=vpc,
            address_space=address_space,
            availability_zones=tuple(zones),
            public_subnets=public,
            private_subnets=private,
        )
        self.context.commit(handle, intents, exports={"VpcId": vpc})
        return fabric

    def _carve(
        self, address_space: str, zone_count: int, prefix: int, node_id: str
    ) -> tuple[list[str], list[str]]:
        """Split the address space into public blocks followed by private blocks."""
        try:
            network = ipaddress.IPv4Network(address_space)
        except ValueError as e:
            raise TopologyConfigError(f"Invalid address space: {e}", node_id=node_id) from e

        if prefix < network.prefixlen:
            raise TopologyConfigError(
                f"Subnet prefix /{prefix} is larger than the address space {address_space}",
                node_id=node_id,
            )

        blocks = network.subnets(new_prefix=prefix)
        needed = zone_count * 2
        carved: list[str] = []
        for block in blocks:
            carved.append(str(block))
            if len(carved) == needed:
                break

        if len(carved) < needed:
            raise TopologyConfigError(
                f"Address space {address_space} holds fewer than {needed} /{prefix} subnets",
                node_id=node_id,
            )
        return carved[:zone_count], carved[zone_count:]

    def _gateway_intents(
        self,
        node_id: str,
        vpc: Ref,
        public: tuple[Subnet, ...],
        private: tuple[Subnet, ...],
        nat_gateways: int,
    ) -> list[ResourceIntent]:
        """Internet gateway, NAT gateways and routing for both tiers."""
        igw_id = logical_id(node_id, "igw")
        attach_id = logical_id(node_id, "igw", "attachment")
        public_rt_id = logical_id(node_id, "public", "routes")

        intents = [
            self._intent(igw_id, "AWS::EC2::InternetGateway", {"Tags": self._tags("igw")}, node_id),
            self._intent(
                attach_id,
                "AWS::EC2::VPCGatewayAttachment",
                {"VpcId": vpc, "InternetGatewayId": Ref(igw_id)},
                node_id,
            ),
            self._intent(
                public_rt_id,
                "AWS::EC2::RouteTable",
                {"VpcId": vpc, "Tags": self._tags("public")},
                node_id,
            ),
            self._intent(
                logical_id(node_id, "public", "default", "route"),
                "AWS::EC2::Route",
                {
                    "RouteTableId": Ref(public_rt_id),
                    "DestinationCidrBlock": "0.0.0.0/0",
                    "GatewayId": Ref(igw_id),
                },
                node_id,
                depends_on=(attach_id,),
            ),
        ]
        for subnet in public:
            intents.append(
                self._intent(
                    logical_id(subnet.logical_id, "route", "assoc"),
                    "AWS::EC2::SubnetRouteTableAssociation",
                    {"SubnetId": subnet.ref, "RouteTableId": Ref(public_rt_id)},
                    node_id,
                )
            )

        nat_count = min(nat_gateways, len(public))
        nat_ids: list[str] = []
        for i in range(nat_count):
            eip_id = logical_id(node_id, "nat", str(i + 1), "eip")
            nat_id = logical_id(node_id, "nat", str(i + 1))
            intents.append(
                self._intent(
                    eip_id, "AWS::EC2::EIP", {"Domain": "vpc"}, node_id, depends_on=(attach_id,)
                )
            )
            intents.append(
                self._intent(
                    nat_id,
                    "AWS::EC2::NatGateway",
                    {
                        "SubnetId": public[i].ref,
                        "AllocationId": Ref(eip_id, "AllocationId"),
                        "Tags": self._tags(f"nat-{public[i].zone}"),
                    },
                    node_id,
                )
            )
            nat_ids.append(nat_id)

        for i, subnet in enumerate(private):
            rt_id = logical_id(subnet.logical_id, "routes")
            intents.append(
                self._intent(
                    rt_id,
                    "AWS::EC2::RouteTable",
                    {"VpcId": vpc, "Tags": self._tags(f"private-{subnet.zone}")},
                    node_id,
                )
            )
            if nat_ids:
                intents.append(
                    self._intent(
                        logical_id(subnet.logical_id, "default", "route"),
                        "AWS::EC2::Route",
                        {
                            "RouteTableId": Ref(rt_id),
                            "DestinationCidrBlock": "0.0.0.0/0",
                            "NatGatewayId": Ref(nat_ids[i % len(nat_ids)]),
                        },
                        node_id,
                    )
                )
            intents.append(
                self._intent(
                    logical_id(subnet.logical_id, "route", "assoc"),
                    "AWS::EC2::SubnetRouteTableAssociation",
                    {"SubnetId": subnet.ref, "RouteTableId": Ref(rt_id)},
                    node_id,
                )
            )

        return intents


__all__ = ["NetworkFabric", "NetworkFabricBuilder", "MIN_AVAILABILITY_ZONES"]
