"""
Security boundaries: the edge-facing group in front of the load balancer and
the compute-facing group around the tasks.

Boundaries are declared as plain data first (``build_boundaries``) so the core
invariant can be checked by inspection: the compute boundary admits traffic
only from a reference to the edge boundary, never from an address range. The
``SecurityBoundaries`` component then turns each boundary into an
``aws.ec2.SecurityGroup`` and each allow rule into an
``aws.ec2.SecurityGroupRule``; boundary references become
``source_security_group_id``.
"""

from dataclasses import dataclass

import pulumi
import pulumi_aws as aws

from topology.network import NetworkHandle

ID: str = "topology:aws:SecurityBoundaries"


@dataclass(frozen=True)
class AnyIpv4:
    cidr: str = "0.0.0.0/0"


@dataclass(frozen=True)
class BoundaryRef:
    name: str


Source = AnyIpv4 | BoundaryRef


@dataclass(frozen=True)
class AllowRule:
    protocol: str
    port: int
    source: Source
    description: str = ""


@dataclass(frozen=True)
class SecurityBoundary:
    name: str
    description: str
    rules: tuple[AllowRule, ...]

    def ref(self) -> BoundaryRef:
        return BoundaryRef(self.name)


def build_boundaries(
    listener_port: int,
    container_port: int,
    name_prefix: str = "web",
) -> tuple[SecurityBoundary, SecurityBoundary]:
    """
    Declare the edge and compute boundaries.

    Args:
        listener_port: Public listener port opened to the internet on the edge
            boundary.
        container_port: Container port opened on the compute boundary, only to
            the edge boundary.
        name_prefix: Prefix for the boundary names.

    Returns:
        (edge, compute) boundaries.
    """
    edge = SecurityBoundary(
        name=f"{name_prefix}-edge",
        description="Allow http from internet to ALB",
        rules=(
            AllowRule(
                "tcp", listener_port, AnyIpv4(), f"Allow TCP {listener_port} from anywhere"
            ),
        ),
    )
    compute = SecurityBoundary(
        name=f"{name_prefix}-compute",
        description="Allow traffic only from ALB",
        rules=(AllowRule("tcp", container_port, edge.ref(), "Allow ALB to reach tasks"),),
    )
    return edge, compute


def inbound_sources(boundary: SecurityBoundary) -> set[Source]:
    """Return every distinct source the boundary admits."""
    return {rule.source for rule in boundary.rules}


class SecurityBoundaries(pulumi.ComponentResource):
    """
    One SecurityGroup per boundary in the resolved VPC.

    Resources: SecurityGroup per boundary, SecurityGroupRule per allow rule,
    and an allow-all egress SecurityGroupRule per group.
    """

    def __init__(
        self,
        name: str,
        network: NetworkHandle,
        boundaries: tuple[SecurityBoundary, ...],
        opts: pulumi.ResourceOptions | None = None,
    ):
        """
        Create the security groups and their rules.

        Args:
            name: Pulumi resource name prefix.
            network: Resolved network; groups are created in its VPC.
            boundaries: Boundaries in dependency order. A rule may only
                reference a boundary declared earlier in the tuple.

        Outputs (set on self, registered for the component):
            group_ids: Mapping of boundary name to security group id.
        """
        super().__init__(ID, name, None, opts)

        child_opts = pulumi.ResourceOptions(parent=self)

        self.groups: dict[str, aws.ec2.SecurityGroup] = {}
        for boundary in boundaries:
            group = aws.ec2.SecurityGroup(
                resource_name=f"{name}-{boundary.name}",
                vpc_id=network.vpc_id,
                description=boundary.description,
                tags={"Name": boundary.name},
                opts=child_opts,
            )
            self.groups[boundary.name] = group

            for index, rule in enumerate(boundary.rules):
                if isinstance(rule.source, BoundaryRef):
                    # KeyError here means the referenced boundary was declared later.
                    source = {"source_security_group_id": self.groups[rule.source.name].id}
                else:
                    source = {"cidr_blocks": [rule.source.cidr]}
                aws.ec2.SecurityGroupRule(
                    resource_name=f"{name}-{boundary.name}-in-{index}",
                    type="ingress",
                    security_group_id=group.id,
                    protocol=rule.protocol,
                    from_port=rule.port,
                    to_port=rule.port,
                    description=rule.description,
                    opts=child_opts,
                    **source,
                )

            aws.ec2.SecurityGroupRule(
                resource_name=f"{name}-{boundary.name}-egress",
                type="egress",
                security_group_id=group.id,
                protocol="-1",
                from_port=0,
                to_port=0,
                cidr_blocks=["0.0.0.0/0"],
                description="Allow all outbound",
                opts=child_opts,
            )

        self.group_ids: dict[str, pulumi.Output[str]] = {
            boundary_name: group.id for boundary_name, group in self.groups.items()
        }
        self.register_outputs({"group_ids": self.group_ids})

    def group_id(self, boundary: SecurityBoundary) -> pulumi.Output[str]:
        return self.groups[boundary.name].id
