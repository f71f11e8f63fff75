"""
Network resolution: pick one VPC for the deployment by id, by Name tag, or by
creating a new one.

The decision is made once by ``choose_strategy``, which returns a tagged
result (ByIdentifier, ByTag or Created) in strict precedence order. The
``NetworkResolver`` then runs the chosen strategy against a backend and
memoizes the resulting ``NetworkHandle``, so every downstream component shares
the same read-only handle.

The AWS backend looks networks up with ``aws.ec2.get_vpcs`` and classifies
subnets by a tag (``network=public`` / ``network=private`` by default).
Created networks come from ``awsx.ec2.Vpc`` and carry the same tags, so a
later run can find them by tag instead of creating a duplicate.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol, Sequence, TypeVar

import pulumi
import pulumi_aws as aws
import pulumi_awsx as awsx

from topology._helpers import is_limit_error
from topology.errors import (
    AmbiguousMatchError,
    ConfigurationError,
    NotFoundError,
    PlatformError,
    QuotaError,
)

T = TypeVar("T")


class RoutingClass(str, Enum):
    """Reachability of a subnet group."""

    PUBLIC = "public"
    PRIVATE_ROUTED = "private-routed"
    ISOLATED = "isolated"


# Subnet tag values used to classify looked-up subnets.
SUBNET_TAG_VALUES: dict[RoutingClass, str] = {
    RoutingClass.PUBLIC: "public",
    RoutingClass.PRIVATE_ROUTED: "private",
}


@dataclass(frozen=True)
class NetworkLayout:
    """Fixed topology used when a new network has to be created."""

    cidr_block: str = "10.0.0.0/16"
    max_azs: int = 2
    nat_gateways: int = 1
    public_cidr_mask: int = 24
    private_cidr_mask: int = 24


@dataclass(frozen=True)
class ByIdentifier:
    vpc_id: str


@dataclass(frozen=True)
class ByTag:
    name: str


@dataclass(frozen=True)
class Created:
    layout: NetworkLayout


Strategy = ByIdentifier | ByTag | Created


@dataclass(frozen=True)
class SubnetGroup:
    routing_class: RoutingClass
    subnet_ids: pulumi.Input[Sequence[str]]

    def __post_init__(self):
        # Plain id lists are frozen so a shared handle cannot be edited in place.
        if isinstance(self.subnet_ids, (list, tuple)):
            object.__setattr__(self, "subnet_ids", tuple(self.subnet_ids))


@dataclass(frozen=True)
class NetworkHandle:
    """
    Opaque, immutable reference to the resolved VPC.

    Attributes:
        vpc_id: VPC id (a plain string for lookups, an Output when created).
        subnet_groups: Ordered subnet groups, one per routing class.
        strategy: The strategy that produced this handle.
    """

    vpc_id: pulumi.Input[str]
    subnet_groups: tuple[SubnetGroup, ...]
    strategy: Strategy

    @property
    def routing_classes(self) -> frozenset[RoutingClass]:
        return frozenset(group.routing_class for group in self.subnet_groups)

    def subnet_ids(self, routing_class: RoutingClass) -> pulumi.Input[Sequence[str]]:
        for group in self.subnet_groups:
            if group.routing_class == routing_class:
                return group.subnet_ids
        raise NotFoundError(
            f"Network {self.vpc_id} has no {routing_class.value} subnet group"
        )

    def subnet_input(self, routing_class: RoutingClass) -> pulumi.Input[list[str]]:
        """Subnet ids as a fresh list, the shape resource arguments expect."""
        ids = self.subnet_ids(routing_class)
        return list(ids) if isinstance(ids, tuple) else ids


def _present(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def choose_strategy(
    vpc_id: str | None,
    vpc_name: str | None,
    allow_create: bool = True,
    layout: NetworkLayout = NetworkLayout(),
) -> Strategy:
    """
    Decide how to obtain the network. First match wins.

    1. An explicit VPC id → ByIdentifier (even if a name is also given).
    2. A VPC Name tag → ByTag.
    3. Otherwise → Created with the fixed layout, unless creation is
       disabled, in which case no strategy applies.

    Blank values count as absent.

    Raises:
        NotFoundError: The id is malformed, so no network can match it.
        ConfigurationError: Nothing was supplied and creation is disabled.
    """
    vpc_id = _present(vpc_id)
    vpc_name = _present(vpc_name)
    if vpc_id is not None:
        if not vpc_id.startswith("vpc-"):
            raise NotFoundError(f"No VPC with id {vpc_id!r}: VPC ids start with 'vpc-'")
        return ByIdentifier(vpc_id)
    if vpc_name is not None:
        return ByTag(vpc_name)
    if allow_create:
        return Created(layout)
    raise ConfigurationError(
        "No VPC id or VPC name provided and network creation is disabled. "
        "Set vpc_id or vpc_name in stack config, or VPC_ID / VPC_NAME in the environment."
    )


class NetworkBackend(Protocol):
    """Platform operations the resolver needs."""

    def find_by_id(self, vpc_id: str) -> list[str]: ...

    def find_by_tag(self, name: str) -> list[str]: ...

    def subnet_groups(self, vpc_id: str) -> tuple[SubnetGroup, ...]: ...

    def create(
        self, name: str, layout: NetworkLayout
    ) -> tuple[pulumi.Input[str], tuple[SubnetGroup, ...]]: ...


class NetworkResolver:
    """
    Resolves the deployment's single NetworkHandle.

    Usage:
        resolver = NetworkResolver("web-dev", AwsNetworkBackend(), vpc_id="vpc-123")
        network = resolver.resolve()
    """

    def __init__(
        self,
        name: str,
        backend: NetworkBackend,
        vpc_id: str | None = None,
        vpc_name: str | None = None,
        allow_create: bool = True,
        layout: NetworkLayout = NetworkLayout(),
    ) -> None:
        self.name = name
        self.backend = backend
        self.strategy: Strategy = choose_strategy(vpc_id, vpc_name, allow_create, layout)
        self._handle: NetworkHandle | None = None

    def resolve(self) -> NetworkHandle:
        """
        Run the chosen strategy once and cache the handle.

        Raises:
            NotFoundError: Lookup matched no network, or the network lacks a
                public or private subnet group.
            AmbiguousMatchError: Tag lookup matched more than one network.
            PlatformError: The platform failed the lookup or creation.
        """
        if self._handle is not None:
            return self._handle

        strategy = self.strategy
        if isinstance(strategy, ByIdentifier):
            ids = self.backend.find_by_id(strategy.vpc_id)
            if not ids:
                raise NotFoundError(f"No VPC with id {strategy.vpc_id}")
            self._handle = self._looked_up(ids[0], strategy)
        elif isinstance(strategy, ByTag):
            ids = self.backend.find_by_tag(strategy.name)
            if not ids:
                raise NotFoundError(f"No VPC tagged Name={strategy.name}")
            if len(ids) > 1:
                raise AmbiguousMatchError(
                    f"{len(ids)} VPCs tagged Name={strategy.name}: {', '.join(sorted(ids))}"
                )
            self._handle = self._looked_up(ids[0], strategy)
        else:
            pulumi.log.warn(
                f"No VPC id or name configured; creating a new VPC for {self.name}"
            )
            vpc_id, groups = self.backend.create(self.name, strategy.layout)
            self._handle = NetworkHandle(vpc_id, groups, strategy)

        pulumi.log.info(f"Resolved network for {self.name} using {type(strategy).__name__}")
        return self._handle

    def _looked_up(self, vpc_id: str, strategy: Strategy) -> NetworkHandle:
        groups = self.backend.subnet_groups(vpc_id)
        by_class = {group.routing_class: group for group in groups}
        for routing_class in SUBNET_TAG_VALUES:
            group = by_class.get(routing_class)
            if group is None or not group.subnet_ids:
                raise NotFoundError(
                    f"VPC {vpc_id} has no subnets classified {routing_class.value}"
                )
        return NetworkHandle(
            vpc_id,
            tuple(by_class[routing_class] for routing_class in SUBNET_TAG_VALUES),
            strategy,
        )


def _invoke(fn: Callable[..., T], **kwargs) -> T:
    try:
        return fn(**kwargs)
    except Exception as exc:
        if is_limit_error(str(exc)):
            raise QuotaError(str(exc)) from exc
        raise PlatformError(str(exc)) from exc


class AwsNetworkBackend:
    """
    NetworkBackend over the AWS provider.

    Lookups are Pulumi invokes (resolved at program time); creation registers
    an ``awsx.ec2.Vpc`` whose ids are Outputs.
    """

    def __init__(
        self,
        subnet_tag_key: str = "network",
        opts: pulumi.ResourceOptions | None = None,
    ) -> None:
        self.subnet_tag_key = subnet_tag_key
        self.opts = opts

    def find_by_id(self, vpc_id: str) -> list[str]:
        result = _invoke(
            aws.ec2.get_vpcs,
            filters=[aws.ec2.GetVpcsFilterArgs(name="vpc-id", values=[vpc_id])],
        )
        return list(result.ids or [])

    def find_by_tag(self, name: str) -> list[str]:
        result = _invoke(aws.ec2.get_vpcs, tags={"Name": name})
        return list(result.ids or [])

    def subnet_groups(self, vpc_id: str) -> tuple[SubnetGroup, ...]:
        groups = []
        for routing_class, tag_value in SUBNET_TAG_VALUES.items():
            result = _invoke(
                aws.ec2.get_subnets,
                filters=[
                    aws.ec2.GetSubnetsFilterArgs(name="vpc-id", values=[vpc_id]),
                    aws.ec2.GetSubnetsFilterArgs(
                        name=f"tag:{self.subnet_tag_key}", values=[tag_value]
                    ),
                ],
            )
            groups.append(SubnetGroup(routing_class, tuple(sorted(result.ids or []))))
        return tuple(groups)

    def create(
        self, name: str, layout: NetworkLayout
    ) -> tuple[pulumi.Input[str], tuple[SubnetGroup, ...]]:
        # Single NAT gateway: private subnets in every AZ egress through it.
        vpc = awsx.ec2.Vpc(
            f"{name}-vpc",
            cidr_block=layout.cidr_block,
            number_of_availability_zones=layout.max_azs,
            nat_gateways=awsx.ec2.NatGatewayConfigurationArgs(
                strategy=awsx.ec2.NatGatewayStrategy.SINGLE,
            ),
            subnet_specs=[
                awsx.ec2.SubnetSpecArgs(
                    type=awsx.ec2.SubnetType.PUBLIC,
                    name="public",
                    cidr_mask=layout.public_cidr_mask,
                    tags={self.subnet_tag_key: SUBNET_TAG_VALUES[RoutingClass.PUBLIC]},
                ),
                awsx.ec2.SubnetSpecArgs(
                    type=awsx.ec2.SubnetType.PRIVATE,
                    name="private",
                    cidr_mask=layout.private_cidr_mask,
                    tags={
                        self.subnet_tag_key: SUBNET_TAG_VALUES[RoutingClass.PRIVATE_ROUTED]
                    },
                ),
            ],
            tags={"Name": f"{name}-vpc"},
            opts=self.opts,
        )
        groups = (
            SubnetGroup(RoutingClass.PUBLIC, vpc.public_subnet_ids),
            SubnetGroup(RoutingClass.PRIVATE_ROUTED, vpc.private_subnet_ids),
        )
        return vpc.vpc_id, groups
