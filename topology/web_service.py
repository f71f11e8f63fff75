"""
Gated web service topology: boundaries, ALB, Fargate, Cognito gate, CloudFront.

Consumes a resolved ``NetworkHandle`` and builds, in dependency order:

1. Edge and compute security boundaries (compute admits only the edge group).
2. An internet-facing ALB in the public subnets.
3. A routing target (IP target group with a health check) bound to the
   service name.
4. The Cognito identity provider used by the auth gate.
5. The listener: a default forward to the target plus a path-matched rule
   that authenticates before forwarding to the same target.
6. The Fargate service in the private subnets, registered into the target.
7. A CloudFront distribution whose origin is the ALB's DNS name, with a
   viewer-request hook stripping an untrusted header.

Every child resource name is claimed once; reusing one raises ConflictError
before Pulumi sees a duplicate URN. Outputs (``alb_dns_name``,
``cloudfront_domain_name``, ``user_pool_id``, ``user_pool_client_id``) are
``Output[str]`` for stack exports.
"""

from dataclasses import dataclass, field

import pulumi
import pulumi_aws as aws

from topology.edge import CdnDistribution, StripHeader, build_distribution
from topology.errors import ConfigurationError, ConflictError
from topology.identity import IdentityProvider, IdentitySettings
from topology.network import NetworkHandle, RoutingClass
from topology.routing import (
    HealthCheck,
    Listener,
    RoutingTarget,
    bind_service,
    listener_default_actions,
    listener_rule_actions,
    listener_rule_conditions,
    validate_route,
)
from topology.security import SecurityBoundaries, build_boundaries
from topology.service import ContainerService, ServiceSpec

ID: str = "topology:aws:WebServiceTopology"


@dataclass(frozen=True)
class TopologySettings:
    """
    Ports, routes and collaborators' settings.

    Attributes:
        listener_port: Public ALB listener port.
        origin_port: Port CloudFront uses to reach the ALB; must equal
            listener_port.
        health_check: Target group health check.
        secure_path_pattern: Path pattern behind the auth gate.
        secure_priority: Listener rule priority of the gated route.
        stripped_headers: Request headers removed at the edge, in order.
        auth_domain_prefix: Explicit Cognito hosted domain prefix, or None for
            a random suffix.
        service: Container sizing; ``service.container_port`` is the port the
            target group and compute boundary use.
        identity: User pool and client settings.
    """

    listener_port: int = 8080
    origin_port: int = 8080
    health_check: HealthCheck = field(default_factory=HealthCheck)
    secure_path_pattern: str = "/secure/*"
    secure_priority: int = 10
    stripped_headers: tuple[str, ...] = ("x-explioit-activate",)
    auth_domain_prefix: str | None = None
    service: ServiceSpec = field(default_factory=ServiceSpec)
    identity: IdentitySettings = field(default_factory=IdentitySettings)

    def __post_init__(self):
        # Checked here so a bad setting fails before any resource is registered.
        if self.origin_port != self.listener_port:
            raise ConfigurationError(
                f"Edge origin port {self.origin_port} must match the public "
                f"listener port {self.listener_port}"
            )
        validate_route(self.secure_priority, self.secure_path_pattern)


class ResourceNames:
    """Claims unique child resource names under one prefix."""

    def __init__(self, prefix: str) -> None:
        self.prefix = prefix
        self._claimed: set[str] = set()

    def claim(self, suffix: str) -> str:
        name = f"{self.prefix}-{suffix}"
        if name in self._claimed:
            raise ConflictError(f"Resource name {name} is already used in this topology")
        self._claimed.add(name)
        return name


class WebServiceTopology(pulumi.ComponentResource):
    """
    Load-balanced Fargate service behind CloudFront with a Cognito-gated path.

    The routing model (``listener``, ``target``) and the boundary model
    (``edge_boundary``, ``compute_boundary``) stay on the component so they can
    be inspected after construction.
    """

    def __init__(
        self,
        name: str,
        network: NetworkHandle,
        settings: TopologySettings = TopologySettings(),
        opts: pulumi.ResourceOptions | None = None,
    ):
        """
        Build the topology on the resolved network.

        Args:
            name: Pulumi resource name prefix for every child.
            network: Resolved network handle; read-only.
            settings: Ports, routes and collaborator settings.

        Raises:
            ConfigurationError: Invalid edge setting.
            ConflictError: Duplicate rule priority or resource name.
        """
        super().__init__(ID, name, None, opts)

        child_opts = pulumi.ResourceOptions(parent=self)
        names = ResourceNames(name)
        container_port = settings.service.container_port

        # Security boundaries: internet -> ALB on the listener port, ALB -> tasks only.
        self.edge_boundary, self.compute_boundary = build_boundaries(
            settings.listener_port, container_port, name_prefix=name
        )
        boundaries = SecurityBoundaries(
            names.claim("sg"),
            network,
            (self.edge_boundary, self.compute_boundary),
            opts=child_opts,
        )

        # Load-balancing frontend in the public subnets.
        self.load_balancer = aws.lb.LoadBalancer(
            resource_name=names.claim("alb"),
            internal=False,
            load_balancer_type="application",
            security_groups=[boundaries.group_id(self.edge_boundary)],
            subnets=network.subnet_input(RoutingClass.PUBLIC),
            opts=child_opts,
        )

        # Routing target; Fargate tasks register by IP.
        self.target = RoutingTarget(
            name=names.claim("tg"),
            port=container_port,
            health_check=settings.health_check,
        )
        target_group = aws.lb.TargetGroup(
            resource_name=self.target.name,
            port=self.target.port,
            protocol=self.target.protocol,
            target_type=self.target.target_type,
            vpc_id=network.vpc_id,
            health_check=aws.lb.TargetGroupHealthCheckArgs(
                path=self.target.health_check.path,
                interval=self.target.health_check.interval,
            ),
            opts=child_opts,
        )
        self.target.arn = target_group.arn
        service_name = names.claim("service")
        bind_service(self.target, service_name)

        # Identity provider; the ALB receives the authorization code on its callback.
        self.identity = IdentityProvider(
            names.claim("auth"),
            callback_url=pulumi.Output.concat(
                "https://", self.load_balancer.dns_name, "/oauth2/idpresponse"
            ),
            domain_prefix=settings.auth_domain_prefix,
            settings=settings.identity,
            opts=child_opts,
        )

        # Listener model: catch-all forward, gated path on the same target.
        self.listener = Listener(names.claim("listener"), port=settings.listener_port)
        self.listener.add_default_route(self.target)
        self.listener.add_conditional_route(
            settings.secure_priority,
            settings.secure_path_pattern,
            self.identity.auth_gate,
            self.target,
        )

        listener = aws.lb.Listener(
            resource_name=self.listener.name,
            load_balancer_arn=self.load_balancer.arn,
            port=self.listener.port,
            protocol=self.listener.protocol,
            default_actions=listener_default_actions(self.listener),
            opts=child_opts,
        )
        for rule in self.listener.conditional_rules:
            aws.lb.ListenerRule(
                resource_name=names.claim(f"rule-{rule.priority}"),
                listener_arn=listener.arn,
                priority=rule.priority,
                actions=listener_rule_actions(rule),
                conditions=listener_rule_conditions(rule),
                opts=child_opts,
            )

        # Compute service in the private subnets.
        self.service = ContainerService(
            service_name,
            settings.service,
            self.target,
            subnet_ids=network.subnet_input(RoutingClass.PRIVATE_ROUTED),
            security_group_id=boundaries.group_id(self.compute_boundary),
            depends_on=[listener],
            opts=child_opts,
        )

        # Edge distribution in front of the ALB.
        self.edge = build_distribution(
            origin_address=self.load_balancer.dns_name,
            origin_port=settings.origin_port,
            hooks=[StripHeader(header) for header in settings.stripped_headers],
        )
        self.cdn = CdnDistribution(names.claim("edge"), self.edge, opts=child_opts)

        self.alb_dns_name: pulumi.Output[str] = self.load_balancer.dns_name
        self.cloudfront_domain_name: pulumi.Output[str] = self.cdn.domain_name
        self.user_pool_id: pulumi.Output[str] = self.identity.user_pool_id
        self.user_pool_client_id: pulumi.Output[str] = self.identity.client_id
        self.register_outputs(
            {
                "alb_dns_name": self.alb_dns_name,
                "cloudfront_domain_name": self.cloudfront_domain_name,
                "user_pool_id": self.user_pool_id,
                "user_pool_client_id": self.user_pool_client_id,
            }
        )
