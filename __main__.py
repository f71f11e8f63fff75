"""
Gated web service - Pulumi entrypoint.

Resolves the network, then builds the topology on it:

- **Network**: existing VPC by id (vpc_id / VPC_ID), else by Name tag
  (vpc_name / VPC_NAME), else a new two-AZ VPC with one NAT gateway.
- **Topology**: ALB in the public subnets, Fargate service in the private
  subnets reachable only from the ALB, Cognito gate on /secure/*, CloudFront in
  front of the ALB stripping an untrusted header.

Stack exports: alb_dns_name, cloudfront_domain_name, cognito_user_pool_id,
cognito_user_pool_client_id.
"""

import pulumi

from config import StackConfig
from topology import AwsNetworkBackend, NetworkResolver, TopologySettings, WebServiceTopology
from topology.routing import HealthCheck
from topology.service import ServiceSpec


def _component_name(project_name: str, environment: str, prefix: str) -> str:
    return f"{prefix}-{project_name}-{environment}"


def _settings(config: StackConfig) -> TopologySettings:
    return TopologySettings(
        listener_port=config.listener_port,
        origin_port=config.origin_port,
        health_check=HealthCheck(
            path=config.health_check_path,
            interval=config.health_check_interval,
        ),
        secure_path_pattern=config.secure_path_pattern,
        secure_priority=config.secure_priority,
        stripped_headers=(config.stripped_header,),
        auth_domain_prefix=config.auth_domain_prefix,
        service=ServiceSpec(
            container_name=config.container_name,
            image=config.container_image,
            cpu=config.cpu,
            memory=config.memory,
            container_port=config.container_port,
            desired_count=config.desired_count,
        ),
    )


def main():
    """
    Resolve the network, build the topology and export stack outputs.

    Construction errors (topology.errors) propagate so `pulumi up` fails with
    the failing component's message and nothing further is registered.
    """
    config = StackConfig.from_pulumi_config(pulumi.Config())

    def name(prefix: str) -> str:
        return _component_name(config.project_name, config.environment, prefix)

    resolver = NetworkResolver(
        name=name("net"),
        backend=AwsNetworkBackend(subnet_tag_key=config.subnet_tag_key),
        vpc_id=config.vpc_id,
        vpc_name=config.vpc_name,
        allow_create=config.allow_network_creation,
    )
    network = resolver.resolve()

    topology = WebServiceTopology(
        name=name("web"),
        network=network,
        settings=_settings(config),
    )

    for output_name, value in [
        ("alb_dns_name", topology.alb_dns_name),
        ("cloudfront_domain_name", topology.cloudfront_domain_name),
        ("cognito_user_pool_id", topology.user_pool_id),
        ("cognito_user_pool_client_id", topology.user_pool_client_id),
    ]:
        pulumi.export(output_name, value)


if __name__ == "__main__":
    main()
