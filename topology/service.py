"""
Fargate service registered into a routing target.

Creates the ECS cluster, a CloudWatch log group, the task execution role, the
task definition and the service. Tasks run in the private subnets with no
public IP, inside the compute security group, and ECS keeps the target group's
registered IPs in sync as tasks come and go.
"""

import json
from dataclasses import dataclass

import pulumi
import pulumi_aws as aws

from topology._helpers import container_definitions
from topology.errors import OrderingError
from topology.routing import RoutingTarget

ID: str = "topology:aws:ContainerService"

EXECUTION_ROLE_POLICY_ARN = (
    "arn:aws:iam::aws:policy/service-role/AmazonECSTaskExecutionRolePolicy"
)


@dataclass(frozen=True)
class ServiceSpec:
    """Container sizing and placement."""

    container_name: str = "nginx"
    image: str = "nginx:stable"
    cpu: int = 512
    memory: int = 1024
    container_port: int = 80
    desired_count: int = 2
    log_retention_days: int = 14


class ContainerService(pulumi.ComponentResource):
    """
    ECS cluster + Fargate task definition + service behind a target group.

    Resources: Cluster, LogGroup, Role, RolePolicyAttachment, TaskDefinition,
    Service.
    """

    def __init__(
        self,
        name: str,
        spec: ServiceSpec,
        target: RoutingTarget,
        subnet_ids: pulumi.Input[list[str]],
        security_group_id: pulumi.Input[str],
        depends_on: list[pulumi.Resource] | None = None,
        opts: pulumi.ResourceOptions | None = None,
    ):
        """
        Args:
            name: Pulumi resource name prefix.
            spec: Container sizing and placement.
            target: Bound routing target whose target group receives the tasks.
            subnet_ids: Private subnets for the tasks.
            security_group_id: Compute boundary security group.
            depends_on: Resources the ECS service must wait for. ECS rejects a
                target group that is not attached to a load balancer yet, so
                pass the listener here.

        Outputs (set on self, registered for the component):
            cluster_name: ECS cluster name.
            service_name: ECS service name.
        """
        if not target.is_bound or target.arn is None:
            raise OrderingError(
                f"Target {target.name} must have a target group and a bound service first"
            )

        super().__init__(ID, name, None, opts)

        child_opts = pulumi.ResourceOptions(parent=self)

        cluster = aws.ecs.Cluster(
            resource_name=f"{name}-cluster",
            opts=child_opts,
        )

        log_group = aws.cloudwatch.LogGroup(
            resource_name=f"{name}-logs",
            retention_in_days=spec.log_retention_days,
            opts=child_opts,
        )

        execution_role = aws.iam.Role(
            resource_name=f"{name}-execution",
            assume_role_policy=json.dumps(
                {
                    "Version": "2012-10-17",
                    "Statement": [
                        {
                            "Effect": "Allow",
                            "Principal": {"Service": "ecs-tasks.amazonaws.com"},
                            "Action": "sts:AssumeRole",
                        }
                    ],
                }
            ),
            opts=child_opts,
        )
        aws.iam.RolePolicyAttachment(
            resource_name=f"{name}-execution-policy",
            role=execution_role.name,
            policy_arn=EXECUTION_ROLE_POLICY_ARN,
            opts=child_opts,
        )

        region = aws.get_region_output(opts=pulumi.InvokeOptions(parent=self))
        definitions = pulumi.Output.all(log_group.name, region.name).apply(
            lambda args: container_definitions(
                name=spec.container_name,
                image=spec.image,
                container_port=spec.container_port,
                log_group_name=args[0],
                region=args[1],
                stream_prefix=spec.container_name,
            )
        )

        task_definition = aws.ecs.TaskDefinition(
            resource_name=f"{name}-task",
            family=name,
            cpu=str(spec.cpu),
            memory=str(spec.memory),
            network_mode="awsvpc",
            requires_compatibilities=["FARGATE"],
            execution_role_arn=execution_role.arn,
            container_definitions=definitions,
            opts=child_opts,
        )

        self.service = aws.ecs.Service(
            resource_name=f"{name}-service",
            cluster=cluster.arn,
            task_definition=task_definition.arn,
            desired_count=spec.desired_count,
            launch_type="FARGATE",
            network_configuration=aws.ecs.ServiceNetworkConfigurationArgs(
                subnets=subnet_ids,
                security_groups=[security_group_id],
                assign_public_ip=False,
            ),
            load_balancers=[
                aws.ecs.ServiceLoadBalancerArgs(
                    target_group_arn=target.arn,
                    container_name=spec.container_name,
                    container_port=spec.container_port,
                )
            ],
            opts=pulumi.ResourceOptions(parent=self, depends_on=depends_on or []),
        )

        self.cluster_name: pulumi.Output[str] = cluster.name
        self.service_name: pulumi.Output[str] = self.service.name
        self.register_outputs(
            {"cluster_name": self.cluster_name, "service_name": self.service_name}
        )
