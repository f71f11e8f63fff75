"""
Stack configuration loaded from pulumi.Config().

Provides a typed, immutable view of stack settings. Settings are read from
Pulumi config (e.g. Pulumi.<stack>.yaml or pulumi config set). project_name
and environment are required; everything else has a default. The network
selectors vpc_id and vpc_name fall back to the VPC_ID and VPC_NAME environment
variables when not set in config. Used by __main__.main() to resolve the
network and size the topology.
"""

import os
from dataclasses import dataclass
from typing import Any, Callable, Mapping

import pulumi


def _require_str(config: pulumi.Config, key: str) -> str:
    return config.require(key)


def _as_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().lower() in ("1", "true", "yes")


def _optional_bool(default: bool) -> Callable[[pulumi.Config, str], bool]:
    def parse(config: pulumi.Config, key: str) -> bool:
        raw = config.get(key)
        return default if raw is None else _as_bool(raw)

    return parse


def _optional_int(default: int) -> Callable[[pulumi.Config, str], int]:
    def parse(config: pulumi.Config, key: str) -> int:
        raw = config.get(key)
        return default if raw is None else int(raw)

    return parse


def _optional_str(default: str | None) -> Callable[[pulumi.Config, str], str | None]:
    def parse(config: pulumi.Config, key: str) -> str | None:
        raw = config.get(key)
        return default if raw is None or not str(raw).strip() else str(raw).strip()

    return parse


def _config_or_env(
    config: pulumi.Config, key: str, environ: Mapping[str, str], env_var: str
) -> str | None:
    # Stack config wins over the process environment.
    value = _optional_str(None)(config, key)
    if value is None:
        value = environ.get(env_var, "").strip() or None
    return value


# (key, parser); parser receives (config, key) and returns value.
_CONFIG_SPEC: list[tuple[str, Callable[[pulumi.Config, str], Any]]] = [
    ("project_name", _require_str),
    ("environment", _require_str),
    ("allow_network_creation", _optional_bool(True)),
    ("subnet_tag_key", _optional_str("network")),
    ("container_name", _optional_str("nginx")),
    ("container_image", _optional_str("nginx:stable")),
    ("cpu", _optional_int(512)),
    ("memory", _optional_int(1024)),
    ("desired_count", _optional_int(2)),
    ("listener_port", _optional_int(8080)),
    ("container_port", _optional_int(80)),
    ("origin_port", _optional_int(8080)),
    ("health_check_path", _optional_str("/")),
    ("health_check_interval", _optional_int(30)),
    ("secure_path_pattern", _optional_str("/secure/*")),
    ("secure_priority", _optional_int(10)),
    ("stripped_header", _optional_str("x-explioit-activate")),
    ("auth_domain_prefix", _optional_str(None)),
]

# (key, environment fallback) for the network selectors.
_NETWORK_SPEC: list[tuple[str, str]] = [
    ("vpc_id", "VPC_ID"),
    ("vpc_name", "VPC_NAME"),
]


@dataclass(frozen=True)
class StackConfig:
    """
    Stack configuration from Pulumi config.

    Attributes:
        project_name: Project name used in resource naming (required).
        environment: Environment label used in resource naming (required).
        allow_network_creation: Create a VPC when neither vpc_id nor vpc_name
            is given (default true).
        subnet_tag_key: Subnet tag whose value ("public" / "private")
            classifies looked-up subnets.
        container_name: Container name and log stream prefix.
        container_image: Container image reference.
        cpu: Fargate task CPU units.
        memory: Fargate task memory in MiB.
        desired_count: Number of running tasks.
        listener_port: Public ALB listener port.
        container_port: Port the container listens on.
        origin_port: Port CloudFront uses to reach the ALB.
        health_check_path: Target group health check path.
        health_check_interval: Health check interval in seconds.
        secure_path_pattern: Path pattern behind the Cognito gate.
        secure_priority: Listener rule priority of the gated path.
        stripped_header: Request header removed at the edge.
        auth_domain_prefix: Cognito hosted domain prefix (random when unset).
        vpc_id: Existing VPC id (config, else VPC_ID).
        vpc_name: Existing VPC Name tag (config, else VPC_NAME).
    """

    project_name: str
    environment: str
    allow_network_creation: bool
    subnet_tag_key: str
    container_name: str
    container_image: str
    cpu: int
    memory: int
    desired_count: int
    listener_port: int
    container_port: int
    origin_port: int
    health_check_path: str
    health_check_interval: int
    secure_path_pattern: str
    secure_priority: int
    stripped_header: str
    auth_domain_prefix: str | None
    vpc_id: str | None
    vpc_name: str | None

    @classmethod
    def from_pulumi_config(
        cls,
        config: pulumi.Config,
        environ: Mapping[str, str] | None = None,
    ) -> "StackConfig":
        """
        Build StackConfig from pulumi.Config(). Keys in _CONFIG_SPEC without a
        default are required; network selectors fall back to the environment.
        """
        environ = os.environ if environ is None else environ
        kwargs = {key: parser(config, key) for key, parser in _CONFIG_SPEC}
        for key, env_var in _NETWORK_SPEC:
            kwargs[key] = _config_or_env(config, key, environ, env_var)
        return cls(**kwargs)
