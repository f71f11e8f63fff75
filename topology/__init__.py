"""
Gated web service topology components.

Each concern is encapsulated in its own module for clear ownership,
testability, and reuse. Use from the Pulumi entrypoint (e.g. __main__.py) with
config and output chaining:

- **NetworkResolver**: picks the VPC by id, by Name tag, or creates one;
  returns a read-only NetworkHandle.
- **WebServiceTopology**: security boundaries, ALB, Fargate service, Cognito
  auth gate on a path, CloudFront in front; exposes alb_dns_name,
  cloudfront_domain_name, user_pool_id and user_pool_client_id.
"""

from topology.network import AwsNetworkBackend, NetworkHandle, NetworkResolver
from topology.web_service import TopologySettings, WebServiceTopology

__all__ = [
    "AwsNetworkBackend",
    "NetworkHandle",
    "NetworkResolver",
    "TopologySettings",
    "WebServiceTopology",
]
