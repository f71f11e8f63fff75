"""
Edge distribution: CloudFront in front of the load balancer.

The distribution has exactly one custom origin, the ALB, addressed by its DNS
name and reached over plain HTTP on a configured port. Viewers are always
redirected to HTTPS, never served on both schemes, because the auth gate
behind the ALB assumes one canonical scheme.

Request mutation hooks run on every viewer request before the origin sees it.
Each hook is a pure function over a header map (so it can be tested in
Python) and renders the equivalent CloudFront Functions statement; the hooks
are compiled, in order, into one ``cloudfront-js-2.0`` handler. The
``domain_name`` output is an ``Output[str]`` for stack exports.
"""

from dataclasses import dataclass
from typing import Iterable, Mapping, Protocol

import pulumi
import pulumi_aws as aws

from topology._helpers import normalize_header_name
from topology.errors import ConfigurationError

ID: str = "topology:aws:CdnDistribution"

REDIRECT_TO_HTTPS = "redirect-to-https"

# Managed "CachingDisabled" cache policy; the origin is a dynamic web service.
CACHING_DISABLED_POLICY_ID = "4135ea2d-6df8-44a3-9df3-4b5a84be39ad"

ALL_METHODS: list[str] = ["GET", "HEAD", "OPTIONS", "PUT", "PATCH", "POST", "DELETE"]

ORIGIN_ID = "alb-origin"

Headers = Mapping[str, str]


class MutationHook(Protocol):
    """A pure header-map rewrite that can also render itself as JavaScript."""

    def __call__(self, headers: Headers) -> dict[str, str]: ...

    def to_js(self) -> str: ...


@dataclass(frozen=True)
class StripHeader:
    """Remove one request header if present; no-op otherwise."""

    name: str

    @property
    def header(self) -> str:
        return normalize_header_name(self.name)

    def __call__(self, headers: Headers) -> dict[str, str]:
        return {
            key: value
            for key, value in headers.items()
            if normalize_header_name(key) != self.header
        }

    def to_js(self) -> str:
        key = self.header.replace("\\", "\\\\").replace("'", "\\'")
        return (
            f"  if (request.headers['{key}']) {{\n"
            f"    delete request.headers['{key}'];\n"
            f"  }}\n"
        )


def apply_hooks(hooks: Iterable[MutationHook], headers: Headers) -> dict[str, str]:
    """Run hooks over the header map in order and return the result."""
    result = dict(headers)
    for hook in hooks:
        result = hook(result)
    return result


def compile_hooks(hooks: Iterable[MutationHook]) -> str:
    """Render the hooks as one CloudFront Functions viewer-request handler."""
    body = "".join(hook.to_js() for hook in hooks)
    return (
        "function handler(event) {\n"
        "  var request = event.request;\n"
        f"{body}"
        "  return request;\n"
        "}\n"
    )


@dataclass(frozen=True)
class EdgeDistribution:
    origin_address: pulumi.Input[str]
    origin_port: int
    viewer_protocol_policy: str
    hooks: tuple[MutationHook, ...]

    @property
    def function_code(self) -> str:
        return compile_hooks(self.hooks)


def build_distribution(
    origin_address: pulumi.Input[str],
    origin_port: int,
    hooks: Iterable[MutationHook] = (),
    viewer_protocol_policy: str = REDIRECT_TO_HTTPS,
) -> EdgeDistribution:
    """
    Declare the edge distribution.

    Raises:
        ConfigurationError: Viewer policy other than redirect-to-https, or an
            invalid origin port.
    """
    if viewer_protocol_policy != REDIRECT_TO_HTTPS:
        raise ConfigurationError(
            f"Viewer protocol policy must be {REDIRECT_TO_HTTPS}, got {viewer_protocol_policy}"
        )
    if not 1 <= origin_port <= 65535:
        raise ConfigurationError(f"Origin port {origin_port} outside 1-65535")
    return EdgeDistribution(origin_address, origin_port, viewer_protocol_policy, tuple(hooks))


class CdnDistribution(pulumi.ComponentResource):
    """
    CloudFront Function (viewer-request hooks) + Distribution with an ALB origin.

    Resources: Function, Distribution. Caching is disabled; every method is
    forwarded.
    """

    def __init__(
        self,
        name: str,
        edge: EdgeDistribution,
        opts: pulumi.ResourceOptions | None = None,
    ):
        """
        Create the function and distribution.

        Args:
            name: Pulumi resource name for the function and distribution.
            edge: Declared distribution (origin, port, policy, hooks).

        Outputs (set on self, registered for the component):
            domain_name: Distribution FQDN.
            url: HTTPS URL of the distribution.
        """
        super().__init__(ID, name, None, opts)

        child_opts = pulumi.ResourceOptions(parent=self)

        function_associations = []
        if edge.hooks:
            self.function = aws.cloudfront.Function(
                resource_name=f"{name}-viewer-request",
                runtime="cloudfront-js-2.0",
                comment=f"Viewer request hooks for {name}",
                code=edge.function_code,
                publish=True,
                opts=child_opts,
            )
            function_associations.append(
                aws.cloudfront.DistributionDefaultCacheBehaviorFunctionAssociationArgs(
                    event_type="viewer-request",
                    function_arn=self.function.arn,
                )
            )

        # The ALB listener is plain HTTP; CloudFront terminates TLS for viewers.
        origins = [
            aws.cloudfront.DistributionOriginArgs(
                domain_name=edge.origin_address,
                origin_id=ORIGIN_ID,
                custom_origin_config=aws.cloudfront.DistributionOriginCustomOriginConfigArgs(
                    http_port=edge.origin_port,
                    https_port=443,
                    origin_protocol_policy="http-only",
                    origin_ssl_protocols=["TLSv1.2"],
                ),
            )
        ]

        default_cache_behavior = aws.cloudfront.DistributionDefaultCacheBehaviorArgs(
            target_origin_id=ORIGIN_ID,
            viewer_protocol_policy=edge.viewer_protocol_policy,
            allowed_methods=ALL_METHODS,
            cached_methods=["GET", "HEAD"],
            cache_policy_id=CACHING_DISABLED_POLICY_ID,
            function_associations=function_associations,
        )

        restrictions = aws.cloudfront.DistributionRestrictionsArgs(
            geo_restriction=aws.cloudfront.DistributionRestrictionsGeoRestrictionArgs(
                restriction_type="none",
            ),
        )

        # No custom domain names, so the default CloudFront certificate serves HTTPS.
        viewer_certificate = aws.cloudfront.DistributionViewerCertificateArgs(
            cloudfront_default_certificate=True,
        )

        self.distribution = aws.cloudfront.Distribution(
            resource_name=f"{name}-cdn",
            enabled=True,
            origins=origins,
            default_cache_behavior=default_cache_behavior,
            restrictions=restrictions,
            viewer_certificate=viewer_certificate,
            opts=child_opts,
        )

        self.domain_name: pulumi.Output[str] = self.distribution.domain_name
        self.url: pulumi.Output[str] = pulumi.Output.concat(
            "https://", self.distribution.domain_name
        )
        self.register_outputs({"domain_name": self.domain_name, "url": self.url})
