"""
Cognito identity provider for the load balancer's authentication gate.

Creates a user pool with self-service sign-up and code-style email
verification, a public app client (no secret, Cognito directory only, no
federated providers) and a hosted domain. The hosted domain prefix must be
unique across the whole Cognito region, so it is either given explicitly or
derived from the stack name plus a random suffix that Pulumi persists in
state; it is never derived from the account id.
"""

from dataclasses import dataclass

import pulumi
import pulumi_aws as aws
import pulumi_random as random

from topology._helpers import sanitize_domain_prefix
from topology.errors import ConfigurationError
from topology.routing import AuthGate

ID: str = "topology:aws:IdentityProvider"

DOMAIN_SUFFIX_LENGTH = 6

# Used when the component name sanitizes to nothing.
DEFAULT_DOMAIN_BASE = "auth"


@dataclass(frozen=True)
class IdentitySettings:
    """
    Directory and client settings.

    Attributes:
        email_subject: Verification email subject.
        email_message: Verification email body; must contain "{####}".
        self_sign_up: Whether users may register themselves.
        oauth_scopes: Scopes the load balancer requests.
        identity_providers: Sign-in mechanisms the client accepts.
    """

    email_subject: str = "Verify your email for our app"
    email_message: str = "Hello, verify your email: {####}"
    self_sign_up: bool = True
    oauth_scopes: tuple[str, ...] = ("openid", "email")
    identity_providers: tuple[str, ...] = ("COGNITO",)

    def __post_init__(self):
        if "{####}" not in self.email_message:
            raise ConfigurationError("Verification message must contain the {####} code")
        if tuple(self.identity_providers) != ("COGNITO",):
            raise ConfigurationError("Only the COGNITO identity provider is supported")


class IdentityProvider(pulumi.ComponentResource):
    """
    User pool, public client and hosted domain.

    Resources: UserPool, UserPoolClient, UserPoolDomain and, when no domain
    prefix is given, a RandomString suffix.
    """

    def __init__(
        self,
        name: str,
        callback_url: pulumi.Input[str],
        domain_prefix: str | None = None,
        settings: IdentitySettings = IdentitySettings(),
        opts: pulumi.ResourceOptions | None = None,
    ):
        """
        Create the user pool, client and hosted domain.

        Args:
            name: Pulumi resource name; also the base of a derived domain
                prefix.
            callback_url: OAuth callback the load balancer receives the code on
                (``<frontend>/oauth2/idpresponse``).
            domain_prefix: Explicit hosted domain prefix. When None, a random
                suffix is appended to ``name``.
            settings: Directory and client settings.

        Outputs (set on self, registered for the component):
            user_pool_id: Directory identifier.
            user_pool_arn: Directory ARN (used by the listener action).
            client_id: App client identifier.
            domain: Hosted domain prefix.
        """
        super().__init__(ID, name, None, opts)

        child_opts = pulumi.ResourceOptions(parent=self)

        self.user_pool = aws.cognito.UserPool(
            resource_name=f"{name}-users",
            admin_create_user_config=aws.cognito.UserPoolAdminCreateUserConfigArgs(
                allow_admin_create_user_only=not settings.self_sign_up,
            ),
            username_attributes=["email"],
            auto_verified_attributes=["email"],
            verification_message_template=aws.cognito.UserPoolVerificationMessageTemplateArgs(
                default_email_option="CONFIRM_WITH_CODE",
                email_subject=settings.email_subject,
                email_message=settings.email_message,
            ),
            opts=child_opts,
        )

        self.client = aws.cognito.UserPoolClient(
            resource_name=f"{name}-client",
            user_pool_id=self.user_pool.id,
            generate_secret=False,
            supported_identity_providers=list(settings.identity_providers),
            allowed_oauth_flows_user_pool_client=True,
            allowed_oauth_flows=["code"],
            allowed_oauth_scopes=list(settings.oauth_scopes),
            callback_urls=[callback_url],
            opts=child_opts,
        )

        if domain_prefix:
            prefix: pulumi.Input[str] = sanitize_domain_prefix(domain_prefix)
            if not prefix:
                raise ConfigurationError(f"Unusable hosted domain prefix {domain_prefix!r}")
        else:
            pulumi.log.warn(
                f"No auth_domain_prefix configured; deriving a random hosted domain for {name}"
            )
            suffix = random.RandomString(
                resource_name=f"{name}-domain-suffix",
                length=DOMAIN_SUFFIX_LENGTH,
                special=False,
                upper=False,
                opts=child_opts,
            )
            base = (
                sanitize_domain_prefix(name, max_len=63 - DOMAIN_SUFFIX_LENGTH - 1)
                or DEFAULT_DOMAIN_BASE
            )
            prefix = suffix.result.apply(lambda value: f"{base}-{value}")

        self.user_pool_domain = aws.cognito.UserPoolDomain(
            resource_name=f"{name}-domain",
            domain=prefix,
            user_pool_id=self.user_pool.id,
            opts=child_opts,
        )

        self.user_pool_id: pulumi.Output[str] = self.user_pool.id
        self.user_pool_arn: pulumi.Output[str] = self.user_pool.arn
        self.client_id: pulumi.Output[str] = self.client.id
        self.domain: pulumi.Output[str] = self.user_pool_domain.domain
        self.register_outputs(
            {
                "user_pool_id": self.user_pool_id,
                "user_pool_arn": self.user_pool_arn,
                "client_id": self.client_id,
                "domain": self.domain,
            }
        )

    @property
    def auth_gate(self) -> AuthGate:
        return AuthGate(
            user_pool_arn=self.user_pool_arn,
            user_pool_client_id=self.client_id,
            user_pool_domain=self.domain,
        )
