"""
Routing targets, service binding and the listener rule engine.

A listener holds one default rule and any number of path-matched rules with
unique priorities. Rules are evaluated in ascending priority; the first match
wins and the default rule catches everything else. A rule's action is either
a plain ``Forward`` or an ``AuthenticateThenForward`` composite, so whether a
path requires sign-in is a property of the data rather than of the code that
built it. Both variants forward to the same ``RoutingTarget``; gating a subset
of paths never duplicates the target.

The model is plain Python and can be evaluated without a Pulumi runtime.
``listener_default_actions`` and ``listener_rule_actions`` translate it into
``aws.lb`` arguments when the topology is materialized.
"""

from dataclasses import dataclass, field

import pulumi
import pulumi_aws as aws

from topology._helpers import path_matches
from topology.errors import ConfigurationError, ConflictError, OrderingError

MIN_PRIORITY = 1
MAX_PRIORITY = 50000


@dataclass(frozen=True)
class HealthCheck:
    path: str = "/"
    interval: int = 30


@dataclass(eq=False)
class RoutingTarget:
    """
    A target group of task IPs behind one health-check contract.

    ``arn`` is filled in when the target group resource exists; ``service``
    is filled in once by ``bind_service``.
    """

    name: str
    port: int
    protocol: str = "HTTP"
    health_check: HealthCheck = field(default_factory=HealthCheck)
    target_type: str = "ip"
    arn: pulumi.Input[str] | None = None
    service: str | None = None

    @property
    def is_bound(self) -> bool:
        return self.service is not None


def bind_service(target: RoutingTarget, service: str) -> None:
    """
    Bind a compute service to the target. A target serves exactly one service.

    Raises:
        ConflictError: The target is already bound.
    """
    if target.service is not None:
        raise ConflictError(
            f"Target {target.name} is already bound to service {target.service}"
        )
    target.service = service


@dataclass(frozen=True)
class AuthGate:
    user_pool_arn: pulumi.Input[str]
    user_pool_client_id: pulumi.Input[str]
    user_pool_domain: pulumi.Input[str]


@dataclass(frozen=True)
class Forward:
    target: RoutingTarget

    @property
    def requires_authentication(self) -> bool:
        return False


@dataclass(frozen=True)
class AuthenticateThenForward:
    """Authenticate through the gate; only then forward. Failure never forwards."""

    gate: AuthGate
    forward: Forward

    @property
    def requires_authentication(self) -> bool:
        return True

    @property
    def target(self) -> RoutingTarget:
        return self.forward.target


Action = Forward | AuthenticateThenForward


@dataclass(frozen=True)
class PathCondition:
    patterns: tuple[str, ...]

    def matches(self, path: str) -> bool:
        return any(path_matches(pattern, path) for pattern in self.patterns)


@dataclass(frozen=True)
class RoutingRule:
    priority: int | None
    condition: PathCondition | None
    action: Action

    @property
    def is_default(self) -> bool:
        return self.condition is None


class Listener:
    """
    Ordered rule set of one load-balancer listener.

    Usage:
        listener = Listener("http", port=8080)
        listener.add_default_route(target)
        listener.add_conditional_route(10, "/secure/*", gate, target)
        listener.evaluate("/secure/page").action.requires_authentication  # True
    """

    def __init__(self, name: str, port: int, protocol: str = "HTTP") -> None:
        self.name = name
        self.port = port
        self.protocol = protocol
        self._default: RoutingRule | None = None
        self._conditional: dict[int, RoutingRule] = {}

    def add_default_route(self, target: RoutingTarget) -> RoutingRule:
        """
        Set the catch-all forward. A listener has exactly one.

        Raises:
            OrderingError: The target has no service bound yet.
            ConflictError: A default route already exists.
        """
        _require_bound(target)
        if self._default is not None:
            raise ConflictError(f"Listener {self.name} already has a default route")
        self._default = RoutingRule(None, None, Forward(target))
        return self._default

    def add_conditional_route(
        self,
        priority: int,
        path_pattern: str,
        auth_gate: AuthGate | None,
        target: RoutingTarget,
    ) -> RoutingRule:
        """
        Add a path-matched route, optionally gated by authentication.

        Args:
            priority: Unique priority within the listener (1-50000; lower is
                evaluated first).
            path_pattern: ALB path pattern, e.g. "/secure/*".
            auth_gate: When given, the action authenticates before forwarding.
            target: Bound routing target to forward to.

        Raises:
            ConfigurationError: Priority out of range or empty path pattern.
            OrderingError: The target has no service bound yet.
            ConflictError: Another rule already uses this priority.
        """
        validate_route(priority, path_pattern)
        _require_bound(target)
        if priority in self._conditional:
            raise ConflictError(
                f"Listener {self.name} already has a rule at priority {priority}"
            )

        action: Action = Forward(target)
        if auth_gate is not None:
            action = AuthenticateThenForward(auth_gate, action)
        rule = RoutingRule(priority, PathCondition((path_pattern,)), action)
        self._conditional[priority] = rule
        return rule

    @property
    def default_rule(self) -> RoutingRule:
        if self._default is None:
            raise ConfigurationError(f"Listener {self.name} has no default route")
        return self._default

    @property
    def conditional_rules(self) -> tuple[RoutingRule, ...]:
        return tuple(self._conditional[priority] for priority in sorted(self._conditional))

    @property
    def rules(self) -> tuple[RoutingRule, ...]:
        """Conditional rules in evaluation order, then the default rule."""
        return self.conditional_rules + (self.default_rule,)

    def evaluate(self, path: str) -> RoutingRule:
        """Return the rule a request for ``path`` resolves to."""
        for rule in self.conditional_rules:
            if rule.condition is not None and rule.condition.matches(path):
                return rule
        return self.default_rule


def validate_route(priority: int, path_pattern: str) -> None:
    """Reject a rule priority or path pattern the load balancer would refuse."""
    if isinstance(priority, bool) or not isinstance(priority, int):
        raise ConfigurationError(f"Rule priority must be an integer, got {priority!r}")
    if not MIN_PRIORITY <= priority <= MAX_PRIORITY:
        raise ConfigurationError(
            f"Rule priority {priority} outside {MIN_PRIORITY}-{MAX_PRIORITY}"
        )
    if not path_pattern:
        raise ConfigurationError("Path pattern must not be empty")


def _require_bound(target: RoutingTarget) -> None:
    if not target.is_bound:
        raise OrderingError(
            f"Target {target.name} must be bound to a service before routes reference it"
        )


def _target_arn(target: RoutingTarget) -> pulumi.Input[str]:
    if target.arn is None:
        raise OrderingError(f"Target {target.name} has no target group yet")
    return target.arn


def listener_default_actions(listener: Listener) -> list[aws.lb.ListenerDefaultActionArgs]:
    """Default actions for the aws.lb.Listener: forward to the default target."""
    action = listener.default_rule.action
    return [
        aws.lb.ListenerDefaultActionArgs(
            type="forward",
            target_group_arn=_target_arn(action.target),
        )
    ]


def listener_rule_actions(rule: RoutingRule) -> list[aws.lb.ListenerRuleActionArgs]:
    """
    Actions for one aws.lb.ListenerRule.

    Authenticate-then-forward becomes two ordered actions: authenticate-cognito
    (order 1) then forward (order 2) on the same target group.
    """
    action = rule.action
    target_group_arn = _target_arn(action.target)
    if not isinstance(action, AuthenticateThenForward):
        return [aws.lb.ListenerRuleActionArgs(type="forward", target_group_arn=target_group_arn)]
    return [
        aws.lb.ListenerRuleActionArgs(
            type="authenticate-cognito",
            order=1,
            authenticate_cognito=aws.lb.ListenerRuleActionAuthenticateCognitoArgs(
                user_pool_arn=action.gate.user_pool_arn,
                user_pool_client_id=action.gate.user_pool_client_id,
                user_pool_domain=action.gate.user_pool_domain,
            ),
        ),
        aws.lb.ListenerRuleActionArgs(
            type="forward",
            order=2,
            target_group_arn=target_group_arn,
        ),
    ]


def listener_rule_conditions(rule: RoutingRule) -> list[aws.lb.ListenerRuleConditionArgs]:
    if rule.condition is None:
        raise ConfigurationError("The default rule has no conditions")
    return [
        aws.lb.ListenerRuleConditionArgs(
            path_pattern=aws.lb.ListenerRuleConditionPathPatternArgs(
                values=list(rule.condition.patterns),
            )
        )
    ]
