"""Tests for network strategy selection and resolution"""

import pytest

from topology.errors import (
    AmbiguousMatchError,
    ConfigurationError,
    NotFoundError,
    PlatformError,
    QuotaError,
)
from topology.network import (
    ByIdentifier,
    ByTag,
    Created,
    NetworkLayout,
    NetworkResolver,
    RoutingClass,
    SubnetGroup,
    _invoke,
    choose_strategy,
)

EXPECTED_CLASSES = {RoutingClass.PUBLIC, RoutingClass.PRIVATE_ROUTED}


class FakeBackend:
    def __init__(self, vpcs=None, tags=None, subnets=None):
        self.vpcs = set(vpcs or [])
        self.tags = tags or {}
        self.subnets = subnets
        self.calls = []

    def find_by_id(self, vpc_id):
        self.calls.append(("id", vpc_id))
        return [vpc_id] if vpc_id in self.vpcs else []

    def find_by_tag(self, name):
        self.calls.append(("tag", name))
        return list(self.tags.get(name, []))

    def subnet_groups(self, vpc_id):
        if self.subnets is not None:
            return self.subnets
        return (
            SubnetGroup(RoutingClass.PUBLIC, [f"{vpc_id}-pub-a", f"{vpc_id}-pub-b"]),
            SubnetGroup(RoutingClass.PRIVATE_ROUTED, [f"{vpc_id}-prv-a", f"{vpc_id}-prv-b"]),
        )

    def create(self, name, layout):
        self.calls.append(("create", name, layout))
        return "vpc-new", (
            SubnetGroup(RoutingClass.PUBLIC, ["new-pub"]),
            SubnetGroup(RoutingClass.PRIVATE_ROUTED, ["new-prv"]),
        )


class TestChooseStrategy:
    def test_identifier_wins_over_name(self):
        assert choose_strategy("vpc-123", "shared") == ByIdentifier("vpc-123")

    def test_name_when_no_identifier(self):
        assert choose_strategy(None, "shared") == ByTag("shared")

    def test_created_when_nothing_given(self):
        assert choose_strategy(None, None) == Created(NetworkLayout())

    def test_blank_values_count_as_absent(self):
        assert choose_strategy("  ", "") == Created(NetworkLayout())
        assert choose_strategy("", "shared") == ByTag("shared")

    def test_no_strategy_when_creation_disabled(self):
        with pytest.raises(ConfigurationError):
            choose_strategy(None, None, allow_create=False)

    def test_creation_disabled_does_not_affect_lookups(self):
        assert choose_strategy(None, "shared", allow_create=False) == ByTag("shared")

    def test_malformed_identifier_matches_nothing(self):
        with pytest.raises(NotFoundError):
            choose_strategy("subnet-1", None)

    def test_default_layout(self):
        layout = choose_strategy(None, None).layout
        assert layout.max_azs >= 2
        assert layout.nat_gateways == 1
        assert layout.public_cidr_mask == 24
        assert layout.private_cidr_mask == 24


class TestResolveByIdentifier:
    def test_resolves_existing_network(self):
        backend = FakeBackend(vpcs=["vpc-123"])
        handle = NetworkResolver("net", backend, vpc_id="vpc-123").resolve()
        assert handle.vpc_id == "vpc-123"
        assert handle.routing_classes == EXPECTED_CLASSES
        assert handle.strategy == ByIdentifier("vpc-123")

    def test_identifier_wins_over_conflicting_tag(self):
        backend = FakeBackend(vpcs=["vpc-123"], tags={"shared": ["vpc-999"]})
        handle = NetworkResolver("net", backend, vpc_id="vpc-123", vpc_name="shared").resolve()
        assert handle.vpc_id == "vpc-123"
        assert ("tag", "shared") not in backend.calls

    def test_missing_network(self):
        resolver = NetworkResolver("net", FakeBackend(), vpc_id="vpc-404")
        with pytest.raises(NotFoundError):
            resolver.resolve()


class TestResolveByTag:
    def test_single_match(self):
        backend = FakeBackend(tags={"shared": ["vpc-abc"]})
        handle = NetworkResolver("net", backend, vpc_name="shared").resolve()
        assert handle.vpc_id == "vpc-abc"
        assert handle.routing_classes == EXPECTED_CLASSES

    def test_no_match(self):
        resolver = NetworkResolver("net", FakeBackend(), vpc_name="shared")
        with pytest.raises(NotFoundError) as excinfo:
            resolver.resolve()
        assert not isinstance(excinfo.value, AmbiguousMatchError)

    def test_ambiguous_match_is_rejected(self):
        backend = FakeBackend(tags={"shared": ["vpc-b", "vpc-a"]})
        resolver = NetworkResolver("net", backend, vpc_name="shared")
        with pytest.raises(AmbiguousMatchError, match="vpc-a, vpc-b"):
            resolver.resolve()

    def test_ambiguous_match_is_a_not_found_error(self):
        assert issubclass(AmbiguousMatchError, NotFoundError)

    def test_repeated_resolution_is_idempotent(self):
        backend = FakeBackend(tags={"shared": ["vpc-abc"]})
        resolver = NetworkResolver("net", backend, vpc_name="shared")
        assert resolver.resolve() is resolver.resolve()
        assert backend.calls.count(("tag", "shared")) == 1

    def test_independent_resolutions_are_equal(self):
        backend = FakeBackend(tags={"shared": ["vpc-abc"]})
        first = NetworkResolver("net", backend, vpc_name="shared").resolve()
        second = NetworkResolver("net", backend, vpc_name="shared").resolve()
        assert first == second


class TestResolveSubnets:
    def test_network_without_private_subnets(self):
        backend = FakeBackend(
            vpcs=["vpc-123"],
            subnets=(
                SubnetGroup(RoutingClass.PUBLIC, ["pub"]),
                SubnetGroup(RoutingClass.PRIVATE_ROUTED, []),
            ),
        )
        with pytest.raises(NotFoundError, match="private-routed"):
            NetworkResolver("net", backend, vpc_id="vpc-123").resolve()

    def test_subnet_ids_by_class(self):
        handle = NetworkResolver("net", FakeBackend(vpcs=["vpc-1"]), vpc_id="vpc-1").resolve()
        assert handle.subnet_ids(RoutingClass.PUBLIC) == ("vpc-1-pub-a", "vpc-1-pub-b")
        assert handle.subnet_ids(RoutingClass.PRIVATE_ROUTED) == ("vpc-1-prv-a", "vpc-1-prv-b")

    def test_isolated_group_is_not_part_of_handle(self):
        handle = NetworkResolver("net", FakeBackend(vpcs=["vpc-1"]), vpc_id="vpc-1").resolve()
        with pytest.raises(NotFoundError):
            handle.subnet_ids(RoutingClass.ISOLATED)


class TestResolveCreated:
    def test_creates_when_nothing_configured(self):
        backend = FakeBackend()
        handle = NetworkResolver("net", backend).resolve()
        assert handle.vpc_id == "vpc-new"
        assert handle.routing_classes == EXPECTED_CLASSES
        assert backend.calls == [("create", "net", NetworkLayout())]

    def test_creates_only_once(self):
        backend = FakeBackend()
        resolver = NetworkResolver("net", backend)
        resolver.resolve()
        resolver.resolve()
        assert len(backend.calls) == 1

    def test_handle_is_immutable(self):
        handle = NetworkResolver("net", FakeBackend()).resolve()
        with pytest.raises(AttributeError):
            handle.vpc_id = "vpc-other"

    def test_subnet_ids_cannot_be_edited_through_the_handle(self):
        resolver = NetworkResolver("net", FakeBackend(vpcs=["vpc-1"]), vpc_id="vpc-1")
        handle = resolver.resolve()
        with pytest.raises(AttributeError):
            handle.subnet_ids(RoutingClass.PUBLIC).append("subnet-other")
        assert resolver.resolve().subnet_ids(RoutingClass.PUBLIC) == ("vpc-1-pub-a", "vpc-1-pub-b")

    def test_subnet_input_is_a_copy(self):
        handle = NetworkResolver("net", FakeBackend(vpcs=["vpc-1"]), vpc_id="vpc-1").resolve()
        ids = handle.subnet_input(RoutingClass.PUBLIC)
        ids.append("subnet-other")
        assert handle.subnet_ids(RoutingClass.PUBLIC) == ("vpc-1-pub-a", "vpc-1-pub-b")

    def test_subnet_group_freezes_plain_lists(self):
        assert SubnetGroup(RoutingClass.PUBLIC, ["a", "b"]).subnet_ids == ("a", "b")


class TestInvoke:
    def test_wraps_platform_failure(self):
        def fail(**kwargs):
            raise RuntimeError("UnauthorizedOperation")

        with pytest.raises(PlatformError) as excinfo:
            _invoke(fail)
        assert not isinstance(excinfo.value, QuotaError)
        assert isinstance(excinfo.value.__cause__, RuntimeError)

    def test_limit_failure_is_quota_error(self):
        def fail(**kwargs):
            raise RuntimeError("VpcLimitExceeded")

        with pytest.raises(QuotaError):
            _invoke(fail)

    def test_passes_result_through(self):
        assert _invoke(lambda **kwargs: kwargs, a=1) == {"a": 1}
