"""
Construction-time errors raised while composing the topology.

Every error is fatal and never retried: the topology is built in one pass and
there is no partial state to recover into. Platform failures from lookups are
wrapped in PlatformError (or QuotaError) with the original exception chained.
"""


class TopologyError(Exception):
    """Base class for all topology construction errors."""


class ConfigurationError(TopologyError):
    """No viable network strategy, or an invalid setting."""


class NotFoundError(TopologyError):
    """A lookup matched no network (or the network lacks required subnets)."""


class AmbiguousMatchError(NotFoundError):
    """A tag lookup matched more than one network."""


class ConflictError(TopologyError):
    """Duplicate listener priority, re-bound target, or reused resource name."""


class OrderingError(TopologyError):
    """A component was used before its dependency was constructed."""


class PlatformError(TopologyError):
    """Opaque failure surfaced from the cloud platform."""


class QuotaError(PlatformError):
    """The platform refused the request because of a limit."""
