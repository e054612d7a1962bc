"""
Exception hierarchy for svcnav.

Aggregation-level failures propagate to the caller of a refresh. Per-sample
and per-edge-detail failures are recovered locally and never raise these.
"""

from typing import Optional


class SvcnavError(Exception):
    """Base class for all svcnav errors."""


class ConfigError(SvcnavError):
    """Invalid configuration or unknown environment/window name."""


class MetricsBackendError(SvcnavError):
    """
    The metrics backend could not answer a query.

    Raised for transport failures, non-success HTTP statuses, malformed
    payloads and backend-reported errors.
    """

    def __init__(self, message: str, query: Optional[str] = None):
        super().__init__(message)
        self.query = query


class AggregationError(MetricsBackendError):
    """A required aggregate query (total or success) failed."""


class NodeNotFoundError(SvcnavError):
    """A node id is not part of the current graph snapshot."""

    def __init__(self, node_id: str):
        super().__init__(f"Node not found: {node_id}")
        self.node_id = node_id


class SelectionError(SvcnavError):
    """An invalid navigator transition was requested."""
