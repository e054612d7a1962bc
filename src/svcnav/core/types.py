"""
Core type definitions for svcnav.

A graph snapshot is a flat, fully-derived value: node ids in first-seen
order, display labels, edge ids in first-seen order, per-edge metrics and the
raw label tuple each edge was first observed with. Everything else (roots,
adjacency, trees, columns) is computed from it.
"""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

NodeId = str
EdgeId = str

# Joins source and target node ids into an edge id.
EDGE_SEPARATOR = "->"


class NodeStatus(StrEnum):
    """Health classification derived from error-rate thresholds."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK = {
    NodeStatus.HEALTHY: 0,
    NodeStatus.DEGRADED: 1,
    NodeStatus.CRITICAL: 2,
}


class Sample(BaseModel):
    """
    One instant-vector element returned by the metrics backend.
    """
    labels: Dict[str, str] = Field(default_factory=dict)
    value: float = 0.0

    model_config = ConfigDict(frozen=True)


class EdgeLabels(BaseModel):
    """
    Raw (trimmed, original casing) label tuple an edge was first seen with.

    Kept so that drill-down queries can filter on exactly the series that
    produced the edge.
    """
    source_group: str = ""
    source_name: str = ""
    source_version: str = ""
    target_group: str = ""
    target_name: str = ""
    target_version: str = ""

    model_config = ConfigDict(frozen=True)

    def relaxed(self) -> "EdgeLabels":
        """Copy without version fields."""
        return self.model_copy(update={"source_version": "", "target_version": ""})


class EdgeMetrics(BaseModel):
    """Derived health signals for a single edge."""
    total: float = 0.0
    ok: float = 0.0
    requests_per_second: float = 0.0
    rps: int = 0
    error_rate: float = 0.0
    p95_latency: Optional[float] = None


class ServiceGraph(BaseModel):
    """
    Immutable graph snapshot produced by the aggregator.
    """
    node_ids: List[NodeId] = Field(default_factory=list)
    node_labels: Dict[NodeId, str] = Field(default_factory=dict)
    edges_seen: List[EdgeId] = Field(default_factory=list)
    metrics_by_edge: Dict[EdgeId, EdgeMetrics] = Field(default_factory=dict)
    raw_labels_by_edge: Dict[EdgeId, EdgeLabels] = Field(default_factory=dict)
    endpoints_by_edge: Dict[EdgeId, Tuple[NodeId, NodeId]] = Field(default_factory=dict)

    @staticmethod
    def edge_id(source_id: NodeId, target_id: NodeId) -> EdgeId:
        return f"{source_id}{EDGE_SEPARATOR}{target_id}"

    def endpoints(self, edge_id: EdgeId) -> Tuple[NodeId, NodeId]:
        """Source and target of an edge; falls back to splitting the id."""
        if edge_id in self.endpoints_by_edge:
            return self.endpoints_by_edge[edge_id]
        source, _, target = edge_id.partition(EDGE_SEPARATOR)
        return source, target

    def label(self, node_id: NodeId) -> str:
        return self.node_labels.get(node_id, node_id)

    def has_node(self, node_id: NodeId) -> bool:
        return node_id in self.node_labels

    def metrics(self, source_id: NodeId, target_id: NodeId) -> Optional[EdgeMetrics]:
        return self.metrics_by_edge.get(self.edge_id(source_id, target_id))

    def find_nodes(self, pattern: str) -> List[NodeId]:
        """Node ids whose id or label contains the pattern (case-insensitive)."""
        needle = pattern.lower()
        return [
            node_id for node_id in self.node_ids
            if needle in node_id or needle in self.label(node_id).lower()
        ]

    @property
    def node_count(self) -> int:
        return len(self.node_ids)

    @property
    def edge_count(self) -> int:
        return len(self.edges_seen)


class PathErrors(BaseModel):
    """Error volume for one request path on one edge, split by status code."""
    path: str
    total_errors: float = 0.0
    by_status: Dict[str, float] = Field(default_factory=dict)


@dataclass(frozen=True)
class NodeRecord:
    """
    Arena entry for a node: everything needed to render it, with children
    referenced by id.
    """
    id: NodeId
    label: str
    status: NodeStatus
    worst_error_rate: float
    throughput_in: float
    child_ids: Tuple[NodeId, ...] = ()


@dataclass(eq=False)
class ServiceNode:
    """
    Materialized tree node.

    A node reachable through several parents is the same instance under each
    of them, so identity comparison is used instead of field equality.
    """
    id: NodeId
    label: str
    status: NodeStatus = NodeStatus.HEALTHY
    throughput_in: float = 0.0
    children: List["ServiceNode"] = field(default_factory=list)

    def to_dict(self, max_depth: int = -1) -> Dict[str, Any]:
        """
        Serialize the subtree. A node already on the current branch is emitted
        as a stub with ``cycle=True`` instead of being expanded again.
        """
        return self._to_dict(max_depth, 0, ())

    def _to_dict(self, max_depth: int, depth: int, ancestors: Tuple[NodeId, ...]) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "label": self.label,
            "status": self.status.value,
            "throughput_in": self.throughput_in,
        }
        if self.id in ancestors:
            data["cycle"] = True
            return data
        if max_depth >= 0 and depth >= max_depth:
            data["children"] = []
            return data
        branch = ancestors + (self.id,)
        data["children"] = [
            child._to_dict(max_depth, depth + 1, branch) for child in self.children
        ]
        return data
