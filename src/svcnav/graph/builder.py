"""
Graph Builder.

Derives roots, adjacency, node status and the materialized tree from a
``ServiceGraph`` snapshot.

Tree materialization is arena-based: a flat ``id -> NodeRecord`` index is
built first, then ``ServiceNode`` objects are created once per id and wired
together by id lookup. No recursion is involved, so cyclic edge sets cannot
loop, and a node reachable from several parents is the same object under
each of them.
"""

from collections import deque
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import networkx as nx

from ..config import StatusThresholds
from ..core.types import NodeId, NodeRecord, NodeStatus, ServiceGraph, ServiceNode

Adjacency = Dict[NodeId, List[NodeId]]


def to_digraph(graph: ServiceGraph) -> nx.DiGraph:
    """
    Directed view of the snapshot.

    Nodes are inserted in ``node_ids`` order and edges in ``edges_seen``
    order; networkx preserves both for iteration.
    """
    digraph = nx.DiGraph()
    digraph.add_nodes_from(graph.node_ids)
    for edge_id in graph.edges_seen:
        source, target = graph.endpoints(edge_id)
        digraph.add_edge(source, target, edge_id=edge_id)
    return digraph


def roots(graph: ServiceGraph) -> List[NodeId]:
    """Nodes that are never an edge target, in node-id order."""
    digraph = to_digraph(graph)
    return [node_id for node_id in graph.node_ids if digraph.in_degree(node_id) == 0]


def adjacency(graph: ServiceGraph) -> Adjacency:
    """Source -> deduplicated targets, in first-seen order."""
    digraph = to_digraph(graph)
    return {
        node_id: list(digraph.successors(node_id))
        for node_id in graph.node_ids
        if digraph.out_degree(node_id) > 0
    }


def worst_child_error_rate(graph: ServiceGraph, node_id: NodeId,
                           adj: Optional[Adjacency] = None) -> float:
    """Maximum error rate over the node's outgoing edges; 0 for leaves."""
    children = (adj if adj is not None else adjacency(graph)).get(node_id, [])
    worst = 0.0
    for child in children:
        metrics = graph.metrics(node_id, child)
        if metrics and metrics.error_rate > worst:
            worst = metrics.error_rate
    return worst


def status_for_error_rate(error_rate: float, thresholds: Optional[StatusThresholds] = None) -> NodeStatus:
    t = thresholds or StatusThresholds()
    if error_rate > t.critical:
        return NodeStatus.CRITICAL
    if error_rate > t.degraded:
        return NodeStatus.DEGRADED
    return NodeStatus.HEALTHY


def child_sort_key(graph: ServiceGraph, parent: NodeId, child: NodeId) -> Tuple[float, float, str]:
    """Error rate desc, then throughput desc, then label (case-insensitive)."""
    metrics = graph.metrics(parent, child)
    error_rate = metrics.error_rate if metrics else 0.0
    throughput = metrics.requests_per_second if metrics else 0.0
    return (-error_rate, -throughput, graph.label(child).casefold())


def sorted_children(graph: ServiceGraph, parent: NodeId, adj: Optional[Adjacency] = None) -> List[NodeId]:
    children = (adj if adj is not None else adjacency(graph)).get(parent, [])
    return sorted(children, key=lambda child: child_sort_key(graph, parent, child))


def build_index(graph: ServiceGraph, thresholds: Optional[StatusThresholds] = None) -> Dict[NodeId, NodeRecord]:
    """
    Build the flat node arena.

    ``throughput_in`` is the rate of the first parent edge met during a
    breadth-first walk from the roots in display order; roots and nodes only
    reachable through cycles keep 0.
    """
    adj = adjacency(graph)
    ordered = {node_id: tuple(sorted_children(graph, node_id, adj)) for node_id in graph.node_ids}

    throughput: Dict[NodeId, float] = {}
    queue = deque(roots(graph))
    seen = set(queue)
    while queue:
        parent = queue.popleft()
        for child in ordered[parent]:
            if child in seen:
                continue
            seen.add(child)
            metrics = graph.metrics(parent, child)
            throughput[child] = metrics.requests_per_second if metrics else 0.0
            queue.append(child)

    index: Dict[NodeId, NodeRecord] = {}
    for node_id in graph.node_ids:
        worst = worst_child_error_rate(graph, node_id, adj)
        index[node_id] = NodeRecord(
            id=node_id,
            label=graph.label(node_id),
            status=status_for_error_rate(worst, thresholds),
            worst_error_rate=worst,
            throughput_in=throughput.get(node_id, 0.0),
            child_ids=ordered[node_id],
        )
    return index


def build_tree(graph: ServiceGraph, thresholds: Optional[StatusThresholds] = None) -> List[ServiceNode]:
    """Materialize the rooted tree; one ``ServiceNode`` instance per id."""
    index = build_index(graph, thresholds)
    nodes = {
        node_id: ServiceNode(
            id=record.id,
            label=record.label,
            status=record.status,
            throughput_in=record.throughput_in,
        )
        for node_id, record in index.items()
    }
    for node_id, record in index.items():
        nodes[node_id].children = [nodes[child] for child in record.child_ids]
    return [nodes[root] for root in roots(graph)]


@dataclass
class GraphStats:
    total_nodes: int
    total_edges: int
    root_count: int
    leaf_count: int
    has_cycles: bool
    dropped_cycle_nodes: int


def graph_stats(graph: ServiceGraph) -> GraphStats:
    """
    Summary counts. ``dropped_cycle_nodes`` counts nodes that cannot be
    reached from any root, which only happens inside cycles.
    """
    digraph = to_digraph(graph)
    root_ids = [n for n in graph.node_ids if digraph.in_degree(n) == 0]
    reachable = set(root_ids)
    for root in root_ids:
        reachable.update(nx.descendants(digraph, root))

    return GraphStats(
        total_nodes=graph.node_count,
        total_edges=graph.edge_count,
        root_count=len(root_ids),
        leaf_count=sum(1 for n in graph.node_ids if digraph.out_degree(n) == 0),
        has_cycles=not nx.is_directed_acyclic_graph(digraph),
        dropped_cycle_nodes=graph.node_count - len(reachable),
    )
