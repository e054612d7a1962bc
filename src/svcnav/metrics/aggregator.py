"""
Metrics Aggregator.

Issues the total / success / latency-quantile queries for one environment
concurrently and folds the three result vectors into a ``ServiceGraph``.

Merge rules:
- every sample with a resolvable identity registers its edge and nodes,
  whichever vector it came from
- node labels and raw edge labels are first-write-wins
- total and success counts are summed across series of the same edge
- latency takes the worst (max) quantile across series of the same edge
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..config import NavigatorConfig, TimeWindow
from ..core.exceptions import AggregationError, MetricsBackendError
from ..core.identity import resolve_edge
from ..core.interfaces import IMetricsSource
from ..core.result import Err, Ok, Result
from ..core.types import EdgeId, EdgeLabels, EdgeMetrics, NodeId, Sample, ServiceGraph
from .queries import QueryBuilder

logger = logging.getLogger(__name__)


@dataclass
class QueryResults:
    """Raw vectors for one refresh. ``quantile`` is empty when unavailable."""
    total: List[Sample]
    ok: List[Sample]
    quantile: List[Sample] = field(default_factory=list)


def compute_error_rate(total: float, ok: Optional[float]) -> float:
    """
    Error ratio clamped to [0, 1].

    A missing success count means zero successes.
    """
    if total <= 0:
        return 0.0
    errors = max(0.0, total - (ok or 0.0))
    return min(1.0, max(0.0, errors / total))


class _GraphAccumulator:
    """Mutable working state for one aggregation pass."""

    def __init__(self, lowercase_source_label: bool):
        self.lowercase_source_label = lowercase_source_label
        self.nodes: Dict[NodeId, None] = {}
        self.labels: Dict[NodeId, str] = {}
        self.edges: Dict[EdgeId, None] = {}
        self.endpoints: Dict[EdgeId, tuple] = {}
        self.raw: Dict[EdgeId, EdgeLabels] = {}
        self.totals: Dict[EdgeId, float] = {}
        self.oks: Dict[EdgeId, float] = {}
        self.latencies: Dict[EdgeId, float] = {}
        self.dropped = 0

    def _register(self, sample: Sample) -> Optional[EdgeId]:
        identity = resolve_edge(sample.labels, self.lowercase_source_label)
        if identity is None:
            self.dropped += 1
            logger.debug("Dropping sample without identity: %s", sample.labels)
            return None

        edge_id = identity.edge_id
        self.edges.setdefault(edge_id, None)
        self.endpoints.setdefault(edge_id, (identity.source_id, identity.target_id))
        self.raw.setdefault(edge_id, identity.labels)
        self.nodes.setdefault(identity.source_id, None)
        self.nodes.setdefault(identity.target_id, None)
        self.labels.setdefault(identity.source_id, identity.source_label)
        self.labels.setdefault(identity.target_id, identity.target_label)
        return edge_id

    def add_counts(self, samples: List[Sample], sink: Dict[EdgeId, float]) -> None:
        for sample in samples:
            edge_id = self._register(sample)
            if edge_id is None or not math.isfinite(sample.value):
                continue
            sink[edge_id] = sink.get(edge_id, 0.0) + sample.value

    def add_latencies(self, samples: List[Sample]) -> None:
        for sample in samples:
            edge_id = self._register(sample)
            if edge_id is None or not math.isfinite(sample.value):
                continue
            previous = self.latencies.get(edge_id)
            self.latencies[edge_id] = sample.value if previous is None else max(previous, sample.value)

    def build(self, window_seconds: float) -> ServiceGraph:
        metrics: Dict[EdgeId, EdgeMetrics] = {}
        for edge_id in self.edges:
            total = self.totals.get(edge_id, 0.0)
            ok = self.oks.get(edge_id)
            rps = total / window_seconds
            metrics[edge_id] = EdgeMetrics(
                total=total,
                ok=ok or 0.0,
                requests_per_second=rps,
                rps=round(rps),
                error_rate=compute_error_rate(total, ok),
                p95_latency=self.latencies.get(edge_id),
            )

        if self.dropped:
            logger.debug("Dropped %d samples without a resolvable identity", self.dropped)

        return ServiceGraph(
            node_ids=list(self.nodes),
            node_labels=dict(self.labels),
            edges_seen=list(self.edges),
            metrics_by_edge=metrics,
            raw_labels_by_edge=dict(self.raw),
            endpoints_by_edge=dict(self.endpoints),
        )


def aggregate(results: QueryResults, window_seconds: float = 60.0,
              lowercase_source_label: bool = False) -> ServiceGraph:
    """
    Fold raw query vectors into a graph snapshot.

    Pure function: the same vectors always produce the same graph.
    """
    acc = _GraphAccumulator(lowercase_source_label)
    acc.add_counts(results.total, acc.totals)
    acc.add_counts(results.ok, acc.oks)
    acc.add_latencies(results.quantile)
    return acc.build(window_seconds)


class MetricsAggregator:
    """
    Fetches the aggregate vectors for an environment and builds the graph.
    """

    def __init__(self, source: IMetricsSource, config: NavigatorConfig):
        self.source = source
        self.config = config
        self.queries = QueryBuilder(config.metric, config.ok_statuses, config.quantile)

    async def _optional(self, promql: str) -> Result[List[Sample], MetricsBackendError]:
        try:
            return Ok(await self.source.query(promql))
        except MetricsBackendError as e:
            return Err(e)

    async def fetch_results(self, environment: str, window: TimeWindow) -> QueryResults:
        """
        Run the three queries concurrently.

        Raises AggregationError if the total or success query fails. A failed
        quantile query only costs the latency figures.
        """
        queries = self.queries.for_environment(environment, window)
        total, ok, quantile = await asyncio.gather(
            self.source.query(queries.total),
            self.source.query(queries.ok),
            self._optional(queries.quantile),
            return_exceptions=True,
        )

        for name, outcome in (("total", total), ("success", ok)):
            if isinstance(outcome, MetricsBackendError):
                raise AggregationError(f"{name} query failed: {outcome}", query=outcome.query) from outcome
            if isinstance(outcome, BaseException):
                raise outcome

        if isinstance(quantile, BaseException):
            raise quantile
        if quantile.is_err():
            logger.warning("Latency query failed, continuing without latency: %s", quantile.error)

        return QueryResults(total=total, ok=ok, quantile=quantile.unwrap_or([]))

    async def fetch(self, environment: str, window: TimeWindow) -> ServiceGraph:
        """Fetch and aggregate a full graph snapshot."""
        results = await self.fetch_results(environment, window)
        if self.config.metric.windowed_counts:
            divisor = float(window.rps_seconds)
        else:
            divisor = self.config.window_seconds

        graph = aggregate(results, divisor, self.config.lowercase_source_labels)
        logger.debug(
            "Aggregated %s/%s: %d nodes, %d edges",
            environment, window.label, graph.node_count, graph.edge_count,
        )
        return graph
