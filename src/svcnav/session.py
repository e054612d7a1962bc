"""
Navigator Session.

Single-owner view model tying the aggregator, the column navigator and the
edge detail fetcher together.

Overlapping async work is guarded by generations:
- every refresh takes a new generation; a response is applied only if its
  generation is still the latest when it resolves
- every detail fetch records the snapshot generation and the edge it was
  issued for; it is applied only if neither has moved on
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .config import NavigatorConfig, TimeWindow
from .core.exceptions import AggregationError, NodeNotFoundError
from .core.interfaces import IMetricsSource
from .core.types import EdgeId, NodeId, PathErrors, ServiceGraph
from .details.fetcher import EdgeDetailFetcher
from .graph.navigator import ColumnNavigator
from .metrics.aggregator import MetricsAggregator

logger = logging.getLogger(__name__)


@dataclass
class RefreshOutcome:
    generation: int
    applied: bool
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.applied and self.error is None


class NavigatorSession:
    """
    View model for one interactive session over one metrics endpoint.
    """

    def __init__(self, config: NavigatorConfig, source: IMetricsSource,
                 environment: Optional[str] = None, window: Optional[str] = None):
        self.config = config
        self.aggregator = MetricsAggregator(source, config)
        self.fetcher = EdgeDetailFetcher(source, config)
        self.navigator = ColumnNavigator(max_columns=config.max_columns)
        self.environment = config.environment(environment)
        self.window: TimeWindow = config.window(window)

        self.graph: Optional[ServiceGraph] = None
        self.error: Optional[str] = None
        self.loading = False

        self.details: List[PathErrors] = []
        self.details_edge: Optional[EdgeId] = None

        self._generation = 0
        self._snapshot_generation = 0
        self._active_edge: Optional[EdgeId] = None

    @property
    def generation(self) -> int:
        return self._generation

    # =========================================================================
    # Refresh
    # =========================================================================

    async def refresh(self, keep_selection: bool = True) -> RefreshOutcome:
        """
        Rebuild the graph from scratch.

        On failure the previous snapshot stays in place and ``error`` is set.
        ``loading`` is cleared when the latest refresh settles, however it ends.
        """
        self._generation += 1
        generation = self._generation
        self.loading = True
        environment, window = self.environment, self.window

        try:
            try:
                graph = await self.aggregator.fetch(environment, window)
            except AggregationError as e:
                if generation != self._generation:
                    logger.debug("Discarding stale refresh failure (generation %d)", generation)
                    return RefreshOutcome(generation, applied=False)
                logger.error("Refresh failed for %s/%s: %s", environment, window.label, e)
                self.error = str(e)
                return RefreshOutcome(generation, applied=False, error=self.error)

            if generation != self._generation:
                logger.debug("Discarding stale refresh response (generation %d)", generation)
                return RefreshOutcome(generation, applied=False)

            self._apply_snapshot(graph, generation, keep_selection)
            self.error = None
            return RefreshOutcome(generation, applied=True)
        finally:
            if generation == self._generation:
                self.loading = False

    def _apply_snapshot(self, graph: ServiceGraph, generation: int, keep_selection: bool) -> None:
        self.graph = graph
        self._snapshot_generation = generation
        self.fetcher.invalidate()
        self.navigator.load(graph, keep_selection=keep_selection)
        self.details = []
        self.details_edge = None
        self._active_edge = None

    async def set_environment(self, environment: str) -> RefreshOutcome:
        """Switch environment; the selection does not carry over."""
        self.environment = self.config.environment(environment)
        return await self.refresh(keep_selection=False)

    async def set_window(self, label: str) -> RefreshOutcome:
        self.window = self.config.window(label)
        return await self.refresh()

    # =========================================================================
    # Selection and details
    # =========================================================================

    async def select(self, column_index: int, node_id: NodeId) -> List[NodeId]:
        """
        Click a node. When the new path ends in a parent -> child edge its
        error breakdown is fetched.
        """
        path = self.navigator.select(column_index, node_id)
        edge = self.navigator.selected_edge
        if edge is None:
            self._active_edge = None
            self.details = []
            self.details_edge = None
            return path
        await self.open_edge(*edge)
        return path

    async def open_edge(self, source_id: NodeId, target_id: NodeId) -> Optional[List[PathErrors]]:
        """
        Fetch details for one edge. Returns the breakdown if it was applied,
        ``None`` if it was superseded while in flight.
        """
        if self.graph is None:
            raise NodeNotFoundError(source_id)
        edge_id = ServiceGraph.edge_id(source_id, target_id)
        labels = self.graph.raw_labels_by_edge.get(edge_id)
        if labels is None:
            raise NodeNotFoundError(edge_id)

        self._active_edge = edge_id
        snapshot = self._snapshot_generation
        details = await self.fetcher.get_details(edge_id, labels, self.environment, self.window)

        if not self._is_current(edge_id, snapshot):
            logger.debug("Discarding stale details for %s", edge_id)
            return None

        self.details = details
        self.details_edge = edge_id
        return details

    def _is_current(self, edge_id: EdgeId, snapshot: int) -> bool:
        return self._active_edge == edge_id and self._snapshot_generation == snapshot

    def close_edge(self) -> None:
        self._active_edge = None
        self.details = []
        self.details_edge = None

    @property
    def status_line(self) -> str:
        if self.loading:
            return "loading"
        if self.graph is None:
            return "-"
        return f"{self.graph.node_count} nodes / {self.graph.edge_count} edges"

    def edge_for(self, column_index: int, node_id: NodeId) -> Optional[Tuple[NodeId, NodeId]]:
        parent = self.navigator.parent_of_column(column_index)
        return (parent, node_id) if parent else None
