"""
Column Navigator.

Miller-columns drill-down over a graph snapshot. The state is a root list
plus a selection path; column 0 is always the roots and column ``i`` is the
sorted child list of ``path[i - 1]``.

The only transition is a click: clicking node ``n`` in column ``k`` sets the
path to ``path[:k] + [n]``.
"""

import logging
from typing import Callable, List, Optional, Sequence, Tuple

from ..core.exceptions import NodeNotFoundError, SelectionError
from ..core.types import NodeId, ServiceGraph
from .builder import Adjacency, adjacency, roots, sorted_children

logger = logging.getLogger(__name__)

ChildrenOf = Callable[[NodeId], Sequence[NodeId]]
SelectListener = Callable[[NodeId, List[NodeId]], None]


def compute_columns(root_ids: Sequence[NodeId], path: Sequence[NodeId],
                    children_of: ChildrenOf, max_columns: int = 6) -> List[List[NodeId]]:
    """
    Columns for a selection path, capped at ``max_columns``.

    >>> kids = {"r1": ["c1", "c2"], "c2": ["g1"]}
    >>> compute_columns(["r1", "r2"], ["r1", "c2"], lambda n: kids.get(n, []))
    [['r1', 'r2'], ['c1', 'c2'], ['g1']]
    """
    columns: List[List[NodeId]] = [list(root_ids)]
    for parent in path:
        if len(columns) >= max_columns:
            break
        columns.append(list(children_of(parent)))
    return columns[:max_columns]


def truncate_path(path: Sequence[NodeId], column_index: int, node_id: NodeId) -> List[NodeId]:
    """The click transition: keep ``path[:column_index]`` and append the node."""
    return list(path[:column_index]) + [node_id]


class ColumnNavigator:
    """
    Selection state over one graph snapshot.
    """

    def __init__(self, graph: Optional[ServiceGraph] = None, max_columns: int = 6,
                 on_select: Optional[SelectListener] = None):
        if max_columns < 1:
            raise ValueError("max_columns must be at least 1")
        self.max_columns = max_columns
        self.on_select = on_select
        self._graph = ServiceGraph()
        self._roots: List[NodeId] = []
        self._adj: Adjacency = {}
        self._path: List[NodeId] = []
        if graph is not None:
            self.load(graph, keep_selection=False)

    # =========================================================================
    # Snapshot
    # =========================================================================

    @property
    def graph(self) -> ServiceGraph:
        return self._graph

    def load(self, graph: ServiceGraph, keep_selection: bool = True) -> None:
        """
        Swap in a new snapshot.

        With ``keep_selection`` the current path is cut back to its longest
        prefix that is still valid in the new graph; otherwise it is cleared.
        """
        self._graph = graph
        self._roots = roots(graph)
        self._adj = adjacency(graph)
        previous = self._path
        self._path = self._valid_prefix(previous) if keep_selection else []
        if self._path != previous:
            logger.debug("Selection pruned from %s to %s", previous, self._path)

    def _valid_prefix(self, path: Sequence[NodeId]) -> List[NodeId]:
        valid: List[NodeId] = []
        allowed = set(self._roots)
        for node_id in path:
            if node_id not in allowed:
                break
            valid.append(node_id)
            allowed = set(self._adj.get(node_id, []))
        return valid

    # =========================================================================
    # State
    # =========================================================================

    @property
    def roots(self) -> List[NodeId]:
        return list(self._roots)

    @property
    def path(self) -> List[NodeId]:
        return list(self._path)

    def children(self, node_id: NodeId) -> List[NodeId]:
        """Display-ordered children; recomputed from current metrics each call."""
        return sorted_children(self._graph, node_id, self._adj)

    @property
    def columns(self) -> List[List[NodeId]]:
        return compute_columns(self._roots, self._path, self.children, self.max_columns)

    @property
    def selected(self) -> Optional[NodeId]:
        return self._path[-1] if self._path else None

    @property
    def selected_edge(self) -> Optional[Tuple[NodeId, NodeId]]:
        """The parent -> child edge at the end of the path, if any."""
        if len(self._path) < 2:
            return None
        return self._path[-2], self._path[-1]

    def parent_of_column(self, column_index: int) -> Optional[NodeId]:
        if column_index == 0:
            return None
        return self._path[column_index - 1]

    # =========================================================================
    # Transitions
    # =========================================================================

    def select(self, column_index: int, node_id: NodeId) -> List[NodeId]:
        """
        Click ``node_id`` in column ``column_index``.

        Raises SelectionError when the column is not displayed or the node is
        not one of its items.
        """
        columns = self.columns
        if column_index < 0 or column_index >= len(columns):
            raise SelectionError(f"Column {column_index} is not displayed ({len(columns)} columns)")
        if node_id not in columns[column_index]:
            if not self._graph.has_node(node_id):
                raise NodeNotFoundError(node_id)
            raise SelectionError(f"{node_id} is not in column {column_index}")

        self._path = truncate_path(self._path, column_index, node_id)
        if self.on_select:
            self.on_select(node_id, self.path)
        return self.path

    def select_path(self, node_ids: Sequence[NodeId]) -> List[NodeId]:
        """Apply successive clicks, one per column."""
        for column_index, node_id in enumerate(node_ids):
            self.select(column_index, node_id)
        return self.path

    def reset(self) -> None:
        """Back to the root column."""
        self._path = []
