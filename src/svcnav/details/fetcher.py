"""
Edge Detail Fetcher.

On-demand drill-down for one edge: which request paths and status codes are
producing its errors.

The exact label tuple (versions included) is tried first. When it yields
nothing, the query is retried without version fields, since low-traffic
version-pinned series are often absent while the unversioned aggregate
exists. Results are cached per edge until ``invalidate()`` is called for a
new graph snapshot.
"""

import logging
import math
from typing import Dict, List

from ..config import NavigatorConfig, TimeWindow
from ..core.exceptions import MetricsBackendError
from ..core.interfaces import IMetricsSource
from ..core.types import EdgeId, EdgeLabels, PathErrors, Sample
from ..metrics.queries import QueryBuilder

logger = logging.getLogger(__name__)

UNKNOWN_PATH = "(unknown)"
UNKNOWN_STATUS = "(unknown)"


def _has_data(samples: List[Sample]) -> bool:
    return any(math.isfinite(s.value) and s.value != 0 for s in samples)


def summarize_errors(samples: List[Sample]) -> List[PathErrors]:
    """
    Sum error counts per path with a per-status breakdown.

    Paths are ordered by total errors descending, then by path.
    """
    rows: Dict[str, PathErrors] = {}
    for sample in samples:
        if not math.isfinite(sample.value) or sample.value == 0:
            continue
        path = sample.labels.get("path") or UNKNOWN_PATH
        status = sample.labels.get("status") or UNKNOWN_STATUS
        row = rows.setdefault(path, PathErrors(path=path))
        row.total_errors += sample.value
        row.by_status[status] = row.by_status.get(status, 0.0) + sample.value

    return sorted(rows.values(), key=lambda r: (-r.total_errors, r.path))


class EdgeDetailFetcher:
    """
    Per-edge error breakdown with exact-then-relaxed matching.
    """

    def __init__(self, source: IMetricsSource, config: NavigatorConfig):
        self.source = source
        self.queries = QueryBuilder(config.metric, config.ok_statuses, config.quantile)
        self._cache: Dict[EdgeId, List[PathErrors]] = {}
        self._epoch = 0

    def invalidate(self) -> None:
        """Drop every cached breakdown (new graph snapshot)."""
        self._cache.clear()
        self._epoch += 1

    def cached(self, edge_id: EdgeId) -> bool:
        return edge_id in self._cache

    async def get_details(self, edge_id: EdgeId, labels: EdgeLabels, environment: str,
                          window: TimeWindow) -> List[PathErrors]:
        """
        Breakdown for one edge. A backend failure is logged and returns an
        empty list, which is not cached.
        """
        if edge_id in self._cache:
            return self._cache[edge_id]
        epoch = self._epoch

        try:
            samples = await self.source.query(self.queries.edge_errors(environment, window, labels))
            if not _has_data(samples):
                logger.debug("No exact-match error series for %s, retrying relaxed", edge_id)
                samples = await self.source.query(
                    self.queries.edge_errors(environment, window, labels, relaxed=True)
                )
        except MetricsBackendError as e:
            logger.warning("Failed to fetch details for %s: %s", edge_id, e)
            return []

        details = summarize_errors(samples)
        # a fetch that straddles invalidate() belongs to the old snapshot
        if epoch == self._epoch:
            self._cache[edge_id] = details
        return details
