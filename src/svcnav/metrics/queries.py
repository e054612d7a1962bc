"""
PromQL query construction.

The core issues a fixed set of query shapes, all scoped to one environment:

- total calls per edge
- successful calls per edge (status in the OK set)
- latency quantile per edge (histogram_quantile over bucket rates)
- per-edge error breakdown by path and status (status outside the OK set)
"""

from enum import StrEnum
from typing import List, NamedTuple, Sequence, Tuple

from ..config import MetricNames, TimeWindow
from ..core.types import EdgeLabels

EDGE_GROUP_BY: Tuple[str, ...] = (
    "executableName",
    "executableGroupName",
    "executableVersion",
    "targetServiceGroupName",
    "targetServiceName",
    "targetServiceVersion",
)

DETAIL_GROUP_BY: Tuple[str, ...] = ("path", "status")


class QueryKind(StrEnum):
    TOTAL = "total"
    OK = "ok"
    QUANTILE = "quantile"
    DETAILS = "details"


class QuerySet(NamedTuple):
    total: str
    ok: str
    quantile: str


def escape_label_value(value: str) -> str:
    """Escape a label value for use inside a double-quoted matcher."""
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def status_regex(statuses: Sequence[str]) -> str:
    return "|".join(escape_label_value(s) for s in statuses)


def _selector(matchers: List[str]) -> str:
    return "{" + ",".join(matchers) + "}"


def _by(labels: Sequence[str]) -> str:
    return "(" + ", ".join(labels) + ")"


class QueryBuilder:
    """
    Builds the query strings for one metric family.
    """

    def __init__(self, metric: MetricNames, ok_statuses: Sequence[str], quantile: float = 0.95):
        self.metric = metric
        self.ok_statuses = list(ok_statuses)
        self.quantile = quantile

    def _env_matcher(self, environment: str) -> str:
        return f'{self.metric.environment_label}="{escape_label_value(environment)}"'

    def _counter(self, matchers: List[str], window: str) -> str:
        series = f"{self.metric.counter}{_selector(matchers)}"
        if self.metric.windowed_counts:
            return f"increase({series}[{window}])"
        return series

    def total(self, environment: str, window: TimeWindow) -> str:
        inner = self._counter([self._env_matcher(environment)], window.rps)
        return f"sum by {_by(EDGE_GROUP_BY)} ({inner})"

    def ok(self, environment: str, window: TimeWindow) -> str:
        matchers = [
            self._env_matcher(environment),
            f'status=~"{status_regex(self.ok_statuses)}"',
        ]
        inner = self._counter(matchers, window.err)
        return f"sum by {_by(EDGE_GROUP_BY)} ({inner})"

    def latency_quantile(self, environment: str, window: TimeWindow) -> str:
        by = _by(("le",) + EDGE_GROUP_BY)
        series = f"{self.metric.bucket}{_selector([self._env_matcher(environment)])}"
        return (
            f"histogram_quantile({self.quantile}, "
            f"sum by {by} (rate({series}[{window.p95}])))"
        )

    def for_environment(self, environment: str, window: TimeWindow) -> QuerySet:
        return QuerySet(
            total=self.total(environment, window),
            ok=self.ok(environment, window),
            quantile=self.latency_quantile(environment, window),
        )

    def edge_errors(self, environment: str, window: TimeWindow, labels: EdgeLabels,
                    relaxed: bool = False) -> str:
        """
        Error breakdown for one edge.

        The exact form filters on every non-empty raw label including
        versions; the relaxed form keeps only group and name fields.
        """
        fields = [
            ("executableGroupName", labels.source_group),
            ("executableName", labels.source_name),
            ("targetServiceGroupName", labels.target_group),
            ("targetServiceName", labels.target_name),
        ]
        if not relaxed:
            fields += [
                ("executableVersion", labels.source_version),
                ("targetServiceVersion", labels.target_version),
            ]

        matchers = [self._env_matcher(environment)]
        matchers += [f'{name}="{escape_label_value(value)}"' for name, value in fields if value]
        matchers.append(f'status!~"{status_regex(self.ok_statuses)}"')
        return f"sum by {_by(DETAIL_GROUP_BY)} ({self._counter(matchers, window.err)})"


def classify_query(promql: str) -> QueryKind:
    """Identify which of the builder's shapes a query string is."""
    if promql.startswith("histogram_quantile("):
        return QueryKind.QUANTILE
    if promql.startswith(f"sum by {_by(DETAIL_GROUP_BY)}"):
        return QueryKind.DETAILS
    if "status=~" in promql:
        return QueryKind.OK
    return QueryKind.TOTAL
