"""
Demo Manager - Serves a small example service mesh without a backend.

Provides an in-memory metrics source that answers the navigator's query
shapes from canned vectors, so the CLI can be tried without Prometheus and
tests can drive the full pipeline.
"""

import logging
import re
from typing import Dict, Iterable, List, Optional, Tuple

from .exceptions import MetricsBackendError
from .types import Sample
from ..metrics.queries import QueryKind, classify_query

logger = logging.getLogger(__name__)

_TARGET_MATCHER = re.compile(r'targetServiceName="([^"]*)"')
_VERSION_MATCHER = re.compile(r'(?:executableVersion|targetServiceVersion)="')


class StaticMetricsSource:
    """
    Answers queries from canned vectors keyed by query kind.

    Detail vectors are keyed by target service name; ``relaxed_details``
    entries are only returned for queries without version matchers.
    ``failures`` lists query kinds that raise MetricsBackendError.
    """

    def __init__(
        self,
        vectors: Optional[Dict[QueryKind, List[Sample]]] = None,
        details: Optional[Dict[str, List[Sample]]] = None,
        relaxed_details: Optional[Dict[str, List[Sample]]] = None,
        failures: Iterable[QueryKind] = (),
    ):
        self.vectors = vectors or {}
        self.details = details or {}
        self.relaxed_details = relaxed_details or {}
        self.failures = set(failures)
        self.queries: List[str] = []

    async def query(self, promql: str) -> List[Sample]:
        self.queries.append(promql)
        kind = classify_query(promql)
        if kind in self.failures:
            raise MetricsBackendError(f"{kind} query unavailable", query=promql)

        if kind is not QueryKind.DETAILS:
            return list(self.vectors.get(kind, []))

        match = _TARGET_MATCHER.search(promql)
        target = match.group(1) if match else ""
        if _VERSION_MATCHER.search(promql):
            return list(self.details.get(target, []))
        return list(self.relaxed_details.get(target, []))


def _edge(src_group: str, src: str, src_ver: str, tgt: str, tgt_ver: str) -> Dict[str, str]:
    return {
        "executableGroupName": src_group,
        "executableName": src,
        "executableVersion": src_ver,
        "targetServiceName": tgt,
        "targetServiceVersion": tgt_ver,
    }


class DemoManager:
    """
    Builds the demo mesh.

    Services call each other through the proxy; the caller group of a
    downstream hop is ``default`` so that chains connect.
    """

    # (source group, source, source version, target, target version, total, ok, p95 ms)
    EDGES: Tuple[Tuple[str, str, str, str, str, float, float, float], ...] = (
        ("Edge", "Gateway", "3.1", "auth-service", "1.4.2", 1800, 1710, 42),
        ("Edge", "Gateway", "3.1", "billing-service", "2.0", 900, 900, 88),
        ("default", "auth-service", "1.4.2", "postgres-auth", "14", 3000, 3000, 4),
        ("default", "auth-service", "1.4.2", "rabbitmq-auth", "3.12.1", 7200, 7180, 7),
        ("default", "billing-service", "2.0", "postgres-billing", "14", 2400, 2400, 5),
        ("default", "billing-service", "2.0", "payments-adapter", "0.9", 120, 90, 610),
        ("Reporting", "reporting", "1", "aggregator", "1.1", 1500, 1500, 120),
        ("Reporting", "reporting", "1", "etl-jobs", "", 600, 588, 950),
    )

    # target -> [(path, status, count)]
    ERRORS: Dict[str, Tuple[Tuple[str, str, float], ...]] = {
        "auth-service": (("/token", "500", 60), ("/token", "503", 10), ("/userinfo", "401", 20)),
        "payments-adapter": (("/charge", "502", 25), ("/refund", "500", 5)),
        "rabbitmq-auth": (("/publish", "504", 20),),
        "etl-jobs": (("/run", "500", 12),),
    }

    def build_vectors(self) -> Dict[QueryKind, List[Sample]]:
        total, ok, p95 = [], [], []
        for src_group, src, src_ver, tgt, tgt_ver, count, ok_count, latency in self.EDGES:
            labels = _edge(src_group, src, src_ver, tgt, tgt_ver)
            total.append(Sample(labels=labels, value=count))
            ok.append(Sample(labels=labels, value=ok_count))
            p95.append(Sample(labels=labels, value=latency))
        return {QueryKind.TOTAL: total, QueryKind.OK: ok, QueryKind.QUANTILE: p95}

    def build_details(self) -> Dict[str, List[Sample]]:
        return {
            target: [
                Sample(labels={"path": path, "status": status}, value=count)
                for path, status, count in rows
            ]
            for target, rows in self.ERRORS.items()
        }

    def build_source(self) -> StaticMetricsSource:
        """In-memory source for the demo mesh."""
        logger.debug("Serving demo mesh with %d edges", len(self.EDGES))
        details = self.build_details()
        # etl-jobs carries no version, so only the relaxed query matches it
        relaxed = {"etl-jobs": details.pop("etl-jobs")}
        return StaticMetricsSource(self.build_vectors(), details=details, relaxed_details=relaxed)
