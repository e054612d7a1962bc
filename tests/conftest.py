"""Shared fixtures for svcnav tests."""

from typing import Optional

import pytest

from svcnav.config import NavigatorConfig
from svcnav.core.demo import DemoManager
from svcnav.core.types import Sample
from svcnav.metrics.aggregator import QueryResults, aggregate
from svcnav.metrics.queries import QueryKind


def edge_labels(src: str, tgt: str, src_group: str = "", src_version: str = "",
                tgt_version: str = "", tgt_group: Optional[str] = None) -> dict:
    labels = {
        "executableGroupName": src_group,
        "executableName": src,
        "executableVersion": src_version,
        "targetServiceName": tgt,
        "targetServiceVersion": tgt_version,
    }
    if tgt_group is not None:
        labels["targetServiceGroupName"] = tgt_group
    return labels


@pytest.fixture
def sample():
    """Factory for edge samples: sample("a", "b", 10, src_group="g")."""

    def _make(src: str, tgt: str, value: float, **kwargs) -> Sample:
        return Sample(labels=edge_labels(src, tgt, **kwargs), value=value)

    return _make


@pytest.fixture
def config():
    return NavigatorConfig()


@pytest.fixture
def demo_source():
    return DemoManager().build_source()


@pytest.fixture
def demo_graph():
    vectors = DemoManager().build_vectors()
    results = QueryResults(
        total=vectors[QueryKind.TOTAL],
        ok=vectors[QueryKind.OK],
        quantile=vectors[QueryKind.QUANTILE],
    )
    return aggregate(results)
