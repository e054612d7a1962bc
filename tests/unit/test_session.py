"""
Unit tests for the navigator session.
"""

import asyncio
import re

import httpx
import pytest

from svcnav.config import MetricNames, NavigatorConfig
from svcnav.core.demo import DemoManager, StaticMetricsSource
from svcnav.core.exceptions import NodeNotFoundError
from svcnav.core.types import Sample
from svcnav.metrics.client import PrometheusClient
from svcnav.metrics.queries import QueryKind, classify_query
from svcnav.session import NavigatorSession

GATEWAY = "edge::gateway"
AUTH = "default::auth-service"
BILLING = "default::billing-service"
PAYMENTS = "default::payments-adapter"


class GatedSource(StaticMetricsSource):
    """Demo source whose queries can be held until an event is set."""

    def __init__(self):
        demo = DemoManager()
        super().__init__(demo.build_vectors(), details=demo.build_details())
        self.detail_gates = {}
        self.total_gate = None
        self.held = []

    async def query(self, promql):
        kind = classify_query(promql)
        if kind is QueryKind.DETAILS:
            target = re.search(r'targetServiceName="([^"]*)"', promql).group(1)
            gate = self.detail_gates.get(target)
            if gate is not None:
                self.held.append(target)
                await gate.wait()
        elif kind is QueryKind.TOTAL and self.total_gate is not None:
            gate, self.total_gate = self.total_gate, None
            vectors = dict(self.vectors)
            self.held.append("total")
            await gate.wait()
            return list(vectors[QueryKind.TOTAL])
        return await super().query(promql)


async def until_held(source):
    while not source.held:
        await asyncio.sleep(0)


class TestRefresh:
    def test_initial_refresh(self, config, demo_source):
        session = NavigatorSession(config, demo_source)

        outcome = asyncio.run(session.refresh())

        assert outcome.ok
        assert outcome.generation == 1
        assert session.graph.edge_count == 8
        assert session.navigator.roots == [GATEWAY, "reporting::reporting"]
        assert session.status_line == "10 nodes / 8 edges"
        assert not session.loading

    def test_failure_keeps_previous_snapshot(self, config, demo_source):
        session = NavigatorSession(config, demo_source)

        async def scenario():
            await session.refresh()
            previous = session.graph
            demo_source.failures.add(QueryKind.TOTAL)
            return previous, await session.refresh()

        previous, outcome = asyncio.run(scenario())

        assert not outcome.ok
        assert "total query failed" in outcome.error
        assert session.error == outcome.error
        assert session.graph is previous

    def test_refresh_keeps_valid_selection(self, config, demo_source):
        session = NavigatorSession(config, demo_source)

        async def scenario():
            await session.refresh()
            await session.select(0, GATEWAY)
            await session.select(1, BILLING)
            await session.refresh()

        asyncio.run(scenario())

        assert session.navigator.path == [GATEWAY, BILLING]
        assert session.details_edge is None

    def test_environment_change_clears_selection(self, config, demo_source):
        session = NavigatorSession(config, demo_source)

        async def scenario():
            await session.refresh()
            await session.select(0, GATEWAY)
            await session.set_environment("qa")

        asyncio.run(scenario())

        assert session.environment == "qa"
        assert session.navigator.path == []
        assert 'systemName="qa"' in demo_source.queries[-1]

    def test_window_change(self, config, demo_source):
        session = NavigatorSession(config, demo_source)

        asyncio.run(session.set_window("15m"))

        assert session.window.label == "15m"
        assert "[15m]" in demo_source.queries[-1]

    def test_stale_refresh_is_discarded(self, config):
        source = GatedSource()
        session = NavigatorSession(config, source)
        smaller = [Sample(labels={"executableName": "solo", "targetServiceName": "db"}, value=5)]

        async def scenario():
            gate = asyncio.Event()
            source.total_gate = gate
            first = asyncio.create_task(session.refresh())
            await until_held(source)

            source.vectors = {QueryKind.TOTAL: smaller, QueryKind.OK: smaller}
            second = await session.refresh()

            gate.set()
            return await first, second

        first, second = asyncio.run(scenario())

        assert second.applied
        assert not first.applied
        assert first.generation < second.generation
        assert session.graph.node_ids == ["solo", "default::db"]


    def test_malformed_latency_response_only_costs_latency(self, config):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.params["query"].startswith("histogram_quantile("):
                return httpx.Response(200, json={"status": "success", "data": "garbage"})
            return httpx.Response(200, json={"status": "success", "data": {"result": [
                {"metric": {"executableName": "a", "targetServiceName": "b"}, "value": [0, "60"]},
            ]}})

        client = PrometheusClient(config.backend, transport=httpx.MockTransport(handler))
        session = NavigatorSession(config, client)

        outcome = asyncio.run(session.refresh())

        assert outcome.ok
        assert not session.loading
        metrics = session.graph.metrics_by_edge["a->default::b"]
        assert metrics.total == 60
        assert metrics.p95_latency is None

    def test_unexpected_failure_clears_loading(self, config):
        class BrokenSource:
            async def query(self, promql):
                raise RuntimeError("boom")

        session = NavigatorSession(config, BrokenSource())

        with pytest.raises(RuntimeError):
            asyncio.run(session.refresh())
        assert not session.loading
        assert session.graph is None


class TestDetails:
    def test_selecting_child_fetches_edge_details(self, config, demo_source):
        session = NavigatorSession(config, demo_source)

        async def scenario():
            await session.refresh()
            await session.select(0, GATEWAY)
            assert session.details_edge is None
            await session.select(1, AUTH)

        asyncio.run(scenario())

        assert session.details_edge == f"{GATEWAY}->{AUTH}"
        assert [d.path for d in session.details] == ["/token", "/userinfo"]
        assert session.details[0].by_status == {"500": 60, "503": 10}

    def test_relaxed_fallback_through_session(self, config, demo_source):
        session = NavigatorSession(config, demo_source)

        async def scenario():
            await session.refresh()
            return await session.open_edge("reporting::reporting", "default::etl-jobs")

        details = asyncio.run(scenario())

        assert [d.path for d in details] == ["/run"]

    def test_stale_detail_fetch_is_not_applied(self, config):
        source = GatedSource()
        session = NavigatorSession(config, source)

        async def scenario():
            await session.refresh()
            await session.select(0, GATEWAY)

            gate = asyncio.Event()
            source.detail_gates["auth-service"] = gate
            fetch_a = asyncio.create_task(session.select(1, AUTH))
            await until_held(source)

            await session.select(1, BILLING)
            assert session.details_edge == f"{GATEWAY}->{BILLING}"

            gate.set()
            await fetch_a

        asyncio.run(scenario())

        assert session.navigator.path == [GATEWAY, BILLING]
        assert session.details_edge == f"{GATEWAY}->{BILLING}"
        assert session.details == []

    def test_details_superseded_by_refresh(self, config):
        source = GatedSource()
        session = NavigatorSession(config, source)

        async def scenario():
            await session.refresh()
            gate = asyncio.Event()
            source.detail_gates["payments-adapter"] = gate
            pending = asyncio.create_task(session.open_edge(BILLING, PAYMENTS))
            await until_held(source)

            await session.refresh()
            gate.set()
            return await pending

        assert asyncio.run(scenario()) is None
        assert session.details_edge is None

    def test_close_edge(self, config, demo_source):
        session = NavigatorSession(config, demo_source)

        async def scenario():
            await session.refresh()
            await session.open_edge(GATEWAY, AUTH)

        asyncio.run(scenario())
        session.close_edge()

        assert session.details == []
        assert session.details_edge is None

    def test_unknown_edge(self, config, demo_source):
        session = NavigatorSession(config, demo_source)

        async def scenario():
            await session.refresh()
            await session.open_edge(GATEWAY, PAYMENTS)

        with pytest.raises(NodeNotFoundError):
            asyncio.run(scenario())

    def test_edge_for(self, config, demo_source):
        session = NavigatorSession(config, demo_source)
        asyncio.run(session.refresh())
        session.navigator.select(0, GATEWAY)

        assert session.edge_for(1, AUTH) == (GATEWAY, AUTH)
        assert session.edge_for(0, GATEWAY) is None

    def test_details_follow_selected_window(self, demo_source):
        config = NavigatorConfig(metric=MetricNames(windowed_counts=True))
        session = NavigatorSession(config, demo_source)

        async def scenario():
            await session.set_window("15m")
            await session.open_edge(GATEWAY, AUTH)

        asyncio.run(scenario())

        detail_queries = [q for q in demo_source.queries if classify_query(q) is QueryKind.DETAILS]
        assert detail_queries
        assert all("increase(" in q and q.endswith("[15m]))") for q in detail_queries)
        assert [d.path for d in session.details] == ["/token", "/userinfo"]
