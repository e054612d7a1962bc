"""
Unit tests for the Prometheus client.
"""

import asyncio

import httpx
import pytest

from svcnav.config import BackendConfig
from svcnav.core.exceptions import MetricsBackendError
from svcnav.metrics.client import PrometheusClient, parse_sample


def client_for(handler, **backend) -> PrometheusClient:
    return PrometheusClient(BackendConfig(**backend), transport=httpx.MockTransport(handler))


def vector(*items) -> dict:
    return {"status": "success", "data": {"resultType": "vector", "result": list(items)}}


class TestParseSample:
    def test_parse(self):
        sample = parse_sample({"metric": {"executableName": "a"}, "value": [1700000000.0, "12.5"]})

        assert sample.labels == {"executableName": "a"}
        assert sample.value == 12.5

    def test_nan_is_kept_as_float(self):
        sample = parse_sample({"metric": {}, "value": [0, "NaN"]})
        assert sample.value != sample.value

    def test_malformed(self):
        with pytest.raises(MetricsBackendError):
            parse_sample({"metric": {}, "value": [0]})
        with pytest.raises(MetricsBackendError):
            parse_sample({"metric": {}, "value": [0, "abc"]})


class TestPrometheusClient:
    def test_query_success(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["query"] = request.url.params["query"]
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json=vector(
                {"metric": {"executableName": "a", "targetServiceName": "b"}, "value": [0, "3"]},
            ))

        client = client_for(handler, headers={"Authorization": "Bearer t"})
        samples = asyncio.run(client.query("up"))

        assert seen == {"query": "up", "auth": "Bearer t"}
        assert len(samples) == 1
        assert samples[0].value == 3.0

    def test_http_error(self):
        client = client_for(lambda request: httpx.Response(503, text="unavailable"))

        with pytest.raises(MetricsBackendError, match="HTTP 503") as exc_info:
            asyncio.run(client.query("up"))
        assert exc_info.value.query == "up"

    def test_backend_reported_error(self):
        client = client_for(lambda request: httpx.Response(200, json={"status": "error", "error": "bad query"}))

        with pytest.raises(MetricsBackendError, match="bad query"):
            asyncio.run(client.query("up"))

    def test_invalid_json(self):
        client = client_for(lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(MetricsBackendError, match="invalid JSON"):
            asyncio.run(client.query("up"))

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(MetricsBackendError, match="request failed"):
            asyncio.run(client_for(handler).query("up"))

    def test_empty_result(self):
        client = client_for(lambda request: httpx.Response(200, json=vector()))
        assert asyncio.run(client.query("up")) == []

    @pytest.mark.parametrize("data", [["oops"], "garbage", 5])
    def test_data_not_an_object(self, data):
        client = client_for(lambda request: httpx.Response(200, json={"status": "success", "data": data}))

        with pytest.raises(MetricsBackendError, match="not a vector"):
            asyncio.run(client.query("up"))

    def test_result_not_a_list(self):
        client = client_for(lambda request: httpx.Response(
            200, json={"status": "success", "data": {"result": {"a": 1}}}))

        with pytest.raises(MetricsBackendError, match="not a vector"):
            asyncio.run(client.query("up"))
