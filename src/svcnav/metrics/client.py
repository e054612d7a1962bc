"""
Prometheus HTTP API client.

Executes instant queries against ``/api/v1/query`` and converts the
``{metric, value: [ts, "number"]}`` vector into ``Sample`` objects.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..config import BackendConfig
from ..core.exceptions import MetricsBackendError
from ..core.types import Sample

logger = logging.getLogger(__name__)


def parse_sample(item: Dict[str, Any], query: Optional[str] = None) -> Sample:
    """Convert one vector element. Non-numeric values raise MetricsBackendError."""
    if not isinstance(item, dict):
        raise MetricsBackendError(f"Malformed result element: {item!r}", query=query)

    metric = item.get("metric") or {}
    value = item.get("value")
    if not isinstance(metric, dict) or not isinstance(value, (list, tuple)) or len(value) < 2:
        raise MetricsBackendError(f"Malformed result element: {item!r}", query=query)

    try:
        number = float(value[1])
    except (TypeError, ValueError) as e:
        raise MetricsBackendError(f"Non-numeric sample value: {value[1]!r}", query=query) from e

    return Sample(labels={str(k): str(v) for k, v in metric.items()}, value=number)


class PrometheusClient:
    """
    Async instant-query client.

    A fresh ``httpx.AsyncClient`` is opened per query so the client holds no
    connection state between refreshes.
    """

    def __init__(self, backend: BackendConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.backend = backend
        self._transport = transport

    async def query(self, promql: str) -> List[Sample]:
        async with httpx.AsyncClient(
            headers=self.backend.headers,
            timeout=self.backend.timeout_seconds,
            transport=self._transport,
        ) as client:
            try:
                response = await client.get(self.backend.url, params={"query": promql})
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise MetricsBackendError(
                    f"Prometheus HTTP {e.response.status_code}", query=promql
                ) from e
            except httpx.HTTPError as e:
                raise MetricsBackendError(f"Prometheus request failed: {e}", query=promql) from e

        try:
            payload = response.json()
        except ValueError as e:
            raise MetricsBackendError("Prometheus returned invalid JSON", query=promql) from e

        if not isinstance(payload, dict) or payload.get("status") != "success":
            reason = payload.get("error", "unknown") if isinstance(payload, dict) else "unknown"
            raise MetricsBackendError(f"Prometheus error: {reason}", query=promql)

        data = payload.get("data") or {}
        if not isinstance(data, dict):
            raise MetricsBackendError("Prometheus result is not a vector", query=promql)
        result = data.get("result") or []
        if not isinstance(result, list):
            raise MetricsBackendError("Prometheus result is not a vector", query=promql)

        samples = [parse_sample(item, promql) for item in result]
        logger.debug("Query returned %d series: %s", len(samples), promql)
        return samples
