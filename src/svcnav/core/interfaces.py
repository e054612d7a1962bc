"""
Protocols for external collaborators.
"""

from typing import List, Protocol, runtime_checkable

from .types import Sample


@runtime_checkable
class IMetricsSource(Protocol):
    """
    Anything that can execute an instant query.

    Implementations raise ``MetricsBackendError`` on failure.
    """

    async def query(self, promql: str) -> List[Sample]:
        ...
