"""
Details Command - Error breakdown for one edge.
"""

import asyncio
from typing import List, Optional

import click
from pydantic import BaseModel, Field
from rich.console import Console
from rich.table import Table

from ...core.exceptions import NodeNotFoundError
from ...core.types import EdgeMetrics, PathErrors, ServiceGraph
from ..utils import echo_error, echo_info, format_latency, format_rate, load_session, source_options

console = Console()


class DetailsResponse(BaseModel):
    edge: str
    metrics: Optional[EdgeMetrics] = None
    paths: List[PathErrors] = Field(default_factory=list)


def _resolve_node(graph: ServiceGraph, name: str) -> Optional[str]:
    """Exact id, then a unique substring match on id or label."""
    if graph.has_node(name):
        return name
    matches = graph.find_nodes(name)
    if len(matches) == 1:
        return matches[0]
    return None


@click.command()
@click.argument("source")
@click.argument("target")
@source_options
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def details(ctx: click.Context, source: str, target: str, environment: str,
            window: str, demo: bool, as_json: bool) -> None:
    """
    Show which paths and status codes produce errors on SOURCE -> TARGET.
    """
    session = load_session(ctx, environment, window, demo)
    graph = session.graph

    source_id = _resolve_node(graph, source)
    target_id = _resolve_node(graph, target)
    if source_id is None or target_id is None:
        echo_error(f"Node not found: {source if source_id is None else target}")
        ctx.exit(1)

    try:
        paths = asyncio.run(session.open_edge(source_id, target_id)) or []
    except NodeNotFoundError:
        echo_error(f"No edge between {source_id} and {target_id}")
        ctx.exit(1)

    edge_id = ServiceGraph.edge_id(source_id, target_id)
    metrics = graph.metrics_by_edge.get(edge_id)

    if as_json:
        click.echo(DetailsResponse(edge=edge_id, metrics=metrics, paths=paths).model_dump_json(indent=2))
        return

    console.print(f"🔗 [bold]{graph.label(source_id)}[/bold] → [bold]{graph.label(target_id)}[/bold]")
    if metrics is not None:
        console.print(
            f"   errors {format_rate(metrics.error_rate)} • {metrics.rps} rps"
            f" • p95={format_latency(metrics.p95_latency)}"
        )

    if not paths:
        echo_info("No error data for this connection")
        return

    statuses = sorted({status for row in paths for status in row.by_status})
    table = Table()
    table.add_column("Path")
    table.add_column("Errors", justify="right")
    for status in statuses:
        table.add_column(status, justify="right")
    for row in paths:
        table.add_row(
            row.path,
            f"{row.total_errors:g}",
            *[f"{row.by_status[s]:g}" if s in row.by_status else "" for s in statuses],
        )
    console.print(table)
