"""
Columns Command - Drill down through the column view.

Applies a sequence of clicks (one per column) and prints the resulting
columns, with per-edge error rate, throughput and latency.
"""

import asyncio
from typing import List, Optional

import click
from pydantic import BaseModel, Field
from rich.console import Console
from rich.table import Table

from ...core.exceptions import SvcnavError
from ...config import StatusThresholds
from ...core.types import EdgeMetrics, NodeId, PathErrors, ServiceGraph
from ...graph.builder import Adjacency, status_for_error_rate, worst_child_error_rate
from ..utils import echo_error, format_latency, format_rate, load_session, source_options
from .tree import STATUS_STYLE

console = Console()


class ColumnItem(BaseModel):
    id: str
    label: str
    selected: bool = False
    has_children: bool = False
    edge: Optional[EdgeMetrics] = None


class ColumnsResponse(BaseModel):
    path: List[str]
    columns: List[List[ColumnItem]]
    details_edge: Optional[str] = None
    details: List[PathErrors] = Field(default_factory=list)


@click.command()
@source_options
@click.option("-s", "--select", "selection", multiple=True,
              help="Node id to click, once per column (repeatable)")
@click.option("--max-columns", default=None, type=int, help="Maximum number of columns")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def columns(ctx: click.Context, environment: str, window: str, demo: bool,
            selection: tuple, max_columns: Optional[int], as_json: bool) -> None:
    """
    Show the navigator columns for a selection path.
    """
    session = load_session(ctx, environment, window, demo)
    navigator = session.navigator
    if max_columns is not None:
        if max_columns < 1:
            echo_error("--max-columns must be at least 1")
            ctx.exit(1)
        navigator.max_columns = max_columns

    async def _click_through() -> None:
        for column_index, node_id in enumerate(selection):
            await session.select(column_index, node_id)

    try:
        asyncio.run(_click_through())
    except SvcnavError as e:
        echo_error(str(e))
        ctx.exit(1)

    graph = session.graph
    path = navigator.path
    adj: Adjacency = {node_id: navigator.children(node_id) for node_id in graph.node_ids}

    rendered: List[List[ColumnItem]] = []
    for column_index, items in enumerate(navigator.columns):
        parent: Optional[NodeId] = navigator.parent_of_column(column_index)
        rendered.append([
            ColumnItem(
                id=node_id,
                label=graph.label(node_id),
                selected=column_index < len(path) and path[column_index] == node_id,
                has_children=bool(adj.get(node_id)),
                edge=graph.metrics(parent, node_id) if parent else None,
            )
            for node_id in items
        ])

    if as_json:
        response = ColumnsResponse(
            path=path,
            columns=rendered,
            details_edge=session.details_edge,
            details=session.details,
        )
        click.echo(response.model_dump_json(indent=2))
        return

    table = Table(show_lines=False)
    for column_index in range(len(rendered)):
        heading = "Roots" if column_index == 0 else f"Dependencies of {graph.label(path[column_index - 1])}"
        table.add_column(heading, overflow="fold")

    height = max((len(items) for items in rendered), default=0)
    for row in range(height):
        cells = []
        for items in rendered:
            if row >= len(items):
                cells.append("")
                continue
            cells.append(_cell(items[row], graph, adj, session.config.thresholds))
        table.add_row(*cells)

    console.print(table)
    if session.details_edge:
        console.print(f"[dim]{len(session.details)} erroring path(s) on {session.details_edge}; "
                      f"run 'svcnav details' for the breakdown[/dim]")


def _cell(item: ColumnItem, graph: ServiceGraph, adj: Adjacency, thresholds: StatusThresholds) -> str:
    marker = "▶ " if item.selected else "  "
    text = f"{marker}[bold]{item.label}[/bold]"
    if item.has_children:
        worst = worst_child_error_rate(graph, item.id, adj)
        style = STATUS_STYLE[status_for_error_rate(worst, thresholds)]
        text += f" [{style}]▍[/{style}]"
    if item.edge is not None:
        text += (
            f"\n    {format_rate(item.edge.error_rate)} • {item.edge.rps} rps"
            f" • p95={format_latency(item.edge.p95_latency)}"
        )
    return text
