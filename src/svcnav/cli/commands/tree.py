"""
Tree Command - Render the rooted dependency tree.
"""

from dataclasses import asdict
from typing import Any, Dict, List, Tuple

import click
from pydantic import BaseModel, Field
from rich.console import Console
from rich.tree import Tree

from ...core.types import NodeStatus, ServiceNode
from ...graph.builder import build_tree, graph_stats
from ..utils import echo_warning, load_session, source_options

console = Console()

STATUS_STYLE = {
    NodeStatus.HEALTHY: "green",
    NodeStatus.DEGRADED: "yellow",
    NodeStatus.CRITICAL: "red",
}


class TreeResponse(BaseModel):
    environment: str
    window: str
    stats: Dict[str, Any]
    roots: List[Dict[str, Any]] = Field(default_factory=list)


def node_markup(node: ServiceNode) -> str:
    style = STATUS_STYLE[node.status]
    text = f"[{style}]●[/{style}] [bold]{node.label}[/bold]"
    if node.throughput_in:
        text += f" [dim]{node.throughput_in:.0f} rps[/dim]"
    return text


def add_branch(parent: Tree, node: ServiceNode, max_depth: int, depth: int = 1,
               ancestors: Tuple[str, ...] = ()) -> None:
    if node.id in ancestors:
        parent.add(f"[magenta]↺ {node.label}[/magenta]")
        return
    branch = parent.add(node_markup(node))
    if max_depth >= 0 and depth >= max_depth:
        if node.children:
            branch.add(f"[dim]… {len(node.children)} more[/dim]")
        return
    for child in node.children:
        add_branch(branch, child, max_depth, depth + 1, ancestors + (node.id,))


@click.command()
@source_options
@click.option("-d", "--depth", "max_depth", default=-1, type=int,
              help="Maximum depth to render (-1 for unlimited)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def tree(ctx: click.Context, environment: str, window: str, demo: bool,
         max_depth: int, as_json: bool) -> None:
    """
    Show the dependency tree from root services down.
    """
    session = load_session(ctx, environment, window, demo)
    graph = session.graph
    roots = build_tree(graph, session.config.thresholds)
    stats = graph_stats(graph)

    if as_json:
        response = TreeResponse(
            environment=session.environment,
            window=session.window.label,
            stats=asdict(stats),
            roots=[root.to_dict(max_depth) for root in roots],
        )
        click.echo(response.model_dump_json(indent=2))
        return

    title = (
        f"🕸  [bold]{session.environment}[/bold] ({session.window.label}) "
        f"[dim]{session.status_line}[/dim]"
    )
    view = Tree(title)
    if not roots:
        view.add("[dim]No root services[/dim]")
    for root in roots:
        add_branch(view, root, max_depth)
    console.print(view)

    if stats.has_cycles:
        echo_warning(f"Call graph contains cycles; {stats.dropped_cycle_nodes} node(s) are unreachable from roots")
