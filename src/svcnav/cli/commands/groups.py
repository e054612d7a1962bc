"""
Groups Command - Root services grouped by name prefix.
"""

import click
from rich.console import Console
from rich.table import Table

from ...graph.builder import build_tree
from ...graph.grouping import group_roots, worst_status
from ..utils import load_session, source_options
from .tree import STATUS_STYLE

console = Console()


@click.command()
@source_options
@click.option("-d", "--depth", default=3, type=int, help="Number of dotted label parts per group")
@click.option("--all", "include_all", is_flag=True, help="Include an all-roots group")
@click.pass_context
def groups(ctx: click.Context, environment: str, window: str, demo: bool,
           depth: int, include_all: bool) -> None:
    """
    Group root services by label prefix and show each group's worst status.
    """
    session = load_session(ctx, environment, window, demo)
    roots = build_tree(session.graph, session.config.thresholds)

    table = Table()
    table.add_column("Group")
    table.add_column("Status")
    table.add_column("Roots")
    for name, members in group_roots(roots, depth, include_all).items():
        status = worst_status(members)
        style = STATUS_STYLE[status]
        table.add_row(name, f"[{style}]{status.value}[/{style}]", ", ".join(m.label for m in members))
    console.print(table)
