"""
svcnav CLI - Main entry point.

This module registers all CLI commands. Each command is implemented
in its own module under cli/commands/.
"""

import click

from .commands import columns, details, groups, tree
from .utils import configure_logging


@click.group()
@click.version_option(package_name="svcnav")
@click.option("-c", "--config", "config_path", default=None,
              help="Path to config YAML (default: .svcnav/config.yaml)")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """svcnav: Drill through a microservice dependency map.

    Builds the call graph from proxy request metrics and shows error
    rates, throughput and latency per edge.

    \b
    Quick Start:
      svcnav tree --demo
      svcnav columns --demo -s edge::gateway -s default::auth-service
      svcnav details edge::gateway default::auth-service --demo
    """
    configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


main.add_command(tree.tree)
main.add_command(columns.columns)
main.add_command(details.details)
main.add_command(groups.groups)

if __name__ == "__main__":
    main()
