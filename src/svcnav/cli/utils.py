"""
CLI Utilities - Shared helpers for the command line.

Message printing, logging setup, and building a refreshed session from the
command-line options shared by every data command.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import click

from ..config import NavigatorConfig, load_config
from ..core.demo import DemoManager
from ..core.exceptions import ConfigError
from ..metrics.client import PrometheusClient
from ..session import NavigatorSession

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def echo_success(message: str) -> None:
    """Print a success message with a green checkmark."""
    click.echo(click.style(f"✅ {message}", fg="green"))


def echo_error(message: str) -> None:
    """Print an error message with a red cross to stderr."""
    click.echo(click.style(f"❌ {message}", fg="red"), err=True)


def echo_warning(message: str) -> None:
    click.echo(click.style(f"⚠️  {message}", fg="yellow"))


def echo_info(message: str) -> None:
    click.echo(click.style(f"   {message}", dim=True))


def configure_logging(verbose: bool) -> None:
    """Debug logging on request; otherwise warnings reach stderr unformatted."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format=LOG_FORMAT, datefmt="[%X]")


def get_config(ctx: click.Context, config_path: Optional[str]) -> NavigatorConfig:
    """Load the configuration once per invocation."""
    ctx.ensure_object(dict)
    if "config" not in ctx.obj:
        try:
            ctx.obj["config"] = load_config(Path(config_path) if config_path else None)
        except ConfigError as e:
            echo_error(str(e))
            ctx.exit(1)
    return ctx.obj["config"]


def source_options(func):
    """Options shared by commands that need a graph snapshot."""

    options = [
        click.option("-e", "--env", "environment", default=None, help="Environment (systemName) to query"),
        click.option("-w", "--window", default=None, help="Time window label, e.g. 5m"),
        click.option("--demo", is_flag=True, help="Use the built-in demo mesh instead of Prometheus"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def load_session(ctx: click.Context, environment: Optional[str], window: Optional[str],
                 demo: bool) -> NavigatorSession:
    """
    Build a session and run the initial refresh.

    Exits with status 1 (after printing the reason) if the configuration is
    invalid or the refresh fails.
    """
    config = get_config(ctx, ctx.obj.get("config_path") if ctx.obj else None)
    source = DemoManager().build_source() if demo else PrometheusClient(config.backend)

    try:
        session = NavigatorSession(config, source, environment=environment, window=window)
    except ConfigError as e:
        echo_error(str(e))
        ctx.exit(1)

    outcome = asyncio.run(session.refresh())
    if not outcome.ok:
        echo_error(f"Failed to load metrics: {outcome.error}")
        ctx.exit(1)
    return session


def format_rate(error_rate: float) -> str:
    return f"{error_rate * 100:.1f}%"


def format_latency(p95: Optional[float]) -> str:
    return f"{p95:.0f}ms" if p95 is not None else "n/a"
