"""CLI entry point for the token data feed.

This module provides the command-line interface for looking up token prices
and metadata through the resilient provider pipeline.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
from rich.console import Console
from rich.table import Table

from tokenfeed.fetcher.errors import ProviderError
from tokenfeed.models.config import ConfigManager, FeedConfig
from tokenfeed.pipeline.orchestrator import TokenFeed


console = Console()


def _load_config(config: Path, log_level: Optional[str]) -> FeedConfig:
    cli_overrides = {}
    if log_level is not None:
        cli_overrides["log_level"] = log_level.upper()
    try:
        return ConfigManager(config).load_config(cli_overrides)
    except ValueError as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e


def _run(coro) -> Any:
    try:
        return asyncio.run(coro)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)  # Standard exit code for SIGINT
    except ProviderError as e:
        console.print(f"\n[red]Error:[/red] {e}", style="bold red")
        sys.exit(1)


config_option = click.option(
    "--config",
    "-c",
    type=click.Path(path_type=Path),
    default="config/config.yaml",
    help="Path to configuration YAML file (ignored if missing)",
)
log_level_option = click.option(
    "--log-level",
    "-l",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level (overrides config)",
)
chain_option = click.option(
    "--chain-id",
    "-n",
    type=int,
    default=1,
    show_default=True,
    help="Numeric chain id (1=ethereum, 42161=arbitrum, 137=polygon, 10=optimism, 8453=base)",
)
json_option = click.option("--json", "as_json", is_flag=True, help="Print raw JSON instead of a table")


@click.group()
@click.version_option(version="1.0.0", prog_name="tokenfeed")
def main() -> None:
    """
    Token Feed - Resilient token price and metadata lookups.

    Queries an ordered chain of upstream providers, each protected by a
    rate limiter and a circuit breaker, behind a short-lived cache.

    Examples:

        # Price of USDC on Ethereum
        $ tokenfeed price 0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48

        # Metadata on Arbitrum
        $ tokenfeed metadata 0xaf88d065e77c8cC2239327C5EDb3A432268e5831 --chain-id 42161

        # Provider configuration
        $ tokenfeed status
    """


@main.command()
@click.argument("address")
@chain_option
@config_option
@log_level_option
@json_option
def price(address: str, chain_id: int, config: Path, log_level: Optional[str], as_json: bool) -> None:
    """Look up the spot price of a token."""
    feed_config = _load_config(config, log_level)

    async def lookup():
        async with TokenFeed(feed_config) as feed:
            return await feed.get_price(address, chain_id)

    result = _run(lookup())
    _display_record("Token Price", result.to_dict(), as_json)


@main.command()
@click.argument("address")
@chain_option
@config_option
@log_level_option
@json_option
def metadata(address: str, chain_id: int, config: Path, log_level: Optional[str], as_json: bool) -> None:
    """Look up name, symbol and decimals of a token."""
    feed_config = _load_config(config, log_level)

    async def lookup():
        async with TokenFeed(feed_config) as feed:
            return await feed.get_metadata(address, chain_id)

    result = _run(lookup())
    _display_record("Token Metadata", result.to_dict(), as_json)


@main.command()
@config_option
@log_level_option
def status(config: Path, log_level: Optional[str]) -> None:
    """Show configured providers in fallback order with their gate settings."""
    feed_config = _load_config(config, log_level)

    for title, providers in (
        ("Price Providers", feed_config.price_providers),
        ("Metadata Providers", feed_config.metadata_providers),
    ):
        table = Table(title=title)
        table.add_column("#", justify="right")
        table.add_column("Provider", style="cyan")
        table.add_column("Enabled")
        table.add_column("Rate Limit", justify="right", style="green")
        table.add_column("Timeout", justify="right", style="yellow")
        table.add_column("Open At", justify="right", style="magenta")
        table.add_column("Reset", justify="right")

        for position, provider in enumerate(providers, start=1):
            rl = provider.rate_limiter
            cb = provider.circuit_breaker
            table.add_row(
                str(position),
                provider.name,
                "yes" if provider.enabled else "no",
                f"{rl.points}/{rl.duration_seconds:g}s" + (" even" if rl.exec_evenly else ""),
                f"{cb.timeout_ms}ms",
                f"{cb.error_threshold_percentage:g}% of {cb.volume_threshold}",
                f"{cb.reset_timeout_ms}ms",
            )

        console.print(table)
        console.print()


def _display_record(title: str, record: Dict[str, Any], as_json: bool) -> None:
    """Display a single result."""
    if as_json:
        click.echo(json.dumps(record, indent=2))
        return

    table = Table(title=title, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    for field_name, value in record.items():
        if value is None:
            continue
        table.add_row(field_name, str(value))
    console.print(table)


if __name__ == "__main__":
    main()
