"""
ATTOM Gateway CLI

Run ATTOM queries by endpoint id from the command line, with the same
identifier fallback resolution the HTTP API uses.
"""
import asyncio
import json
import sys

import click
from rich.console import Console
from rich.table import Table

from attom_gateway.config import get_config
from attom_gateway.errors import GatewayError, TransportError, classify_upstream_error
from attom_gateway.service import AttomService
from attom_gateway.utils import get_logger, setup_logging

console = Console()
logger = get_logger(__name__)


def _parse_params(pairs):
    """Turn ``key=value`` strings into a dict"""
    params = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"Expected key=value, got '{pair}'", param_hint="--param")
        params[key.strip()] = value.strip()
    return params


def _run_with_service(func):
    """Build a service, run ``func(service)`` to completion, then close it"""
    async def runner():
        service = AttomService()
        try:
            return await func(service)
        finally:
            await service.aclose()
    return asyncio.run(runner())


def _report_error(error):
    console.print(f"\n[red]✗ Error: {error}[/red]")
    if isinstance(error, TransportError):
        signal = classify_upstream_error(error)
        if signal:
            console.print(f"  [yellow]Upstream signal:[/yellow] {signal.value}")
        if error.body:
            console.print(f"  [dim]{error.body[:500]}[/dim]")


# ═══════════════════════════════════════════════════════════════════
# MAIN CLI GROUP
# ═══════════════════════════════════════════════════════════════════

@click.group()
@click.version_option(version='0.1.0')
def main():
    """
    ATTOM Gateway - property data queries with identifier fallback

    Missing property ids and geo ids are resolved from addresses automatically.
    """
    config = get_config()
    setup_logging(config.log_level, config.log_file)


# ═══════════════════════════════════════════════════════════════════
# DISCOVERY COMMANDS
# ═══════════════════════════════════════════════════════════════════

@main.command()
@click.option('--category', '-c', default=None, help='Only list endpoints in this category')
def endpoints(category):
    """List registered endpoints"""
    from attom_gateway.endpoints.models import EndpointCategory
    from attom_gateway.endpoints.registry import get_registry

    registry = get_registry()
    try:
        items = registry.by_category(EndpointCategory(category)) if category else list(registry)
    except ValueError:
        raise click.BadParameter(f"Unknown category '{category}'", param_hint="--category")

    table = Table(title="ATTOM Endpoints")
    table.add_column("Key", style="cyan")
    table.add_column("Category", style="magenta")
    table.add_column("Required")
    table.add_column("Fallback", style="green")

    for endpoint in items:
        table.add_row(
            endpoint.key,
            endpoint.category.value,
            ", ".join(sorted(endpoint.required_params)),
            endpoint.fallback_strategy.value,
        )

    console.print(table)
    console.print(f"\n[green]✓ {len(items)} endpoints[/green]")


# ═══════════════════════════════════════════════════════════════════
# QUERY COMMANDS
# ═══════════════════════════════════════════════════════════════════

@main.command()
@click.argument('kind')
@click.option('--param', '-p', 'params', multiple=True, help='Query parameter as key=value (repeatable)')
@click.option('--no-cache', is_flag=True, help='Bypass the response cache')
def query(kind, params, no_cache):
    """Run one query by endpoint id"""
    parsed = _parse_params(params)
    console.print(f"\n[bold blue]Query:[/bold blue] {kind} {parsed}\n")

    try:
        data = _run_with_service(lambda service: service.query(kind, parsed, use_cache=not no_cache))
    except GatewayError as e:
        _report_error(e)
        sys.exit(1)

    click.echo(json.dumps(data, indent=2, default=str))


@main.command()
@click.option('--street', required=True)
@click.option('--city', required=True)
@click.option('--state', required=True)
@click.option('--zip', 'zip_code', required=True)
@click.option('--county', default='-', show_default=True)
@click.option('--miles', type=float, default=None, help='Search radius in miles')
@click.option('--max-comps', type=int, default=None)
def comps(street, city, state, zip_code, county, miles, max_comps):
    """Comparable sales for a subject address"""
    params = {
        "street": street,
        "city": city,
        "state": state,
        "zip": zip_code,
        "county": county,
        "miles": miles,
        "maxComps": max_comps,
    }
    console.print(f"\n[bold blue]Comparables for:[/bold blue] {street}, {city}, {state} {zip_code}\n")

    try:
        data = _run_with_service(lambda service: service.get_sales_comparables_address(**params))
    except GatewayError as e:
        _report_error(e)
        sys.exit(1)

    click.echo(json.dumps(data, indent=2, default=str))


@main.command()
@click.argument('address1')
@click.argument('address2')
def resolve(address1, address2):
    """Resolve the ATTOM id and geo ids for an address"""
    try:
        context = _run_with_service(lambda service: service.prefetch_address(address1, address2))
    except GatewayError as e:
        _report_error(e)
        sys.exit(1)

    table = Table(title=f"{address1}, {address2}")
    table.add_column("Identifier", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("attomId", context.resolved_id or "-")
    for subtype, value in sorted(context.geo_ids.items()):
        table.add_row(f"geoIdV4 {subtype}", value)
    console.print(table)


if __name__ == '__main__':
    main()
