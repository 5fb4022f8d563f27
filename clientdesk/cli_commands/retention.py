"""CLI commands for data retention settings."""

import click

from clientdesk.cli_commands.common import console, format_timestamp, get_owner, run_with_services
from clientdesk.services.data_retention import cutoff


@click.group()
def retention():
    """Data retention settings."""
    pass


@retention.command("show")
@click.pass_context
def show_retention(ctx):
    """Show the user's retention period."""
    owner_id = get_owner(ctx)

    async def handler(services):
        return await services.retention.get(owner_id)

    settings = run_with_services(ctx, handler)
    if settings is None:
        console.print("No data retention settings saved.")
        return
    console.print(f"Retention: [cyan]{settings.retention_days}[/cyan] days")
    console.print(f"Last updated: {format_timestamp(settings.last_updated)}")
    console.print(f"Keeps data since: {format_timestamp(cutoff(settings))}")


@retention.command("set")
@click.argument("days", type=click.IntRange(min=1))
@click.pass_context
def set_retention(ctx, days: int):
    """Keep data for DAYS days."""
    owner_id = get_owner(ctx)

    async def handler(services):
        return await services.retention.save(owner_id, days)

    settings = run_with_services(ctx, handler)
    console.print(
        f"[green]✓ Retention set to {settings.retention_days} days[/green] "
        f"({format_timestamp(settings.last_updated)})"
    )
