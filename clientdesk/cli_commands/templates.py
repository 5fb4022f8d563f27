"""
CLI commands for recurring task templates.
"""

from typing import List, Optional

import click
from pydantic import ValidationError
from rich.table import Table

from clientdesk.cli_commands.common import console, get_owner, run_with_services
from clientdesk.core.models import RecurringTaskTemplate, TaskInterval, TemplateDraft
from clientdesk.utils.reliability import resubscribe_policy, watch_with_resubscribe


def _templates_table(templates: List[RecurringTaskTemplate], title: str = "Recurring Tasks") -> Table:
    table = Table(title=title)
    table.add_column("ID", style="dim")
    table.add_column("Title", style="cyan")
    table.add_column("Interval", style="white")
    table.add_column("Description", style="dim")
    for template in templates:
        table.add_row(
            template.id, template.title, template.interval.value, template.description or ""
        )
    return table


@click.group()
def templates():
    """Recurring task templates."""
    pass


@templates.command("list")
@click.pass_context
def list_templates(ctx):
    """List the user's templates."""
    owner_id = get_owner(ctx)

    async def handler(services):
        return await services.templates.list(owner_id)

    items = run_with_services(ctx, handler)
    if not items:
        console.print("No recurring task templates.")
        return
    console.print(_templates_table(items))


@templates.command("add")
@click.argument("title")
@click.option(
    "--interval",
    type=click.Choice([i.value for i in TaskInterval]),
    default=TaskInterval.WEEKLY.value,
    show_default=True,
)
@click.option("--description", help="Optional description")
@click.pass_context
def add_template(ctx, title: str, interval: str, description: Optional[str]):
    """Add a template called TITLE."""
    owner_id = get_owner(ctx)
    try:
        draft = TemplateDraft(title=title, interval=interval, description=description)
    except ValidationError as e:
        raise click.BadParameter(str(e), param_hint="TITLE")

    async def handler(services):
        return await services.templates.add(owner_id, draft)

    template_id = run_with_services(ctx, handler)
    console.print(f"[green]✓ Template added:[/green] {template_id}")


@templates.command("delete")
@click.argument("template_id")
@click.pass_context
def delete_template(ctx, template_id: str):
    """Delete the template TEMPLATE_ID (no error if it is already gone)."""
    owner_id = get_owner(ctx)

    async def handler(services):
        await services.templates.delete(owner_id, template_id)

    run_with_services(ctx, handler)
    console.print(f"[green]✓ Template deleted:[/green] {template_id}")


@templates.command("watch")
@click.option("--count", type=int, help="Stop after this many snapshots")
@click.option("--max-attempts", default=5, show_default=True, help="Subscription attempts")
@click.pass_context
def watch_templates(ctx, count: Optional[int], max_attempts: int):
    """Print every snapshot of the user's templates as it arrives."""
    owner_id = get_owner(ctx)

    def show(items: List[RecurringTaskTemplate]):
        console.print(_templates_table(items, title=f"Recurring Tasks ({len(items)})"))

    async def handler(services):
        return await watch_with_resubscribe(
            lambda: services.templates.snapshots(owner_id),
            show,
            max_snapshots=count,
            policy=resubscribe_policy(max_attempts=max_attempts),
        )

    delivered = run_with_services(ctx, handler)
    console.print(f"{delivered} snapshot(s) received")
