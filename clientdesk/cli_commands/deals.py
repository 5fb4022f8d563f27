"""CLI commands for deals."""

from typing import Optional

import click
from pydantic import ValidationError
from rich.table import Table

from clientdesk.cli_commands.common import (
    console,
    format_money,
    format_timestamp,
    get_owner,
    run_with_services,
)
from clientdesk.core.models import DealDraft, DealUpdate


@click.group()
def deals():
    """Deals in the sales pipeline."""
    pass


@deals.command("list")
@click.option("--contact", "contact_id", help="Only deals linked to this contact")
@click.pass_context
def list_deals(ctx, contact_id: Optional[str]):
    """List deals, newest first."""
    owner_id = get_owner(ctx)

    async def handler(services):
        if contact_id:
            return await services.deals.list_by_contact(owner_id, contact_id)
        return await services.deals.list(owner_id)

    items = run_with_services(ctx, handler)
    if not items:
        console.print("No deals.")
        return

    table = Table(title=f"Deals ({len(items)})")
    table.add_column("ID", style="dim")
    table.add_column("Title", style="cyan")
    table.add_column("Company")
    table.add_column("Stage")
    table.add_column("Status")
    table.add_column("Value", justify="right")
    table.add_column("Closed", style="dim")
    for deal in items:
        table.add_row(
            deal.id,
            deal.title,
            deal.company,
            deal.stage,
            deal.status.value,
            format_money(deal.value),
            format_timestamp(deal.closed_at),
        )
    console.print(table)


@deals.command("add")
@click.argument("title")
@click.option("--company", default="")
@click.option("--value", default="", help="Deal value")
@click.option("--probability", default="", help="Win probability in percent")
@click.option("--stage", "stage_id", default="lead", show_default=True)
@click.option("--contact", "contact_id", help="Linked contact id")
@click.option("--tags", default="", help="Comma-separated tags")
@click.option("--notes")
@click.pass_context
def add_deal(
    ctx,
    title: str,
    company: str,
    value: str,
    probability: str,
    stage_id: str,
    contact_id: Optional[str],
    tags: str,
    notes: Optional[str],
):
    """Add a deal called TITLE."""
    owner_id = get_owner(ctx)
    try:
        draft = DealDraft(
            title=title,
            company_name=company,
            value=value,
            probability=probability,
            stage_id=stage_id,
            contact_id=contact_id,
            tags=tags,
            notes=notes,
        )
    except ValidationError as e:
        raise click.BadParameter(str(e))

    async def handler(services):
        stages = await services.pipeline.stages_or_defaults()
        return await services.deals.add(owner_id, draft, stages)

    deal_id = run_with_services(ctx, handler)
    console.print(f"[green]✓ Deal added:[/green] {deal_id}")


@deals.command("stage")
@click.argument("deal_id")
@click.argument("stage_id")
@click.pass_context
def move_deal(ctx, deal_id: str, stage_id: str):
    """Move DEAL_ID to STAGE_ID ("won" closes the deal)."""
    owner_id = get_owner(ctx)

    async def handler(services):
        stages = await services.pipeline.stages_or_defaults()
        await services.deals.update_stage(owner_id, deal_id, stage_id, stages)

    run_with_services(ctx, handler)
    console.print(f"[green]✓ Deal {deal_id} moved to {stage_id}[/green]")


@deals.command("delete")
@click.argument("deal_id")
@click.pass_context
def delete_deal(ctx, deal_id: str):
    """Delete the deal DEAL_ID."""
    owner_id = get_owner(ctx)

    async def handler(services):
        await services.deals.delete(owner_id, deal_id)

    run_with_services(ctx, handler)
    console.print(f"[green]✓ Deal deleted:[/green] {deal_id}")


@deals.command("update")
@click.argument("deal_id")
@click.option("--title")
@click.option("--company")
@click.option("--value", help="Deal value")
@click.option("--probability", help="Win probability in percent")
@click.option("--stage", "stage_id", help="New stage id")
@click.option("--notes")
@click.pass_context
def update_deal(
    ctx,
    deal_id: str,
    title: Optional[str],
    company: Optional[str],
    value: Optional[str],
    probability: Optional[str],
    stage_id: Optional[str],
    notes: Optional[str],
):
    """Change details of DEAL_ID; only the given options are written."""
    owner_id = get_owner(ctx)
    given = {
        "title": title,
        "company_name": company,
        "value": value,
        "probability": probability,
        "stage_id": stage_id,
        "notes": notes,
    }
    try:
        changes = DealUpdate(**{k: v for k, v in given.items() if v is not None})
    except ValidationError as e:
        raise click.BadParameter(str(e))

    async def handler(services):
        stages = await services.pipeline.stages_or_defaults()
        return await services.deals.update_details(owner_id, deal_id, changes, stages)

    if run_with_services(ctx, handler):
        console.print(f"[green]✓ Deal updated:[/green] {deal_id}")
    else:
        console.print("Nothing to update.")
