"""CLI commands for assessment results."""

from typing import Optional

import click
from pydantic import ValidationError
from rich.table import Table

from clientdesk.cli_commands.common import console, format_timestamp, get_owner, run_with_services
from clientdesk.core.models import AssessmentDraft, AssessmentTool


@click.group()
def assessments():
    """Assessment results."""
    pass


@assessments.command("list")
@click.option("--contact", "contact_id", help="Only results of this contact")
@click.pass_context
def list_assessments(ctx, contact_id: Optional[str]):
    """List assessment results, most recent first."""
    owner_id = get_owner(ctx)

    async def handler(services):
        results = await services.assessments.list(owner_id)
        if contact_id:
            results = [r for r in results if r.contact_id == contact_id]
        return results

    items = run_with_services(ctx, handler)
    if not items:
        console.print("No assessment results.")
        return

    table = Table(title=f"Assessments ({len(items)})")
    table.add_column("ID", style="dim")
    table.add_column("Tool", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("Contact")
    table.add_column("Recommendations", justify="right")
    table.add_column("Completed", style="dim")
    for result in items:
        table.add_row(
            result.id,
            result.tool.value,
            f"{result.score:g}",
            result.assessed_email or result.contact_id or "-",
            str(len(result.recommendations)),
            format_timestamp(result.completed_at),
        )
    console.print(table)


@assessments.command("add")
@click.argument("email")
@click.option(
    "--tool",
    type=click.Choice([t.value for t in AssessmentTool]),
    default=AssessmentTool.DIGITAL_ASSESSMENT.value,
    show_default=True,
)
@click.option("--score", type=float, required=True)
@click.option(
    "--recommendation",
    "recommendations",
    multiple=True,
    help="Recommendation text; repeat for several",
)
@click.pass_context
def add_assessment(ctx, email: str, tool: str, score: float, recommendations):
    """Record an assessment for the contact with EMAIL (created as a lead if unknown)."""
    owner_id = get_owner(ctx)
    try:
        draft = AssessmentDraft(
            contact_email=email,
            tool_name=tool,
            score=score,
            recommendations="\n".join(recommendations),
        )
    except ValidationError as e:
        raise click.BadParameter(str(e))

    async def handler(services):
        return await services.assessments.add(owner_id, draft)

    result_id = run_with_services(ctx, handler)
    console.print(f"[green]✓ Assessment saved:[/green] {result_id}")
