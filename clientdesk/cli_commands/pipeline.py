"""CLI commands for the pipeline stage catalog."""

from typing import Tuple

import click
from rich.table import Table

from clientdesk.cli_commands.common import console, run_with_services


def _stages_table(stages, title: str = "Pipeline") -> Table:
    table = Table(title=title)
    table.add_column("#", justify="right", style="dim")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Probability", justify="right")
    for stage in stages:
        probability = f"{stage.probability}%" if stage.probability is not None else "-"
        table.add_row(str(stage.order), stage.id, stage.name, probability)
    return table


@click.group()
def pipeline():
    """Pipeline stages deals move through."""
    pass


@pipeline.command("list")
@click.pass_context
def list_stages(ctx):
    """Show the stored stages, or the defaults when none are stored."""

    async def handler(services):
        stored = await services.pipeline.stages()
        return stored, stored or await services.pipeline.stages_or_defaults()

    stored, stages = run_with_services(ctx, handler)
    title = "Pipeline" if stored else "Pipeline (defaults, not stored)"
    console.print(_stages_table(stages, title))


@pipeline.command("init")
@click.pass_context
def init_stages(ctx):
    """Store the default stages if the catalog is empty."""

    async def handler(services):
        return await services.pipeline.initialize_defaults()

    if run_with_services(ctx, handler):
        console.print("[green]✓ Default pipeline stages stored[/green]")
    else:
        console.print("Pipeline stages already exist.")


@pipeline.command("reorder")
@click.argument("stage_ids", nargs=-1, required=True)
@click.pass_context
def reorder_stages(ctx, stage_ids: Tuple[str, ...]):
    """Put the stages into the order of STAGE_IDS."""

    async def handler(services):
        return await services.pipeline.reorder(list(stage_ids))

    console.print(_stages_table(run_with_services(ctx, handler)))
