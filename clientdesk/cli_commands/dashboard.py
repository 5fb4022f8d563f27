"""Dashboard command: KPIs and chart series as tables."""

import click
from rich.table import Table

from clientdesk.cli_commands.common import (
    console,
    format_money,
    format_timestamp,
    get_owner,
    run_with_services,
)
from clientdesk.services.dashboard import DashboardView


@click.command()
@click.option("--days", default=30, show_default=True, help="Activity window in days")
@click.option("--timeout", default=10.0, show_default=True, help="Seconds to wait for data")
@click.pass_context
def dashboard(ctx, days: int, timeout: float):
    """Show the user's dashboard."""
    owner_id = get_owner(ctx)

    async def handler(services):
        async with DashboardView(
            services.deals, services.contacts, services.activities, owner_id
        ) as view:
            stages = await services.pipeline.stages_or_defaults()
            await view.wait_ready(timeout)
            return (
                view.kpis(),
                view.pipeline(stages),
                view.revenue(),
                view.contacts_growth(),
                view.activity(days),
                view.top_deals(),
                view.recent_activities(),
            )

    kpis, pipeline, revenue, growth, activity, top, recent = run_with_services(ctx, handler)

    table = Table(title="Dashboard")
    table.add_column("KPI", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Active deals", str(kpis.active_deals))
    table.add_row("Active deal value", format_money(kpis.active_deals_value))
    table.add_row("Pipeline value", format_money(kpis.pipeline_value))
    table.add_row("New contacts (7 days)", str(kpis.new_contacts))
    table.add_row("Open tasks", str(kpis.open_tasks))
    console.print(table)

    if pipeline:
        stages = Table(title="Pipeline")
        stages.add_column("Stage", style="cyan")
        stages.add_column("Deals", justify="right")
        stages.add_column("Value", justify="right")
        for point in pipeline:
            stages.add_row(point.stage, str(point.count), format_money(point.value))
        console.print(stages)

    if revenue:
        months = Table(title="Revenue")
        months.add_column("Month", style="cyan")
        months.add_column("Revenue", justify="right")
        for point in revenue:
            months.add_row(point.month, format_money(point.revenue))
        console.print(months)

    if growth:
        contacts = Table(title="Contacts")
        contacts.add_column("Month", style="cyan")
        contacts.add_column("New", justify="right")
        contacts.add_column("Total", justify="right")
        for point in growth:
            contacts.add_row(point.month, str(point.new), str(point.total))
        console.print(contacts)

    if activity:
        per_day = Table(title=f"Activities (last {days} days)")
        per_day.add_column("Day", style="cyan")
        for column in ("Calls", "E-mails", "Meetings", "Tasks"):
            per_day.add_column(column, justify="right")
        for point in activity:
            per_day.add_row(
                point.day, str(point.calls), str(point.emails), str(point.meetings), str(point.tasks)
            )
        console.print(per_day)

    if top:
        best = Table(title="Top deals")
        best.add_column("Deal", style="cyan")
        best.add_column("Stage")
        best.add_column("Value", justify="right")
        for deal in top:
            best.add_row(deal.title, deal.stage, format_money(deal.value))
        console.print(best)

    if recent:
        latest = Table(title="Recent activities")
        latest.add_column("Date", style="dim")
        latest.add_column("Type")
        latest.add_column("Title", style="cyan")
        for item in recent:
            latest.add_row(format_timestamp(item.activity_date), item.type.value, item.title)
        console.print(latest)
