"""CLI commands for tasks."""

from typing import Optional

import click
from pydantic import ValidationError
from rich.table import Table

from clientdesk.cli_commands.common import console, format_timestamp, get_owner, run_with_services
from clientdesk.core.models import Priority, TaskDraft, TaskStatus, TaskUpdate


@click.group()
def tasks():
    """Tasks."""
    pass


@tasks.command("list")
@click.option("--status", type=click.Choice([s.value for s in TaskStatus]))
@click.option("--templates", "templates_only", is_flag=True, help="Only template tasks")
@click.pass_context
def list_tasks(ctx, status: Optional[str], templates_only: bool):
    """List tasks, earliest due date first."""
    owner_id = get_owner(ctx)

    async def handler(services):
        if templates_only:
            return await services.tasks.templates(owner_id)
        return await services.tasks.list(owner_id, status=status)

    items = run_with_services(ctx, handler)
    if not items:
        console.print("No tasks.")
        return

    table = Table(title=f"Tasks ({len(items)})")
    table.add_column("ID", style="dim")
    table.add_column("Title", style="cyan")
    table.add_column("Status")
    table.add_column("Priority")
    table.add_column("Due", style="dim")
    for task in items:
        table.add_row(
            task.id,
            task.title,
            task.status.value,
            task.priority.value if task.priority else "-",
            format_timestamp(task.due_date),
        )
    console.print(table)


@tasks.command("add")
@click.argument("title")
@click.option("--description", default="")
@click.option("--due", help="Due date, e.g. 2024-05-01")
@click.option(
    "--priority",
    type=click.Choice([p.value for p in Priority]),
    default=Priority.MEDIUM.value,
    show_default=True,
)
@click.option("--deal", "deal_id", help="Related deal id")
@click.option("--contact", "contact_id", help="Related contact id")
@click.option("--template", is_flag=True, help="Store as a reusable template")
@click.pass_context
def add_task(
    ctx,
    title: str,
    description: str,
    due: Optional[str],
    priority: str,
    deal_id: Optional[str],
    contact_id: Optional[str],
    template: bool,
):
    """Add a task called TITLE."""
    owner_id = get_owner(ctx)
    try:
        draft = TaskDraft(
            title=title,
            description=description,
            due_date=due,
            priority=priority,
            related_deal_id=deal_id,
            related_contact_id=contact_id,
            template=template,
        )
    except ValidationError as e:
        raise click.BadParameter(str(e))

    async def handler(services):
        return await services.tasks.add(owner_id, draft)

    task_id = run_with_services(ctx, handler)
    console.print(f"[green]✓ Task added:[/green] {task_id}")


@tasks.command("status")
@click.argument("task_id")
@click.argument("status", type=click.Choice([s.value for s in TaskStatus]))
@click.pass_context
def set_status(ctx, task_id: str, status: str):
    """Set the status of TASK_ID."""
    owner_id = get_owner(ctx)

    async def handler(services):
        await services.tasks.update(owner_id, task_id, TaskUpdate(status=status))

    run_with_services(ctx, handler)
    console.print(f"[green]✓ Task {task_id} is {status}[/green]")


@tasks.command("delete")
@click.argument("task_id")
@click.pass_context
def delete_task(ctx, task_id: str):
    """Delete the task TASK_ID."""
    owner_id = get_owner(ctx)

    async def handler(services):
        await services.tasks.delete(owner_id, task_id)

    run_with_services(ctx, handler)
    console.print(f"[green]✓ Task deleted:[/green] {task_id}")
