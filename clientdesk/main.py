"""
Main application entry point for ClientDesk.

Provides the CLI over the CRM data-access core.
"""

import sys
from typing import Optional

import click
from pydantic import ValidationError
from rich.console import Console

from clientdesk.cli_commands.assessments import assessments
from clientdesk.cli_commands.contacts import contacts
from clientdesk.cli_commands.dashboard import dashboard
from clientdesk.cli_commands.deals import deals
from clientdesk.cli_commands.doctor import doctor
from clientdesk.cli_commands.pipeline import pipeline
from clientdesk.cli_commands.retention import retention
from clientdesk.cli_commands.tasks import tasks
from clientdesk.cli_commands.templates import templates
from clientdesk.core.config import get_settings, print_configuration_summary, validate_required_settings
from clientdesk.core.logging import set_correlation_id, set_owner_id, setup_logging

console = Console()


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--user", "user_id", help="User id (defaults to CLIENTDESK_USER_ID)")
@click.option("--correlation-id", help="Set correlation ID for request tracing")
@click.option(
    "--ephemeral",
    is_flag=True,
    help="Use a throwaway in-process store; nothing is saved",
)
@click.pass_context
def main(
    ctx,
    debug: bool,
    user_id: Optional[str],
    correlation_id: Optional[str],
    ephemeral: bool,
):
    """CRM contacts, deals, tasks, assessments and recurring tasks.

    Reads and watches the data of one user in the configured document store
    (Firestore unless STORE_BACKEND=memory or --ephemeral is given).
    """
    # Ensure context object exists
    ctx.ensure_object(dict)

    try:
        settings = get_settings()
    except ValidationError as e:
        console.print(f"[red]Configuration Error:[/red] {e}")
        sys.exit(1)

    if ephemeral:
        store = settings.store.model_copy(update={"backend": "memory"})
        settings = settings.model_copy(update={"store": store})

    setup_logging(debug=debug or settings.debug, environment=settings.environment)

    owner_id = user_id or settings.user_id
    correlation_id = set_correlation_id(correlation_id)
    set_owner_id(owner_id)

    # Store global options
    ctx.obj["debug"] = debug
    ctx.obj["settings"] = settings
    ctx.obj["user"] = owner_id
    ctx.obj["correlation_id"] = correlation_id
    ctx.obj["ephemeral"] = ephemeral


# Add subcommand groups
main.add_command(templates)
main.add_command(retention)
main.add_command(contacts)
main.add_command(deals)
main.add_command(pipeline)
main.add_command(tasks)
main.add_command(assessments)
main.add_command(dashboard)
main.add_command(doctor)


@main.command()
@click.pass_context
def config(ctx):
    """Display current configuration."""
    settings = ctx.obj["settings"]
    missing = validate_required_settings(settings)
    if missing:
        console.print("[red]Configuration Issues:[/red]")
        for item in missing:
            console.print(f"  • Missing: {item}")
        console.print()
    else:
        console.print("[green]Configuration Valid[/green]")
        console.print()

    print_configuration_summary(settings)
    sys.exit(0 if not missing else 1)


if __name__ == "__main__":
    main()
