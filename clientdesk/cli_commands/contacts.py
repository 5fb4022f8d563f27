"""CLI commands for contacts."""

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
from clientdesk.core.models import ContactDraft, ContactStatus, LeadSource, Priority


@click.group()
def contacts():
    """Contacts."""
    pass


@contacts.command("list")
@click.pass_context
def list_contacts(ctx):
    """List contacts, newest first."""
    owner_id = get_owner(ctx)

    async def handler(services):
        return await services.contacts.list(owner_id)

    items = run_with_services(ctx, handler)
    if not items:
        console.print("No contacts.")
        return

    table = Table(title=f"Contacts ({len(items)})")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Company")
    table.add_column("E-mail")
    table.add_column("Status")
    table.add_column("Deal value", justify="right")
    table.add_column("Created", style="dim")
    for contact in items:
        table.add_row(
            contact.id,
            contact.name,
            contact.company,
            contact.email,
            contact.status.value,
            format_money(contact.deal_value),
            format_timestamp(contact.created_at),
        )
    console.print(table)


@contacts.command("add")
@click.argument("name")
@click.option("--email", default="")
@click.option("--company", default="")
@click.option("--phone", default="")
@click.option("--deal-value", default="", help="Amount; text that is not a number counts as 0")
@click.option(
    "--status",
    type=click.Choice([s.value for s in ContactStatus]),
    default=ContactStatus.LEAD.value,
    show_default=True,
)
@click.option(
    "--priority",
    type=click.Choice([p.value for p in Priority]),
    default=Priority.MEDIUM.value,
    show_default=True,
)
@click.option(
    "--lead-source",
    type=click.Choice([s.value for s in LeadSource]),
    default=LeadSource.OTHER.value,
    show_default=True,
)
@click.option("--tags", default="", help="Comma-separated tags")
@click.option("--notes", default="")
@click.pass_context
def add_contact(
    ctx,
    name: str,
    email: str,
    company: str,
    phone: str,
    deal_value: str,
    status: str,
    priority: str,
    lead_source: str,
    tags: str,
    notes: str,
):
    """Add a contact called NAME."""
    owner_id = get_owner(ctx)
    try:
        draft = ContactDraft(
            name=name,
            email=email,
            company=company,
            phone=phone,
            deal_value=deal_value,
            status=status,
            priority=priority,
            lead_source=lead_source,
            tags=tags,
            notes=notes,
        )
    except ValidationError as e:
        raise click.BadParameter(str(e))

    async def handler(services):
        return await services.contacts.create(owner_id, draft)

    contact_id = run_with_services(ctx, handler)
    console.print(f"[green]✓ Contact added:[/green] {contact_id}")


@contacts.command("delete")
@click.argument("contact_id")
@click.pass_context
def delete_contact(ctx, contact_id: str):
    """Delete the contact CONTACT_ID."""
    owner_id = get_owner(ctx)

    async def handler(services):
        await services.contacts.delete(owner_id, contact_id)

    run_with_services(ctx, handler)
    console.print(f"[green]✓ Contact deleted:[/green] {contact_id}")


@contacts.command("find")
@click.argument("email")
@click.pass_context
def find_contact(ctx, email: str):
    """Look up a contact by EMAIL."""
    owner_id = get_owner(ctx)

    async def handler(services):
        return await services.contacts.find_by_email(owner_id, email)

    contact = run_with_services(ctx, handler)
    if contact is None:
        console.print(f"No contact with e-mail {email}")
        return
    console.print(f"[cyan]{contact.name}[/cyan] ({contact.id}) {contact.status.value}")
