"""Helpers shared by the CLI subcommands."""

import asyncio
import sys
from datetime import datetime
from typing import Awaitable, Callable, Optional, TypeVar

import click
import structlog
from rich.console import Console

from clientdesk.core.config import validate_required_settings
from clientdesk.core.exceptions import ClientDeskError, ConfigurationError, InvalidArgumentError
from clientdesk.services.factory import Services, build_services

logger = structlog.get_logger(__name__)

console = Console()
err_console = Console(stderr=True)

T = TypeVar("T")


def get_owner(ctx: click.Context) -> str:
    """Owner id handed over by ``--user`` / ``CLIENTDESK_USER_ID``."""
    owner_id = (ctx.obj or {}).get("user")
    if not owner_id:
        raise click.UsageError("No user set. Pass --user or set CLIENTDESK_USER_ID.")
    return owner_id


def run_with_services(ctx: click.Context, handler: Callable[[Services], Awaitable[T]]) -> T:
    """
    Build the services, run ``handler`` on a fresh event loop and close the store.

    Refuses to start when the Firestore backend lacks its settings. The memory
    backend only runs when chosen explicitly and always prints a warning.
    """
    settings = ctx.obj["settings"]
    missing = validate_required_settings(settings)
    if missing:
        console.print(f"[red]Configuration Error:[/red] missing {', '.join(missing)}")
        console.print(
            "Configure Firestore, or pass --ephemeral (or set STORE_BACKEND=memory) "
            "for a throwaway store."
        )
        sys.exit(1)
    if settings.store.backend == "memory":
        err_console.print(
            "[yellow]Warning:[/yellow] using the in-process memory store; "
            "changes are discarded when the command exits"
        )

    async def _run():
        services = build_services(settings)
        try:
            return await handler(services)
        finally:
            await services.close()

    try:
        return asyncio.run(_run())
    except ConfigurationError as e:
        console.print(f"[red]Configuration Error:[/red] {e}")
        sys.exit(1)
    except InvalidArgumentError as e:
        console.print(f"[red]Invalid input:[/red] {e}")
        sys.exit(2)
    except ClientDeskError as e:
        console.print(f"[red]Store Error:[/red] {e}")
        sys.exit(1)
    except asyncio.TimeoutError:
        console.print("[red]Timed out waiting for the store[/red]")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("[yellow]Stopped[/yellow]")
        sys.exit(130)


def format_timestamp(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "-"


def format_money(value: float) -> str:
    return f"€{value:,.2f}"
