"""
"Doctor" command: consolidated health, config, and diagnostics.

Runs a series of checks and prints a concise, friendly report:
 - Config summary and required keys
 - Store backend reachability
 - Notification permission
"""

from __future__ import annotations

import asyncio

import click

from clientdesk.core.config import (
    get_settings,
    print_configuration_summary,
    validate_required_settings,
)
from clientdesk.data.firestore_client import FirestoreRestStore


async def _firestore_health(store_config) -> dict:
    store = FirestoreRestStore(store_config)
    try:
        return await store.health_check()
    finally:
        await store.close()


@click.command()
@click.pass_context
def doctor(ctx):
    """Run ClientDesk diagnostics and print a summary report."""
    click.echo("ClientDesk Doctor")
    click.echo("=" * 40)

    # Config summary
    cfg = (ctx.obj or {}).get("settings") or get_settings()
    print_configuration_summary(cfg)
    user = (ctx.obj or {}).get("user") or cfg.user_id

    missing = validate_required_settings(cfg)
    if missing:
        click.echo("\nMissing configuration:")
        for item in missing:
            click.echo(f"  ✗ {item}")
    else:
        click.echo("\n✓ Required configuration present")

    if user:
        click.echo(f"✓ User: {user}")
    else:
        click.echo("- No user set (pass --user or set CLIENTDESK_USER_ID)")

    # Store health
    if cfg.store.backend == "memory":
        click.echo("- Memory store in use: data lives only as long as the process")
    elif not missing:
        try:
            health = asyncio.run(_firestore_health(cfg.store))
            if health.get("status") == "healthy":
                click.echo(f"✓ Firestore healthy ({cfg.store.project_id})")
            else:
                click.echo(f"✗ Firestore unhealthy: {health.get('error', 'unknown')}")
        except Exception as e:
            click.echo(f"✗ Firestore init failed: {e}")
    else:
        click.echo("- Firestore not fully configured")

    click.echo(f"\nNotifications: {cfg.notifications.permission}")
    click.echo("\nDone.")
