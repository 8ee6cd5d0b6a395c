#!/usr/bin/env python3
"""
Utility script to view invite requests and locked accounts.
Usage: python scripts/view_invites.py [status]
"""

import sys
import os

# Add project root to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rich.console import Console
from rich.table import Table
from rich import print as rprint

from dashgate.config import settings
from dashgate.auth.database import build_record_store
from dashgate.auth.invites import InviteService
from dashgate.auth.models import InviteStatus
from dashgate.auth.users import UserDirectory

console = Console()


def view_invites(status=None):
    if not settings.DATABASE_URL:
        rprint("[red]DATABASE_URL is not set; nothing to show for a memory store[/red]")
        return

    store, engine = build_record_store(settings.DATABASE_URL)
    try:
        service = InviteService(store, UserDirectory(store), settings)

        table = Table(title="Invite Requests" + (f" ({status.value})" if status else ""))
        table.add_column("Created", style="cyan", no_wrap=True)
        table.add_column("Email", style="yellow")
        table.add_column("Status", style="magenta")
        table.add_column("Code", style="green")
        table.add_column("ID", style="white")

        requests = service.list_requests(status)
        for request in requests:
            table.add_row(
                request.created_at.strftime("%Y-%m-%d %H:%M:%S"),
                request.email,
                request.status.value,
                request.code or "-",
                request.id,
            )

        if requests:
            console.print(table)
        else:
            rprint("[yellow]No invite requests found.[/yellow]")

        locked = service.lockouts.all()
        if locked:
            locked_table = Table(title="Locked Accounts")
            locked_table.add_column("Email", style="red")
            locked_table.add_column("Locked At", style="cyan")
            for account in locked:
                locked_table.add_row(account.email, account.locked_at.strftime("%Y-%m-%d %H:%M:%S"))
            console.print(locked_table)
    finally:
        engine.dispose()


if __name__ == "__main__":
    status = InviteStatus(sys.argv[1]) if len(sys.argv) > 1 else None
    view_invites(status)
