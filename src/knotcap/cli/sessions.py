"""CLI command: knotcap sessions — search captured sessions."""

from __future__ import annotations

import asyncio

import click
from rich.console import Console
from rich.table import Table

from knotcap.session.models import SessionRecord
from knotcap.storage.db import get_db
from knotcap.storage.repos import SessionRepo

console = Console(stderr=True)


@click.command()
@click.option("--keyword", "-k", default=None, help="Free-text search.")
@click.option("--host", multiple=True, help="Only these hosts (repeatable).")
@click.option("--limit", type=int, default=50, show_default=True)
@click.pass_context
def sessions(
    ctx: click.Context, keyword: str | None, host: tuple[str, ...], limit: int
) -> None:
    """List captured sessions, newest first."""
    config = ctx.obj["config"]

    async def _search() -> list[SessionRecord]:
        db = await get_db(config.db_path)
        try:
            filters = {"host": list(host)} if host else None
            return await SessionRepo(db).search(
                keyword=keyword, filters=filters, limit=limit
            )
        finally:
            await db.close()

    records = asyncio.run(_search())
    if not records:
        console.print("[dim]No sessions found[/dim]")
        return

    table = Table(title=f"Sessions ({len(records)})")
    table.add_column("ID", style="dim")
    table.add_column("Method")
    table.add_column("Status")
    table.add_column("Host", style="cyan")
    table.add_column("Path")
    for record in records:
        table.add_row(
            record.id,
            record.method,
            record.rsp_status or "-",
            record.host,
            record.short_url(),
        )
    console.print(table)
