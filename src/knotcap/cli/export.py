"""CLI command: knotcap export KIND ID... — write or delete session artifacts."""

from __future__ import annotations

import asyncio

import click
from rich.console import Console

from knotcap.export.har import ArchiveBuilder
from knotcap.export.pipeline import Artifact, Exporter, ExportKind, ExportPipeline
from knotcap.session.files import SessionFiles
from knotcap.storage.db import get_db
from knotcap.storage.repos import SessionRepo

console = Console(stderr=True)


@click.command()
@click.argument("kind", type=click.Choice([k.value for k in ExportKind]))
@click.argument("ids", nargs=-1, required=True)
@click.pass_context
def export(ctx: click.Context, kind: str, ids: tuple[str, ...]) -> None:
    """Export sessions as a URL list, curl commands or a HAR file, or delete them."""
    config = ctx.obj["config"]
    export_kind = ExportKind(kind)

    async def _run() -> Artifact:
        db = await get_db(config.db_path)
        try:
            files = SessionFiles(config.logs_dir)
            exporter = Exporter(
                files,
                config.output_dir,
                product_name=config.product_name,
                builder=ArchiveBuilder(files, config.small_body_limit),
            )
            return await ExportPipeline(SessionRepo(db), exporter).run(
                list(ids), export_kind
            )
        finally:
            await db.close()

    artifact = asyncio.run(_run())
    if artifact is None:
        console.print("[red]Export failed[/red]")
        raise SystemExit(1)
    if artifact == "":
        console.print(f"Deleted {len(ids)} session(s)")
        return
    console.print(f"Wrote [cyan]{artifact}[/cyan]")
    click.echo(artifact)
