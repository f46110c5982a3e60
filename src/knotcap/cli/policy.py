"""CLI commands: knotcap policy — check, test and store policy documents."""

from __future__ import annotations

import asyncio

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from knotcap.policy.evaluator import PolicyEvaluator, RequestContext
from knotcap.policy.models import LineKind
from knotcap.policy.parser import load_policy
from knotcap.policy.store import PolicyStore
from knotcap.storage.db import get_db
from knotcap.storage.repos import PolicyRepo

console = Console(stderr=True)


@click.group()
def policy() -> None:
    """Inspect, test and store policies."""


@policy.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
def check(path: str) -> None:
    """Parse a policy file and summarize what was understood."""
    doc = load_policy(path)

    console.print(f"[bold]{escape(doc.name) or '(unnamed)'}[/bold]")
    console.print(
        f"  Default: {doc.default_strategy.value}, "
        f"deny-list: {'on' if doc.denylist_enabled else 'off'}"
    )

    table = Table(title="Lines")
    table.add_column("Kind", style="cyan")
    table.add_column("Count", justify="right")
    for kind in LineKind:
        table.add_row(kind.value, str(doc.count(kind)))
    console.print(table)

    opaque = doc.count(LineKind.OPAQUE)
    if opaque:
        console.print(
            f"  [yellow]{opaque} line(s) kept verbatim without effect[/yellow]"
        )


@policy.command()
@click.argument(
    "path", required=False, type=click.Path(exists=True, dir_okay=False)
)
@click.option("--host", required=True, help="Request host.")
@click.option("--uri", default="", help="Request path or absolute URL.")
@click.option("--client", "client", default="", help="Client identifier.")
@click.pass_context
def match(
    ctx: click.Context, path: str | None, host: str, uri: str, client: str
) -> None:
    """Evaluate one request against a policy file, or the active policy."""
    if path is not None:
        evaluator = PolicyEvaluator(load_policy(path))
    else:
        evaluator = asyncio.run(_active_evaluator(ctx.obj["config"]))
        console.print(f"[dim]Policy: {escape(evaluator.policy.name)}[/dim]")

    verdict = evaluator.evaluate(
        RequestContext(host=host, uri=uri, client_identifier=client)
    )
    if not verdict.matched:
        console.print("[dim]No rule matched[/dim]")
        raise SystemExit(1)
    rule = verdict.matched_rule
    console.print(
        f"[green]Matched[/green] ({verdict.source.value}): {escape(rule.render())}"
    )
    click.echo(verdict.strategy.value)


@policy.command("import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--name", default=None, help="Store under this name.")
@click.pass_context
def import_(ctx: click.Context, path: str, name: str | None) -> None:
    """Store a policy file in the database."""
    config = ctx.obj["config"]
    doc = load_policy(path)

    async def _save() -> str:
        db = await get_db(config.db_path)
        try:
            return await PolicyStore(PolicyRepo(db)).save(doc, name)
        finally:
            await db.close()

    try:
        saved = asyncio.run(_save())
    except ValueError as exc:
        console.print(f"[red]{exc}[/red] (use --name)")
        raise SystemExit(1)
    console.print(f"Stored policy [cyan]{saved}[/cyan] ({doc.rule_count} rules)")


@policy.command("list")
@click.pass_context
def list_(ctx: click.Context) -> None:
    """List stored policies."""
    config = ctx.obj["config"]

    async def _load() -> PolicyStore:
        db = await get_db(config.db_path)
        try:
            store = PolicyStore(PolicyRepo(db))
            await store.load()
            return store
        finally:
            await db.close()

    store = asyncio.run(_load())
    table = Table(title="Policies")
    table.add_column("Name", style="cyan")
    table.add_column("Default")
    table.add_column("Rules", justify="right")
    table.add_column("Author")
    for name in store.names():
        doc = store.get(name)
        marker = " *" if name == config.current_policy else ""
        table.add_row(
            name + marker,
            doc.default_strategy.value,
            str(doc.rule_count),
            doc.author or "",
        )
    console.print(table)


async def _active_evaluator(config) -> PolicyEvaluator:
    """Evaluator for the stored policy named by ``--policy``, else the default."""
    db = await get_db(config.db_path)
    try:
        store = PolicyStore(PolicyRepo(db))
        await store.load()
        return store.evaluator(config.current_policy)
    finally:
        await db.close()
