"""CLI command: knotcap server — serve sessions, policies and exports over HTTP."""

from __future__ import annotations

import asyncio

import click
from rich.console import Console
from rich.markup import escape

from knotcap.policy.store import DEFAULT_POLICY_NAME

console = Console(stderr=True)


@click.command()
@click.option(
    "--port", type=int, default=None, help="Port to listen on (loopback only)."
)
@click.pass_context
def server(ctx: click.Context, port: int | None) -> None:
    """Serve the session, policy and export API."""
    try:
        import uvicorn
    except ImportError:
        console.print(
            "[red]The server needs the web extra.[/red] "
            "Install it with: pip install 'knotcap\\[web]'"
        )
        raise SystemExit(1)

    from knotcap.web.app import create_app

    config = ctx.obj["config"]
    if port is not None:
        config.web_port = port

    console.print(
        f"[bold]knotcap[/bold] API on "
        f"[cyan]http://{config.web_host}:{config.web_port}/api[/cyan]"
    )
    console.print(f"  Database: {escape(str(config.db_path))}")
    console.print(f"  Sessions: {escape(str(config.logs_dir))}")
    console.print(
        f"  Active policy: {escape(config.current_policy or DEFAULT_POLICY_NAME)}"
    )

    async def _serve() -> None:
        app = await create_app(config)
        await uvicorn.Server(
            uvicorn.Config(
                app,
                host=config.web_host,
                port=config.web_port,
                log_level="debug" if config.verbose else "info",
            )
        ).serve()

    asyncio.run(_serve())
