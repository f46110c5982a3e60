"""CLI entry point — Click group with global options."""

from __future__ import annotations

import logging

import click

from knotcap import __version__
from knotcap.config import KnotConfig


@click.group()
@click.version_option(version=__version__, prog_name="knotcap")
@click.option(
    "--policy",
    "-p",
    "policy_name",
    default=None,
    help="Name of the stored policy to use (default: built-in).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.pass_context
def main(ctx: click.Context, policy_name: str | None, verbose: bool) -> None:
    """Knotcap — classify and export captured HTTP(S) sessions."""
    ctx.ensure_object(dict)
    config = KnotConfig.load()
    config.verbose = verbose
    if policy_name:
        config.current_policy = policy_name
    ctx.obj["config"] = config

    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _register_commands() -> None:
    from knotcap.cli.export import export  # noqa: F811
    from knotcap.cli.policy import policy  # noqa: F811
    from knotcap.cli.server import server  # noqa: F811
    from knotcap.cli.sessions import sessions  # noqa: F811

    main.add_command(policy)
    main.add_command(sessions)
    main.add_command(export)
    main.add_command(server)


_register_commands()
