"""aku CLI — spawn and manage independent coding agents.

Short aliases from the original shell tool (`aku ls`, `aku kill`, ...)
are rewritten to their full command names before Typer sees the
arguments.
"""

from __future__ import annotations

import sys

import typer
from rich.console import Console

from aku.cli import agents
from aku.cli.context import configure_logging
from aku.config import settings

console = Console()

_ALIASES = {
    "run": "spawn",
    "new": "spawn",
    "ls": "list",
    "ps": "list",
    "watch": "attach",
    "kill": "stop",
    "cleanup": "clean",
    "log": "logs",
}

_app = typer.Typer(
    name="aku",
    help="aku -- spawn and manage independent coding agents.",
    no_args_is_help=True,
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)


@_app.callback()
def _main():
    """Spawn and manage independent coding agents.

    State lives in $AKU_DIR (default ~/.aku).
    """
    configure_logging(settings.log_level)


_app.command("spawn")(agents.spawn)
_app.command("spawn-multi")(agents.spawn_multi)
_app.command("list")(agents.list_agents)
_app.command("attach")(agents.attach)
_app.command("stop")(agents.stop)
_app.command("clean")(agents.clean)
_app.command("logs")(agents.logs)


@_app.command("help")
def help_cmd(ctx: typer.Context):
    """Show this help."""
    typer.echo((ctx.parent or ctx).get_help())


@_app.command("version")
def version_cmd():
    """Show aku version."""
    from aku import __version__
    console.print(f"aku v{__version__}")


def app(args: list[str] | None = None) -> None:
    """Entry point that maps command aliases before Typer parses arguments."""
    argv = list(args if args is not None else sys.argv[1:])
    if argv and argv[0] in _ALIASES:
        argv[0] = _ALIASES[argv[0]]
    _app(args=argv, prog_name="aku")
