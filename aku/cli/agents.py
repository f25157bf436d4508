"""Agent management commands — aku spawn, list, attach, stop, clean, logs."""

from __future__ import annotations

import contextlib
from typing import Iterator, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from aku.cli.context import AkuContext
from aku.exceptions import AkuError, OrphanedProcessError
from aku.processes.manager import AgentManager, StopOutcome, StopResult

console = Console()
err_console = Console(stderr=True)


def info(msg: str) -> None:
    console.print(f"[cyan]ℹ[/cyan] {msg}")


def ok(msg: str) -> None:
    console.print(f"[green]✓[/green] {msg}")


def warn(msg: str) -> None:
    console.print(f"[yellow]⚠[/yellow] {msg}")


def err(msg: str) -> None:
    err_console.print(f"[red]✗[/red] {msg}")


@contextlib.contextmanager
def handle_errors() -> Iterator[None]:
    """Turn domain errors into a message and exit code 1."""
    try:
        yield
    except OrphanedProcessError as e:
        err_console.print(f"[bold yellow]⚠ WARNING:[/bold yellow] {escape(str(e))}")
        raise typer.Exit(1)
    except AkuError as e:
        err(escape(str(e)))
        raise typer.Exit(1)


def _manager() -> AgentManager:
    return AkuContext.get().ensure_store()


def spawn(
    name: str = typer.Argument(help="Agent name (letters, digits, dash, underscore)"),
    task: Optional[str] = typer.Argument(None, help="Task for the agent"),
    agent_type: Optional[str] = typer.Option(None, "--type", "-t", help="Agent type"),
):
    """Spawn a new independent agent."""
    with handle_errors():
        info(f"Spawning agent: [bold]{escape(name)}[/bold]")
        record = _manager().spawn(name, task, agent_type)

    ok("Agent spawned")
    console.print()
    console.print(f"  Name:    {record.name}")
    console.print(f"  Type:    {escape(record.agent_type)}")
    console.print(f"  PID:     {record.process_id}")
    console.print(f"  Log:     {escape(record.log_path)}")
    console.print(f"  Prompt:  {escape(record.prompt_path)}")
    console.print()
    console.print(f"  Monitor: aku attach {record.name}")
    console.print(f"  Stop:    aku stop {record.name}")


def spawn_multi(
    count: str = typer.Argument(help="Number of agents to spawn"),
    prefix: str = typer.Argument(help="Name prefix; agents are named <prefix>-1 … <prefix>-N"),
    task: Optional[str] = typer.Argument(
        None, help="Task template; {n} and {N} become the agent's index"
    ),
    agent_type: Optional[str] = typer.Option(None, "--type", "-t", help="Agent type"),
):
    """Spawn several agents from one task template."""
    ctx = AkuContext.get()
    with handle_errors():
        ctx.ensure_store()
        result = ctx.batch.spawn_many(count, prefix, task, agent_type)

    for item in result.items:
        if item.ok:
            ok(f"{item.name} [dim](PID {item.record.process_id})[/dim]")
        else:
            err(f"{item.name}: {escape(item.error)}")

    total = len(result.items)
    summary = f"Spawned {result.succeeded} of {total} agent(s)"
    if result.failed:
        warn(f"{summary}, {result.failed} failed")
    else:
        ok(summary)


def list_agents():
    """List all agents (running and stopped)."""
    with handle_errors():
        agents = _manager().list_agents()

    if not agents:
        console.print("[dim]  (no agents)[/dim]")
        return

    table = Table(title="Agents")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("PID", justify="right", no_wrap=True)
    table.add_column("Status", no_wrap=True)
    table.add_column("Type", style="blue")
    table.add_column("Started", style="dim", no_wrap=True)
    table.add_column("Log", overflow="fold")

    for a in agents:
        state_style = "bold green" if a.is_running else "red"
        table.add_row(
            a.name,
            str(a.process_id),
            f"[{state_style}]{a.status.value}[/{state_style}]",
            escape(a.agent_type),
            a.started_at.strftime("%Y-%m-%d %H:%M"),
            escape(a.log_path),
        )

    console.print(table)


def attach(name: str = typer.Argument(help="Agent to attach to")):
    """Attach to an agent's output stream."""
    with handle_errors():
        attachment = _manager().attach(name)

    if not attachment.live:
        warn("Agent is not running. Showing last log output:")
        console.out(next(attachment.chunks, ""), end="", highlight=False)
        return

    info(f"Attached to {name} (Ctrl+C to detach)")
    try:
        for chunk in attachment.chunks:
            console.out(chunk, end="", highlight=False)
    except KeyboardInterrupt:
        console.print()
        info(f"Detached from {name}; the agent keeps running")


def _report_stop(result: StopResult) -> None:
    if result.outcome == StopOutcome.STOPPED:
        ok(f"Stopped {result.name}")
    elif result.outcome == StopOutcome.ALREADY_STOPPED:
        warn(f"Agent {result.name} already stopped")
    else:
        err(f"Could not stop {result.name}: {escape(result.error)}")


def stop(
    name: Optional[str] = typer.Argument(None, help="Agent to stop"),
    all_: bool = typer.Option(False, "--all", help="Stop every running agent"),
):
    """Stop a running agent, or all of them with --all."""
    if all_:
        info("Stopping all agents...")
        with handle_errors():
            results = _manager().stop_all()
        for result in results:
            _report_stop(result)
        stopped = sum(1 for r in results if r.outcome == StopOutcome.STOPPED)
        failed = sum(1 for r in results if r.outcome == StopOutcome.FAILED)
        summary = f"Stopped {stopped} agent(s)"
        if failed:
            warn(f"{summary}, {failed} could not be stopped")
        else:
            ok(summary)
        return

    if not name:
        err("Usage: aku stop <name>")
        console.print("  Use 'aku stop --all' to stop all agents")
        raise typer.Exit(2)

    with handle_errors():
        result = _manager().stop(name)
    _report_stop(result)
    if result.outcome == StopOutcome.FAILED:
        raise typer.Exit(1)


def clean():
    """Remove stopped agents from the registry (log files are kept)."""
    info("Cleaning up stopped agents...")
    with handle_errors():
        count = _manager().clean()
    ok(f"Removed {count} stopped agent(s)")


def logs(
    name: str = typer.Argument(help="Agent whose log to show"),
    tail: Optional[int] = typer.Option(None, "--tail", "-n", min=1, help="Only the last N lines"),
    pager: bool = typer.Option(True, "--pager/--no-pager", help="Page output on a terminal"),
):
    """View an agent's full log file."""
    with handle_errors():
        text = _manager().logs(name)

    if not text:
        console.print(f"[dim]Log for {name} is empty.[/dim]")
        return
    if tail:
        text = "".join(text.splitlines(keepends=True)[-tail:])

    if pager and console.is_terminal:
        with console.pager():
            console.out(text, end="", highlight=False)
    else:
        console.out(text, end="", highlight=False)
