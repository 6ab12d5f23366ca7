#!/usr/bin/env -S uv run
"""
Queue console for rqueue

Inspect and poke a Redis-backed queue from the command line: show its
attributes, send and receive messages, remove one, or clear it.

Usage:
    uv run tools/queue_console.py status --queue emails --namespace myapp
    uv run tools/queue_console.py send '{"to": "user@example.com"}' --delay 10
    uv run tools/queue_console.py receive --count 5
    uv run tools/queue_console.py clear --yes
    uv run tools/queue_console.py --help

Connection settings fall back to RQUEUE_* environment variables.
"""
# /// script
# requires-python = ">=3.11"
# dependencies = [
#     "pydantic>=2.5",
#     "pydantic-settings>=2.7",
#     "redis>=5.0.1",
#     "structlog>=23.1",
#     "typer>=0.9.0",
#     "rich>=13.0",
# ]
# ///

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# Import rqueue from the local checkout
sys.path.insert(0, str(Path(__file__).parent.parent))

from rqueue import ClientSettings, ConnectionFatalError, QueueClient, RQueueError, log

T = TypeVar("T")

app = typer.Typer(
    help="Inspect and operate an rqueue queue",
    add_completion=False,
)
console = Console()


# ---------------------------------------------------------------------------
# Shared options
# ---------------------------------------------------------------------------


QueueOpt = typer.Option(None, "--queue", "-q", help="Queue name (RQUEUE_QUEUE_NAME)")
NamespaceOpt = typer.Option(
    None, "--namespace", "-n", help="Queue namespace (RQUEUE_NAMESPACE)"
)
HostOpt = typer.Option(None, "--host", help="Redis host (RQUEUE_HOST)")
PortOpt = typer.Option(None, "--port", help="Redis port (RQUEUE_PORT)")
VerboseOpt = typer.Option(False, "--verbose", "-v", help="Show client logs")


def _settings(
    queue: str | None,
    namespace: str | None,
    host: str | None,
    port: int | None,
) -> ClientSettings:
    overrides = {
        k: v
        for k, v in {
            "queue_name": queue,
            "namespace": namespace,
            "host": host,
            "port": port,
        }.items()
        if v is not None
    }
    try:
        return ClientSettings(**overrides)
    except ValueError as exc:
        console.print(f"[bold red]Invalid settings:[/bold red] {exc}")
        raise typer.Exit(code=2) from exc


def _run(
    settings: ClientSettings,
    verbose: bool,
    fn: Callable[[QueueClient], Awaitable[T]],
) -> T:
    """Run `fn` against a started client; fail fast if Redis never comes up."""
    log.configure("debug" if verbose else "warning")

    async def _main() -> T:
        async with QueueClient.from_settings(settings, log.get_logger()) as client:
            work = asyncio.ensure_future(fn(client))
            watch = asyncio.ensure_future(client.watch())
            done, _ = await asyncio.wait(
                {work, watch}, return_when=asyncio.FIRST_COMPLETED
            )
            if work not in done:
                work.cancel()
                watch.result()
            watch.cancel()
            return work.result()

    try:
        return asyncio.run(_main())
    except ConnectionFatalError as exc:
        console.print(f"[bold red]Redis unreachable:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc
    except RQueueError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def status(
    queue: str | None = QueueOpt,
    namespace: str | None = NamespaceOpt,
    host: str | None = HostOpt,
    port: int | None = PortOpt,
    verbose: bool = VerboseOpt,
) -> None:
    """Show queue attributes and message counts."""
    settings = _settings(queue, namespace, host, port)
    attrs = _run(settings, verbose, lambda c: c.queue_status())

    table = Table(title=f"{settings.namespace}:{settings.queue_name}")
    table.add_column("Attribute", style="cyan")
    table.add_column("Value", justify="right", style="green")
    for name, value in attrs.model_dump().items():
        table.add_row(name, str(value))
    console.print(table)


@app.command()
def send(
    message: str = typer.Argument(..., help="JSON payload"),
    delay: int = typer.Option(0, "--delay", "-d", min=0, help="Delay in seconds"),
    queue: str | None = QueueOpt,
    namespace: str | None = NamespaceOpt,
    host: str | None = HostOpt,
    port: int | None = PortOpt,
    verbose: bool = VerboseOpt,
) -> None:
    """Send a JSON message."""
    try:
        payload: Any = json.loads(message)
    except json.JSONDecodeError as exc:
        console.print(f"[bold red]Message is not valid JSON:[/bold red] {exc}")
        raise typer.Exit(code=2) from exc

    settings = _settings(queue, namespace, host, port)
    msg_id = _run(settings, verbose, lambda c: c.add_message(payload, delay))
    console.print(f"[green]Sent[/green] {msg_id}")


@app.command()
def receive(
    count: int = typer.Option(1, "--count", "-c", min=1, help="Messages to receive"),
    timeout: float = typer.Option(
        30.0, "--timeout", "-t", help="Seconds to wait for each message"
    ),
    queue: str | None = QueueOpt,
    namespace: str | None = NamespaceOpt,
    host: str | None = HostOpt,
    port: int | None = PortOpt,
    verbose: bool = VerboseOpt,
) -> None:
    """Receive (and consume) messages."""
    settings = _settings(queue, namespace, host, port)

    async def _receive(client: QueueClient) -> list[Any]:
        received = []
        for _ in range(count):
            try:
                received.append(
                    await asyncio.wait_for(client.get_message(), timeout)
                )
            except TimeoutError:
                break
        return received

    messages = _run(settings, verbose, _receive)
    if not messages:
        console.print("[yellow]No message received[/yellow]")
        raise typer.Exit(code=1)

    for msg in messages:
        console.print(
            Panel(
                json.dumps(msg.message, indent=2),
                title=msg.queue_id,
                border_style="blue",
            )
        )


@app.command()
def remove(
    message_id: str = typer.Argument(..., help="Message id"),
    queue: str | None = QueueOpt,
    namespace: str | None = NamespaceOpt,
    host: str | None = HostOpt,
    port: int | None = PortOpt,
    verbose: bool = VerboseOpt,
) -> None:
    """Delete a message by id."""
    settings = _settings(queue, namespace, host, port)
    _run(settings, verbose, lambda c: c.remove_message(message_id))
    console.print(f"[green]Removed[/green] {message_id}")


@app.command()
def clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    queue: str | None = QueueOpt,
    namespace: str | None = NamespaceOpt,
    host: str | None = HostOpt,
    port: int | None = PortOpt,
    verbose: bool = VerboseOpt,
) -> None:
    """Delete and recreate the queue, dropping every message."""
    settings = _settings(queue, namespace, host, port)
    if not yes:
        typer.confirm(
            f"Drop every message in {settings.namespace}:{settings.queue_name}?",
            abort=True,
        )
    _run(settings, verbose, lambda c: c.clear_queue())
    console.print("[green]Queue cleared[/green]")


if __name__ == "__main__":
    app()
