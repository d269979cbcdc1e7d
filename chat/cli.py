#!/usr/bin/env python3

from __future__ import annotations
import asyncio
import json
from pathlib import Path
from typing import Optional, Set

import typer
from aioconsole import ainput
from rich.console import Console
from rich.table import Table
from rich.text import Text

from common.config import ChatConfig, load_config
from common.errors import ChatError
from common.log import configure_root_logging, get_logger
from common.message import DEFAULT_USERNAME, Message
from .connection import ConnectionManager
from .session import MessageSession, is_own_message
from .state import ChatSnapshot, ConnectionState

app = typer.Typer(help="WebSocket chat client")
console = Console()
logger = get_logger(__name__)

HELP_TEXT = "/retry, /name <name>, /status, /help, /quit"


class TranscriptPrinter:
    """Prints log additions, rollbacks and status changes from session snapshots."""

    def __init__(self, out: Console) -> None:
        self.out = out
        self._shown: Set[str] = set()
        self._state: Optional[ConnectionState] = None
        self._error: Optional[str] = None

    def __call__(self, snapshot: ChatSnapshot) -> None:
        if snapshot.state is not self._state:
            self._state = snapshot.state
            colour = "green" if snapshot.is_connected else "red"
            self.out.print(f"[{colour}]● {snapshot.state.value.capitalize()}[/]")

        if snapshot.last_error and snapshot.last_error != self._error:
            self.out.print(f"[orange3]⚠ {snapshot.last_error}[/] (type /retry to reconnect)")
        self._error = snapshot.last_error

        current = {m.id for m in snapshot.messages}
        for message in snapshot.messages:
            if message.id not in self._shown:
                self._shown.add(message.id)
                self.out.print(render_message(message, is_own_message(message, snapshot.username)))

        for lost in self._shown - current:
            self._shown.discard(lost)
            self.out.print(f"[red]Not delivered[/]; draft restored: {snapshot.draft}")


def render_message(message: Message, own: bool) -> Text:
    stamp = message.timestamp.astimezone().strftime("%H:%M")
    if own:
        line = Text(justify="right")
        line.append("You", style="dim")
        line.append(f" {stamp}  ", style="dim")
        line.append(message.text, style="bold white on blue")
    else:
        line = Text(justify="left")
        line.append(message.user, style="dim")
        line.append(f" {stamp}  ", style="dim")
        line.append(message.text)
    return line


def _status_table(session: MessageSession) -> Table:
    table = Table(title="Session")
    table.add_column("Key")
    table.add_column("Value")
    for key, value in session.status().items():
        table.add_row(key, "" if value is None else str(value))
    return table


async def chat_loop(config: ChatConfig) -> None:
    connection = ConnectionManager(
        reconnect_delay=config.reconnect_delay,
        ping_interval=config.ping_interval,
        ping_timeout=config.ping_timeout,
    )
    session = MessageSession(connection, username=config.username)
    session.subscribe(TranscriptPrinter(console))

    console.print(f"[bold green]wschat[/] as {session.username} on {config.endpoint}")
    try:
        await session.start(config.endpoint)
    except ChatError as e:
        console.print(f"[red]{e}[/]")

    try:
        while True:
            line = await ainput(": ")
            stripped = line.strip()
            if stripped in {"/quit", "/exit"}:
                break
            if stripped == "/help":
                console.print(HELP_TEXT)
                continue
            if stripped == "/retry":
                await session.retry_connect()
                continue
            if stripped == "/status":
                console.print(_status_table(session))
                continue
            if stripped.startswith("/name"):
                name = stripped[len("/name"):].strip()
                if not name:
                    console.print("Usage: /name <name>")
                    continue
                session.set_username(name)
                console.print(f"Now chatting as {session.username}")
                continue
            if stripped.startswith("/"):
                console.print(f"Unknown command. Try {HELP_TEXT}")
                continue
            if not session.snapshot().is_connected:
                console.print("[red]Not connected[/]; type /retry")
                continue
            session.set_draft(line)
            await session.submit()
    finally:
        await session.close()


@app.command()
def run(
    endpoint: Optional[str] = typer.Option(None, help="WebSocket URL of the chat server"),
    username: Optional[str] = typer.Option(None, help="Display name"),
    config: Optional[Path] = typer.Option(None, help="YAML config file"),
    reconnect_delay: Optional[float] = typer.Option(None, help="Seconds before reconnecting after a drop"),
    log_level: Optional[str] = typer.Option(None, help="DEBUG, INFO, WARNING or ERROR"),
):
    """Connect and start the interactive chat loop."""
    try:
        cfg = load_config(config).merged(
            endpoint=endpoint,
            username=username,
            reconnect_delay=reconnect_delay,
            log_level=log_level,
        )
    except ChatError as e:
        console.print(f"[red]Configuration error[/]: {e}")
        raise typer.Exit(code=2)

    configure_root_logging(cfg.log_level)
    asyncio.run(chat_loop(cfg))


@app.command()
def compose(
    text: str = typer.Argument(..., help="Message body"),
    username: str = typer.Option(DEFAULT_USERNAME, help="Display name"),
    pretty: bool = typer.Option(True, help="Indent the JSON output"),
):
    """Print the wire-format JSON for a message without connecting."""
    body = text.strip()
    if not body:
        console.print("[red]Message text must not be empty[/]")
        raise typer.Exit(code=1)
    message = Message.create(user=username, text=body)
    if pretty:
        console.print_json(json.dumps(message.to_dict()))
    else:
        typer.echo(message.to_json())


def main() -> None:
    app()


if __name__ == "__main__":
    main()
