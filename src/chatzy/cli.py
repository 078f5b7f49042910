"""Command-line front end driving a :class:`ConversationStore`."""

from __future__ import annotations

import asyncio
from contextlib import closing
from pathlib import Path
from typing import Iterable, Optional

import typer
from dotenv import find_dotenv, load_dotenv
from rich.console import Console
from rich.table import Table

from .completion import GeminiClient
from .config import get_config, load_config_from_yaml, reset_config
from .conversation import ConversationStore
from .identity import StaticIdentityProvider
from .logging_utils import get_logger, setup_logging
from .models import Message, SyncStatus
from .storage import create_repository

cli = typer.Typer(
    name="chatzy",
    help="💬 Chat with Gemini and keep the transcript in your message store.",
    add_completion=False,
)
console = Console()
logger = get_logger(__name__)

USER_OPTION = typer.Option(
    ..., "--user", "-u", envvar="CHATZY_USER", help="Identity whose messages are used."
)


def build_store(user: str) -> ConversationStore:
    """Wire a store from the active configuration for ``user``."""

    cfg = get_config()
    return ConversationStore(
        create_repository(cfg.storage),
        GeminiClient(cfg.completion),
        StaticIdentityProvider(user),
    )


def _render_messages(messages: Iterable[Message]) -> None:
    for message in messages:
        if message.status is SyncStatus.LOCAL:
            console.print(f"[bold red]{message.text}[/bold red]")
        elif message.is_user:
            console.print(f"[bold cyan]You:[/bold cyan] {message.text}")
        else:
            console.print(f"[bold green]Gemini:[/bold green] {message.text}")


def _render_history(store: ConversationStore) -> None:
    for day, messages in store.grouped_view().items():
        table = Table(title=day, show_lines=False)
        table.add_column("Time", style="dim", no_wrap=True)
        table.add_column("From", style="magenta", no_wrap=True)
        table.add_column("Message")
        table.add_column("Id", style="dim", no_wrap=True)
        for message in messages:
            author = "you" if message.is_user else "gemini"
            table.add_row(
                message.timestamp.astimezone().strftime("%H:%M"),
                author,
                message.text,
                message.id or "-",
            )
        console.print(table)
    console.print(f"[green]{store.status_text()}[/green] · last activity: {store.last_activity()}")


def _new_diagnostics(store: ConversationStore, before: Iterable[Message]) -> list[Message]:
    seen = {id(m) for m in before}
    return [m for m in store.messages if m.status is SyncStatus.LOCAL and id(m) not in seen]


def _exit_on_diagnostics(store: ConversationStore, before: Iterable[Message]) -> None:
    failures = _new_diagnostics(store, before)
    if failures:
        _render_messages(failures)
        raise typer.Exit(code=1)


def _load(store: ConversationStore) -> None:
    asyncio.run(store.load())
    _exit_on_diagnostics(store, [])


@cli.callback()
def main(
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to a YAML configuration file."
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Console log level (default: WARNING)."
    ),
) -> None:
    """Load ``.env`` and the YAML configuration before running a command."""

    env_file = find_dotenv(usecwd=True)
    if env_file:
        load_dotenv(env_file)
        reset_config()
    setup_logging(log_level)
    config_path = config if config is not None else Path.cwd() / "config.yaml"
    if config_path.exists():
        load_config_from_yaml(config_path)
    elif config is not None:
        console.print(f"[yellow]Warning: config file not found at {config_path}.[/yellow]")


@cli.command()
def send(
    message: str = typer.Argument(..., help="Text to send."),
    user: str = USER_OPTION,
) -> None:
    """Send a message and print the reply."""

    if not message.strip():
        console.print("[yellow]Nothing to send.[/yellow]")
        raise typer.Exit(code=1)

    with closing(build_store(user)) as store:
        asyncio.run(store.send(message))
        # The user's own message is not echoed back.
        _render_messages(store.messages[1:])


@cli.command()
def history(user: str = USER_OPTION) -> None:
    """Print the stored conversation grouped by day."""

    with closing(build_store(user)) as store:
        _load(store)
        if not store.has_messages:
            console.print(f"[dim]{store.status_text()}[/dim]")
            return
        _render_history(store)


@cli.command()
def edit(
    message_id: str = typer.Argument(..., help="Identifier of the message to edit."),
    text: str = typer.Argument(..., help="Replacement text."),
    user: str = USER_OPTION,
) -> None:
    """Replace the text of a stored message."""

    if not text.strip():
        console.print("[yellow]Replacement text is empty.[/yellow]")
        raise typer.Exit(code=1)

    with closing(build_store(user)) as store:
        _load(store)
        if not any(m.id == message_id for m in store.messages):
            console.print(f"[yellow]No message with id {message_id}.[/yellow]")
            raise typer.Exit(code=1)

        before = store.messages
        asyncio.run(store.update_by_id(message_id, text))
        _exit_on_diagnostics(store, before)
    console.print("[green]✓[/green] Message updated.")


@cli.command()
def delete(
    message_id: str = typer.Argument(..., help="Identifier of the message to delete."),
    user: str = USER_OPTION,
) -> None:
    """Delete a single stored message."""

    with closing(build_store(user)) as store:
        _load(store)
        before = store.messages
        asyncio.run(store.delete_by_id(message_id))
        _exit_on_diagnostics(store, before)
    console.print("[green]✓[/green] Message deleted.")


@cli.command()
def clear(
    user: str = USER_OPTION,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    """Delete every stored message of the user."""

    if not yes and not typer.confirm(f"Delete all messages of {user}?", default=False):
        raise typer.Exit(code=1)

    with closing(build_store(user)) as store:
        asyncio.run(store.delete_all())
        _exit_on_diagnostics(store, [])
    console.print("[green]✓[/green] Conversation cleared.")


@cli.command(name="config:check")
def check_config() -> None:
    """Display the effective configuration without secrets."""

    cfg = get_config()
    table = Table(title="Chatzy Effective Configuration")
    table.add_column("Section", style="cyan", no_wrap=True)
    table.add_column("Setting", style="magenta")
    table.add_column("Value", style="green")

    for key, value in cfg.completion.describe().items():
        if key == "api_key_present":
            value = "[green]Set[/green]" if value else "[red]Not Set[/red]"
        table.add_row("completion", key, str(value))
    for key, value in cfg.storage.describe().items():
        table.add_row("storage", key, str(value))

    console.print(table)


if __name__ == "__main__":
    cli()
