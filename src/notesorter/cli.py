"""CLI entry point for notesorter."""

import asyncio
from datetime import datetime
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from notesorter import __version__
from notesorter.config.loader import load_config as load_config_file
from notesorter.models.config import Config
from notesorter.models.document import DocumentContent
from notesorter.organization.block_tracker import BlockTracker
from notesorter.organization.destination_tree import build_tree, serialize
from notesorter.organization.organizer import Organizer
from notesorter.organization.triggers import TriggerManager
from notesorter.services.exceptions import DocumentNotFoundError
from notesorter.services.file_store import JsonFileDocumentStore
from notesorter.utils.logging import configure_logging, get_logger
from notesorter.utils.text import markdown_to_blocks


logger = get_logger(__name__)
console = Console()


def load_config() -> Config:
    """
    Load configuration from ~/.config/notesorter/config.yaml.

    Returns:
        Validated Config instance

    Raises:
        click.ClickException: If config is missing, has invalid permissions, or validation fails
    """
    try:
        config = load_config_file()
        logger.info("config_loaded")
        return config
    except FileNotFoundError as e:
        logger.error("config_not_found", error=str(e))
        raise click.ClickException(str(e))
    except PermissionError as e:
        logger.error("config_permission_error", error=str(e))
        raise click.ClickException(str(e))
    except ValueError as e:
        logger.error("config_validation_error", error=str(e))
        raise click.ClickException(f"Configuration validation failed:\n{e}")


def open_store(config: Config) -> JsonFileDocumentStore:
    return JsonFileDocumentStore(config.store.path)


def _format_time(value: datetime) -> str:
    return value.astimezone().strftime("%Y-%m-%d %H:%M")


@click.group()
@click.version_option(version=__version__, prog_name="notesorter")
def cli():
    """notesorter: file free-form notes into a topic hierarchy using an LLM classifier."""
    configure_logging()


@cli.command()
@click.argument("title")
@click.argument("text")
def capture(title: str, text: str):
    """
    Create a new scratch note.

    Examples:
        notesorter capture Scratch "Buy milk"
    """
    config = load_config()
    store = open_store(config)

    async def create() -> str:
        return await store.create(
            {
                "title": title,
                "kind": "leaf",
                "organized": False,
                "content": DocumentContent(blocks=markdown_to_blocks(text)),
                "content_text": text,
            }
        )

    document_id = asyncio.run(create())
    logger.info("note_captured", document_id=document_id, title=title)
    console.print(f"Captured [bold]{title}[/bold] as {document_id}")


@cli.command()
@click.argument("document_id")
@click.option("--full", is_flag=True, help="Route every block again, including ones already filed")
def organize(document_id: str, full: bool):
    """
    File every unorganized block of a note.

    Examples:
        notesorter organize 3f2b9c1e-...
        notesorter organize --full 3f2b9c1e-...
    """
    config = load_config()
    store = open_store(config)
    organizer = Organizer.from_config(config, store)
    run = organizer.organize_full_document if full else organizer.organize_document

    try:
        with console.status("[bold green]Classifying..."):
            result = asyncio.run(run(document_id))
    except DocumentNotFoundError as e:
        raise click.ClickException(str(e))

    if result.skipped:
        console.print("Nothing to organize.")
        return

    table = Table(title=f"Organized {result.unorganized_count} block(s)")
    table.add_column("Destination")
    table.add_column("Content")
    for chunk in result.applied.applied:
        table.add_row(escape(chunk.path), escape(chunk.content))
    console.print(table)

    for chunk in result.applied.failed:
        console.print(f"[yellow]Skipped[/yellow] {chunk.path}: destination could not be written")


@cli.command()
def init():
    """
    Create the starter PARA destinations (Projects, Areas, Resources, Archives, Me, TODOs, README).

    Existing destinations are left untouched, so this is safe to re-run.
    """
    config = load_config()
    organizer = Organizer.from_config(config, open_store(config))
    result = asyncio.run(organizer.seed_hierarchy())
    console.print(
        f"Created {len(result.created)} destination(s), {len(result.existing)} already existed."
    )


@cli.command()
def tree():
    """Show the destination hierarchy the classifier sees."""
    config = load_config()
    store = open_store(config)
    documents = asyncio.run(store.list_all(organized=True))
    outline = serialize(build_tree(documents))
    console.print(outline or "(no destinations yet)", markup=False)


@cli.command()
@click.argument("document_id")
def unorganized(document_id: str):
    """List the blocks of a note that have not been filed yet."""
    config = load_config()
    store = open_store(config)
    try:
        document = asyncio.run(store.get(document_id))
    except DocumentNotFoundError as e:
        raise click.ClickException(str(e))

    blocks = BlockTracker().list_unorganized(document)
    if not blocks:
        console.print("All blocks are organized.")
        return
    for index, block in enumerate(blocks, start=1):
        console.print(f"{index}. [dim]({block.type})[/dim] {escape(block.text)}")


@cli.command()
def history():
    """Show recent automated changes, most recent first."""
    config = load_config()
    organizer = Organizer.from_config(config, open_store(config))
    entries = asyncio.run(organizer.versions.entries())
    if not entries:
        console.print("No recorded changes.")
        return

    table = Table(title="Change history")
    table.add_column("#", justify="right")
    table.add_column("When")
    table.add_column("Action")
    table.add_column("Document")
    table.add_column("Trigger")
    for index, entry in enumerate(entries, start=1):
        table.add_row(
            str(index),
            _format_time(entry.timestamp),
            entry.action,
            escape(entry.path or entry.title),
            entry.trigger,
        )
    console.print(table)


@cli.command()
@click.argument("index", type=int)
@click.option("--yes", is_flag=True, help="Revert without asking for confirmation")
def revert(index: int, yes: bool):
    """
    Undo a change from the history (see `notesorter history`).

    Examples:
        notesorter revert 1
    """
    config = load_config()
    organizer = Organizer.from_config(config, open_store(config))
    versions = organizer.versions
    entries = asyncio.run(versions.entries())
    if index < 1 or index > len(entries):
        raise click.ClickException(f"No history entry {index} (have {len(entries)})")

    change = entries[index - 1]
    preview = versions.preview(change)
    console.print(f"[bold]{preview.action}[/bold]: {preview.description}")
    if preview.warning:
        console.print(f"[yellow]{preview.warning}[/yellow]")

    if not yes and not click.confirm("Proceed?"):
        raise click.Abort()

    result = asyncio.run(versions.revert(change))
    if not result.success:
        raise click.ClickException(f"Revert failed: {result.error}")
    console.print(f"Reverted [bold]{result.title}[/bold]")


@cli.command()
@click.argument("document_id")
@click.option("--interval", default=2.0, show_default=True, help="Seconds between store polls")
@click.option("--idle-timeout", type=float, default=None, help="Override the configured idle timeout")
def watch(document_id: str, interval: float, idle_timeout: Optional[float]):
    """
    Watch a note and organize it whenever editing pauses.

    Polls the store for changes; press Ctrl-C to stop.
    """
    config = load_config()
    store = open_store(config)
    organizer = Organizer.from_config(config, store)
    manager = TriggerManager(
        organizer.organize_document,
        idle_timeout=idle_timeout if idle_timeout is not None else config.organizer.idle_timeout_seconds,
        debounce=config.organizer.debounce_seconds,
    )

    async def poll() -> None:
        last_seen = None
        while True:
            if manager.is_running(document_id):
                await asyncio.sleep(interval)
                continue
            # Pick up edits made by other processes
            store.reload()
            current = await store.get(document_id)
            if last_seen is not None and current.updated_at != last_seen:
                manager.on_content_change(document_id)
                texts = [block.text for block in current.blocks]
                manager.on_keystroke(document_id, texts, len(texts) - 1)
            last_seen = current.updated_at
            await asyncio.sleep(interval)

    console.print(f"Watching {document_id} (Ctrl-C to stop)")
    try:
        asyncio.run(poll())
    except DocumentNotFoundError as e:
        raise click.ClickException(str(e))
    except KeyboardInterrupt:
        manager.shutdown()
        console.print("Stopped.")


if __name__ == "__main__":
    cli()
