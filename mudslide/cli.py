#!/usr/bin/env python3

from __future__ import annotations
import asyncio
from enum import Enum
from typing import Any, Callable, List, Optional

import typer

from mudslide import commands, output
from mudslide.commands import CommandContext
from shared.config import Settings
from shared.errors import DuplicateContact, MudslideError
from shared.log import configure_logging, get_logger

EXAMPLES = """
Examples:

  send me 'hello world'

  send 'John Doe' 'hello world'

  send john 'hello world'

  add-contact 'John Doe' '1234567890'

  messages 123456789-987654321@g.us --count 50

  listen --timeout 30

  send-image 123456789-987654321@g.us pizza.png --caption 'How about Pizza?'

  send-file 'Jane Smith' document.pdf --caption 'Please read'

  send-poll 123456789-987654321@g.us 'Training on Friday' --item 'Yes!' --item 'Nope.'

Only one mudslide process may use a cache folder at a time.
"""

__version__ = "0.1.0"

app = typer.Typer(help="WhatsApp from the command line", epilog=EXAMPLES, no_args_is_help=True)
logger = get_logger(__name__)


class FileType(str, Enum):
    document = "document"
    audio = "audio"
    video = "video"


def _version(value: bool) -> None:
    if value:
        output.log(__version__)
        raise typer.Exit()


@app.callback()
def main_options(
    ctx: typer.Context,
    cache: Optional[str] = typer.Option(None, "--cache", "-c", help="Override cache folder"),
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="Increase verbosity (repeatable)"),
    proxy: bool = typer.Option(False, "--proxy", help="Use HTTP/HTTPS proxy from HTTP_PROXY/HTTPS_PROXY"),
    bridge: Optional[str] = typer.Option(None, "--bridge", help="WebSocket URL of the WhatsApp bridge"),
    version: bool = typer.Option(False, "--version", callback=_version, is_eager=True, help="Show version and exit"),
):
    settings = Settings.resolve(cache=cache, bridge=bridge, verbose=verbose, proxy=proxy)
    configure_logging(settings.log_level, settings.log_file)
    logger.debug("Using cache folder %s and bridge %s", settings.cache_folder, settings.bridge_url)
    ctx.obj = CommandContext(settings)


def _run(ctx: typer.Context, command: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Run a command and turn mudslide errors into exit code 1"""
    try:
        result = command(ctx.obj, *args, **kwargs)
        if asyncio.iscoroutine(result):
            result = asyncio.run(result)
    except DuplicateContact as e:
        output.error(str(e))
        output.info("Use update-contact to modify existing contacts.")
        raise typer.Exit(code=1)
    except MudslideError as e:
        output.error(str(e))
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        output.info("Interrupted")
        raise typer.Exit(code=130)
    if result is False:
        raise typer.Exit(code=1)
    return result


@app.command()
def login(ctx: typer.Context):
    """Login to WhatsApp"""
    _run(ctx, commands.login)


@app.command()
def logout(ctx: typer.Context):
    """Logout from WhatsApp"""
    _run(ctx, commands.logout)


@app.command()
def me(ctx: typer.Context):
    """Show current user details"""
    _run(ctx, commands.me)


@app.command()
def groups(ctx: typer.Context):
    """List all your groups"""
    _run(ctx, commands.list_groups)


@app.command()
def contacts(ctx: typer.Context):
    """List all your local contacts"""
    _run(ctx, commands.list_contacts)


@app.command("add-contact")
def add_contact(ctx: typer.Context, name: str, phone_number: str):
    """Add a new local contact"""
    _run(ctx, commands.add_contact, name, phone_number)


@app.command("remove-contact")
def remove_contact(ctx: typer.Context, name: str):
    """Remove a local contact"""
    _run(ctx, commands.remove_contact, name)


@app.command("update-contact")
def update_contact(ctx: typer.Context, name: str, new_phone_number: str):
    """Update an existing local contact"""
    _run(ctx, commands.update_contact, name, new_phone_number)


@app.command()
def listen(
    ctx: typer.Context,
    timeout: Optional[float] = typer.Option(None, help="Stop listening after specified seconds"),
):
    """Listen for incoming messages"""
    _run(ctx, commands.listen, timeout)


@app.command()
def chats(ctx: typer.Context):
    """List recent chats and groups"""
    _run(ctx, commands.list_chats)


@app.command()
def messages(
    ctx: typer.Context,
    chat_id: str,
    count: int = typer.Option(20, help="Number of messages to retrieve"),
):
    """Get recent messages from a chat"""
    _run(ctx, commands.get_messages, chat_id, count)


@app.command()
def send(
    ctx: typer.Context,
    recipient: str,
    message: str,
    footer: Optional[str] = typer.Option(None, help="Footer text"),
    button: Optional[List[str]] = typer.Option(None, help="Button label (repeatable option)"),
):
    """Send message"""
    _run(ctx, commands.send_message, recipient, message, footer, button or [])


@app.command("send-image")
def send_image(
    ctx: typer.Context,
    recipient: str,
    file: str,
    caption: Optional[str] = typer.Option(None, help="Caption text"),
):
    """Send image file"""
    _run(ctx, commands.send_image, recipient, file, caption)


@app.command("send-file")
def send_file(
    ctx: typer.Context,
    recipient: str,
    file: str,
    caption: Optional[str] = typer.Option(None, help="Caption text"),
    file_type: FileType = typer.Option(FileType.document, "--type", help="File type"),
):
    """Send file"""
    _run(ctx, commands.send_file, recipient, file, caption, file_type.value)


@app.command("send-location", context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def send_location(ctx: typer.Context, recipient: str, latitude: str, longitude: str):
    """Send location"""
    _run(ctx, commands.send_location, recipient, latitude, longitude)


@app.command("send-poll")
def send_poll(
    ctx: typer.Context,
    recipient: str,
    name: str,
    item: Optional[List[str]] = typer.Option(None, help="Poll item (repeatable option)"),
    selectable: int = typer.Option(1, help="Number of selectable items"),
):
    """Send poll"""
    _run(ctx, commands.send_poll, recipient, name, item or [], selectable)


@app.command("add-to-group")
def add_to_group(ctx: typer.Context, group_id: str, phone_number: str):
    """Add group participant"""
    _run(ctx, commands.mutate_group, group_id, phone_number, "add")


@app.command("remove-from-group")
def remove_from_group(ctx: typer.Context, group_id: str, phone_number: str):
    """Remove group participant"""
    _run(ctx, commands.mutate_group, group_id, phone_number, "remove")


@app.command("list-group")
def list_group(ctx: typer.Context, group_id: str):
    """List group participants"""
    _run(ctx, commands.list_group_participants, group_id)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
