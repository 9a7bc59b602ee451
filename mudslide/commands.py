"""
One-shot commands on top of the session controller.

Every networked command follows the same shape: check the stored login,
start a session, wait until it is open, do exactly one thing, then schedule
termination. Sends get a few seconds of grace so the message leaves the
socket before it closes; queries close right away.
"""

from __future__ import annotations

import asyncio
import json
import signal
from contextlib import suppress
from datetime import datetime
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Optional

import aioconsole

from mudslide import output
from mudslide.contacts import ContactDirectory
from mudslide.credentials import CredentialStore
from mudslide.payloads import (
    check_valid_file,
    extract_message_text,
    file_message,
    image_message,
    location_message,
    parse_geo_location,
    poll_message,
    text_message,
)
from mudslide.resolver import RecipientResolver, local_part
from mudslide.session import PairingHandler, SessionController
from mudslide.state import SessionState
from mudslide.transport import BridgeTransport, Transport
from shared.config import Settings
from shared.errors import MudslideError, TerminalLogout
from shared.log import get_logger
from shared.message_types import FrameType

logger = get_logger(__name__)

SEND_GRACE_SECONDS = 3
QUERY_GRACE_SECONDS = 1

Operation = Callable[[SessionController], Awaitable[None]]


class CommandContext:
    """Components shared by every command of one invocation"""

    def __init__(self, settings: Settings, transport_factory: Optional[Callable[[], Transport]] = None) -> None:
        self.settings = settings
        self.credentials = CredentialStore(settings.cache_folder)
        self.contacts = ContactDirectory(settings.cache_folder)
        self.resolver = RecipientResolver(self.contacts)
        self.transport_factory = transport_factory or self._bridge_transport

    def _bridge_transport(self) -> Transport:
        return BridgeTransport(
            self.settings.bridge_url,
            log_level=self.settings.transport_log_level,
            proxy=self.settings.proxy,
            request_timeout=self.settings.request_timeout,
        )

    def new_session(self, on_pairing: Optional[PairingHandler] = output.show_pairing_challenge) -> SessionController:
        self.credentials.locate_cache_folder()
        return SessionController(
            self.transport_factory,
            self.credentials,
            self.resolver,
            reconnect=self.settings.reconnect,
            on_pairing=on_pairing,
        )

    async def run_once(self, operation: Operation, grace: float, *, require_login: bool = True,
                       on_pairing: Optional[PairingHandler] = output.show_pairing_challenge) -> None:
        if require_login:
            self.credentials.require_authenticated()
        await run_session(self.new_session(on_pairing=on_pairing), operation, grace)


async def run_session(session: SessionController, operation: Operation, grace: float,
                      ready: tuple = (SessionState.OPEN,)) -> None:
    """Start, wait for a ready state, run the operation once, terminate"""
    await session.start()
    try:
        await session.wait_for(*ready)
        await operation(session)
    except Exception as e:
        logger.debug(f"Operation failed: {e!r}", extra={"state": session.state.value})
        session.terminate(0)
        with suppress(MudslideError):
            await session.wait_terminated()
        raise

    if grace > 0 and session.state is not SessionState.TERMINATED:
        output.pending(f"Closing WA connection, waiting for {grace:g} second(s)...")
    session.terminate(grace)
    await session.wait_terminated()


async def wait_for_key(message: str) -> None:
    await aioconsole.ainput(f"{message} ")


# ========================================
#           SESSION COMMANDS
# ========================================

async def login(ctx: CommandContext) -> None:
    output.info('In the WhatsApp mobile app go to "Settings > Connected Devices > ')
    output.info('Connect Device" and scan the QR code below')

    async def operation(session: SessionController) -> None:
        output.success("Logged in")
        if session.reconnects > 0:
            # Pairing restarts the connection; the phone keeps syncing afterwards
            await wait_for_key("Wait until WhatsApp finishes connecting, then press Enter to exit")

    await ctx.run_once(operation, QUERY_GRACE_SECONDS, require_login=False)


async def logout(ctx: CommandContext) -> None:
    ctx.credentials.require_authenticated()
    session = ctx.new_session(on_pairing=None)

    async def operation(session: SessionController) -> None:
        if session.state is SessionState.OPEN:
            await session.logout(QUERY_GRACE_SECONDS)
        else:
            # The server already forgot this device and wants a new pairing
            ctx.credentials.clear()
        output.success("Logged out")

    try:
        await run_session(session, operation, QUERY_GRACE_SECONDS,
                          ready=(SessionState.OPEN, SessionState.AWAITING_PAIRING))
    except TerminalLogout:
        # The server had already revoked this device; the session cleared the credentials
        output.info("Device was already disconnected from WhatsApp")
        output.success("Logged out")


async def me(ctx: CommandContext) -> None:
    ctx.credentials.require_authenticated()
    output.log(f"Cache folder: {ctx.credentials.locate_cache_folder()}")

    async def operation(session: SessionController) -> None:
        output.log(f"Current user: {session.self_id}")

    await ctx.run_once(operation, QUERY_GRACE_SECONDS)


async def list_groups(ctx: CommandContext) -> None:
    async def operation(session: SessionController) -> None:
        groups = await session.request("groupFetchAllParticipating") or {}
        for group in groups.values():
            output.log(json.dumps({"id": group.get("id"), "subject": group.get("subject")}, ensure_ascii=False))

    await ctx.run_once(operation, QUERY_GRACE_SECONDS)


async def list_chats(ctx: CommandContext) -> None:
    async def operation(session: SessionController) -> None:
        output.pending("Getting recent chats...")
        groups = await session.request("groupFetchAllParticipating") or {}
        output.success("Recent chats:")
        if groups:
            output.info("📁 Groups:")
            for group in groups.values():
                output.log(f"  {group.get('subject')} ({group.get('id')})")
                output.log(f"    Participants: {len(group.get('participants') or [])}")
        output.info("💡 To see messages from a chat:")
        output.info("  mudslide messages <chat-id>")
        output.info("  mudslide messages <phone-number>")

    await ctx.run_once(operation, QUERY_GRACE_SECONDS)


async def get_messages(ctx: CommandContext, chat: str, count: int = 20) -> None:
    async def operation(session: SessionController) -> None:
        chat_id = session.resolve(chat)
        output.pending(f"Getting last {count} messages from {chat_id}...")
        messages = await session.request("loadMessages", jid=chat_id, count=count) or []
        if not messages:
            output.warn("No recent messages available for this chat.")
            output.info("WhatsApp Web has limited access to message history; use listen to see new messages.")
            return
        for message in messages:
            _print_message(ctx, message)

    await ctx.run_once(operation, QUERY_GRACE_SECONDS)


async def listen(ctx: CommandContext, timeout: Optional[float] = None) -> None:
    ctx.credentials.require_authenticated()
    session = ctx.new_session()
    session.subscribe(FrameType.MESSAGES_UPSERT.value, partial(_on_messages_upsert, ctx))
    session.subscribe(FrameType.MESSAGES_UPDATE.value, _on_messages_update)

    async def operation(session: SessionController) -> None:
        output.success("Connected! Listening for messages...")
        output.info("Press Ctrl+C to stop listening")
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        with suppress(NotImplementedError):
            loop.add_signal_handler(signal.SIGINT, stop.set)
        try:
            if timeout:
                output.info(f"Will stop listening after {timeout:g} seconds")
            try:
                await asyncio.wait_for(stop.wait(), timeout)
                output.info("Stopping message listener...")
            except asyncio.TimeoutError:
                output.info("Timeout reached, stopping...")
        finally:
            with suppress(NotImplementedError):
                loop.remove_signal_handler(signal.SIGINT)

    await run_session(session, operation, 0)


async def _on_messages_upsert(ctx: CommandContext, payload: Dict[str, Any]) -> None:
    for message in payload.get("messages") or []:
        key = message.get("key") or {}
        if key.get("fromMe") or not message.get("message"):
            continue
        _print_message(ctx, message)


async def _on_messages_update(payload: Dict[str, Any]) -> None:
    for update in payload.get("updates") or []:
        status = (update.get("update") or {}).get("status")
        if status:
            output.log(f"📝 Message {(update.get('key') or {}).get('id')} status: {status}")


def _print_message(ctx: CommandContext, message: Dict[str, Any]) -> None:
    key = message.get("key") or {}
    sender = key.get("remoteJid") or "Unknown"
    number = local_part(sender)
    contact = ctx.contacts.find_by_phone(number)
    try:
        timestamp = datetime.fromtimestamp(int(message.get("messageTimestamp"))).strftime("%Y-%m-%d %H:%M:%S")
    except (TypeError, ValueError, OverflowError, OSError):
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

    output.log(f"📨 [{timestamp}] From: {contact.name if contact else number}")
    output.log(f"   Message: {extract_message_text(message.get('message'))}")
    output.log(f"   ID: {sender}")
    output.log("---")


# ========================================
#           SEND COMMANDS
# ========================================

async def _send(ctx: CommandContext, recipient: str, content: Dict[str, Any], describe: str) -> None:
    async def operation(session: SessionController) -> None:
        jid = session.resolve(recipient)
        output.pending(f"Sending {describe} to: {jid}")
        await session.request("sendMessage", jid=jid, content=content)
        output.success("Done")

    await ctx.run_once(operation, SEND_GRACE_SECONDS)


async def send_message(ctx: CommandContext, recipient: str, message: str,
                       footer: Optional[str] = None, buttons: Optional[List[str]] = None) -> None:
    await _send(ctx, recipient, text_message(message, footer, buttons or []), f'message: "{message}"')


async def send_image(ctx: CommandContext, recipient: str, path: str, caption: Optional[str] = None) -> None:
    file_path = check_valid_file(path)
    await _send(ctx, recipient, image_message(file_path, caption), f'image file: "{path}"')


async def send_file(ctx: CommandContext, recipient: str, path: str,
                    caption: Optional[str] = None, file_type: str = "document") -> None:
    file_path = check_valid_file(path)
    await _send(ctx, recipient, file_message(file_path, caption, file_type), f'file: "{path}"')


async def send_location(ctx: CommandContext, recipient: str, latitude: str, longitude: str) -> None:
    lat, lon = parse_geo_location(latitude, longitude)
    await _send(ctx, recipient, location_message(lat, lon), f"location: {lat}, {lon}")


async def send_poll(ctx: CommandContext, recipient: str, name: str, items: List[str], selectable: int = 1) -> None:
    await _send(ctx, recipient, poll_message(name, items, selectable), f'poll: "{name}"')


# ========================================
#           GROUP COMMANDS
# ========================================

async def mutate_group(ctx: CommandContext, group_id: str, phone_number: str, action: str) -> None:
    async def operation(session: SessionController) -> None:
        participant = session.resolve(phone_number)
        if action == "add":
            output.log(f"Adding {participant} to group {group_id}")
        else:
            output.log(f"Removing {participant} from group {group_id}")
        results = await session.request(
            "groupParticipantsUpdate", jid=group_id, participants=[participant], action=action
        ) or []
        for entry in results:
            output.log(json.dumps({"id": entry.get("jid"), "status": entry.get("status")}))

    await ctx.run_once(operation, QUERY_GRACE_SECONDS)


async def list_group_participants(ctx: CommandContext, group_id: str) -> None:
    async def operation(session: SessionController) -> None:
        metadata = await session.request("groupMetadata", jid=group_id) or {}
        for participant in metadata.get("participants") or []:
            output.log(json.dumps({"id": participant.get("id")}))

    await ctx.run_once(operation, QUERY_GRACE_SECONDS)


# ========================================
#           LOCAL CONTACTS
# ========================================

def add_contact(ctx: CommandContext, name: str, phone_number: str) -> None:
    contact = ctx.contacts.add(name, phone_number)
    output.success(f"Added contact: {contact.name} ({contact.phone_number})")


def remove_contact(ctx: CommandContext, name: str) -> bool:
    if ctx.contacts.remove(name):
        output.success(f"Removed contact: {name}")
        return True
    output.error(f'Contact "{name}" not found.')
    return False


def update_contact(ctx: CommandContext, name: str, new_phone_number: str) -> bool:
    if ctx.contacts.update(name, new_phone_number):
        output.success(f"Updated contact: {name} ({new_phone_number})")
        return True
    output.error(f'Contact "{name}" not found.')
    return False


def list_contacts(ctx: CommandContext) -> None:
    contacts = ctx.contacts.all()
    if not contacts:
        output.warn("No local contacts found.")
        output.info('Add contacts with: mudslide add-contact "Name" "1234567890"')
        return
    output.success(f"Found {len(contacts)} local contacts:")
    for contact in contacts.values():
        output.log(json.dumps({"name": contact.name, "phoneNumber": contact.phone_number}, ensure_ascii=False))
