import asyncio

import pytest

from conftest import FakeTransportFactory


@pytest.fixture
def no_grace(monkeypatch):
    from mudslide import commands

    monkeypatch.setattr(commands, "SEND_GRACE_SECONDS", 0)
    monkeypatch.setattr(commands, "QUERY_GRACE_SECONDS", 0)


def make_context(cache_folder, **factory_kwargs):
    from mudslide.commands import CommandContext
    from shared.config import Settings

    factory = FakeTransportFactory(auto_open=True, **factory_kwargs)
    ctx = CommandContext(Settings(cache_folder=cache_folder), transport_factory=factory)
    return ctx, factory


@pytest.mark.asyncio
async def test_send_to_contact_name(logged_in, no_grace):
    from mudslide import commands

    ctx, factory = make_context(logged_in)
    ctx.contacts.add("Jane Smith", "0987654321")

    await commands.send_message(ctx, "jane", "hello\\nworld")

    assert factory.last.requests == [
        ("sendMessage", {"jid": "0987654321@s.whatsapp.net", "content": {"text": "hello\nworld"}}),
    ]
    assert factory.last.end_calls == 1


@pytest.mark.asyncio
async def test_send_to_me_uses_own_number(logged_in, no_grace):
    from mudslide import commands

    ctx, factory = make_context(logged_in)

    await commands.send_message(ctx, "me", "note to self", footer="sent from cli", buttons=["Yes"])

    method, params = factory.last.requests[0]
    assert method == "sendMessage"
    assert params["jid"] == "31612345678@s.whatsapp.net"
    assert params["content"]["footer"] == "sent from cli"
    assert params["content"]["buttons"][0]["buttonText"] == {"displayText": "Yes"}


@pytest.mark.asyncio
async def test_networked_command_without_login_never_connects(cache_folder, no_grace):
    from mudslide import commands
    from shared.errors import NotAuthenticated

    ctx, factory = make_context(cache_folder)

    with pytest.raises(NotAuthenticated):
        await commands.send_message(ctx, "me", "hi")
    with pytest.raises(NotAuthenticated):
        await commands.listen(ctx, 0.01)

    assert factory.created == []


@pytest.mark.asyncio
async def test_invalid_location_fails_before_connecting(logged_in, no_grace):
    from mudslide import commands
    from shared.errors import InvalidInput

    ctx, factory = make_context(logged_in)

    with pytest.raises(InvalidInput):
        await commands.send_location(ctx, "me", "north", "4.9")

    assert factory.created == []


@pytest.mark.asyncio
async def test_send_location_and_poll(logged_in, no_grace):
    from mudslide import commands

    ctx, factory = make_context(logged_in)

    await commands.send_location(ctx, "123-456@g.us", "52.3676", "-4.904139123")
    await commands.send_poll(ctx, "123-456@g.us", "Friday?", ["Yes", "No"], 1)

    location = factory.created[0].requests[0][1]
    poll = factory.created[1].requests[0][1]
    assert location["jid"] == "123-456@g.us"
    assert location["content"] == {"location": {"degreesLatitude": 52.3676, "degreesLongitude": -4.9041391}}
    assert poll["content"] == {"poll": {"name": "Friday?", "selectableCount": 1, "values": ["Yes", "No"]}}


@pytest.mark.asyncio
async def test_operation_failure_terminates_session(logged_in, no_grace):
    from mudslide import commands
    from mudslide.state import SessionState
    from shared.errors import TransportError

    ctx, factory = make_context(logged_in)
    session = ctx.new_session(on_pairing=None)

    async def operation(session):
        raise TransportError("bridge said no")

    with pytest.raises(TransportError):
        await commands.run_session(session, operation, 3)

    assert session.state is SessionState.TERMINATED
    assert factory.last.end_calls == 1


@pytest.mark.asyncio
async def test_group_commands(logged_in, no_grace):
    from mudslide import commands

    ctx, factory = make_context(logged_in)

    await commands.mutate_group(ctx, "123-456@g.us", "+31600000000", "add")
    assert factory.last.requests == [(
        "groupParticipantsUpdate",
        {"jid": "123-456@g.us", "participants": ["31600000000@s.whatsapp.net"], "action": "add"},
    )]

    await commands.list_group_participants(ctx, "123-456@g.us")
    assert factory.last.requests == [("groupMetadata", {"jid": "123-456@g.us"})]


@pytest.mark.asyncio
async def test_listen_prints_incoming_messages(logged_in, no_grace, capsys):
    from mudslide import commands

    ctx, factory = make_context(logged_in)
    ctx.contacts.add("Jane Smith", "0987654321")

    task = asyncio.ensure_future(commands.listen(ctx, 0.2))
    while not factory.created or not factory.last.opened_with:
        await asyncio.sleep(0.01)
    await asyncio.sleep(0.02)
    await factory.last.emit("messages.upsert", {"messages": [
        {"key": {"remoteJid": "0987654321@s.whatsapp.net"}, "message": {"conversation": "hi there"},
         "messageTimestamp": 1700000000},
        {"key": {"remoteJid": "0987654321@s.whatsapp.net", "fromMe": True}, "message": {"conversation": "mine"}},
    ]})
    await asyncio.wait_for(task, 2)

    out = capsys.readouterr().out
    assert "From: Jane Smith" in out
    assert "Message: hi there" in out
    assert "mine" not in out


@pytest.mark.asyncio
async def test_logout_command(logged_in, no_grace):
    from mudslide import commands

    ctx, factory = make_context(logged_in)

    await commands.logout(ctx)

    assert factory.last.logged_out
    assert not ctx.credentials.is_authenticated()


def test_contact_commands(cache_folder, capsys):
    from mudslide import commands
    from mudslide.commands import CommandContext
    from shared.config import Settings

    ctx = CommandContext(Settings(cache_folder=cache_folder))

    commands.list_contacts(ctx)
    assert "No local contacts found." in capsys.readouterr().out

    commands.add_contact(ctx, "John Doe", "+1 234 567 890")
    assert commands.update_contact(ctx, "John Doe", "555") is True
    assert commands.remove_contact(ctx, "Nobody") is False
    commands.list_contacts(ctx)

    out = capsys.readouterr().out
    assert "Found 1 local contacts:" in out
    assert '{"name": "John Doe", "phoneNumber": "555"}' in out


@pytest.mark.asyncio
async def test_logout_with_stale_credentials_only_clears(logged_in, no_grace, capsys):
    from mudslide import commands

    # the server asks for a new pairing instead of opening
    ctx, factory = make_context(logged_in, auto_update={"qr": "pairing-challenge"})

    await commands.logout(ctx)

    assert not ctx.credentials.is_authenticated()
    assert not factory.last.logged_out
    assert factory.last.requests == []
    assert factory.last.end_calls == 1
    assert "Logged out" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_logout_of_revoked_device_succeeds(logged_in, no_grace, capsys):
    from mudslide import commands
    from shared.message_types import LOGGED_OUT, Connection

    ctx, factory = make_context(logged_in, auto_update={"connection": Connection.CLOSE, "status_code": LOGGED_OUT})

    await commands.logout(ctx)

    assert not ctx.credentials.is_authenticated()
    assert not factory.last.logged_out
    out = capsys.readouterr().out
    assert "already disconnected" in out
    assert "Logged out" in out
