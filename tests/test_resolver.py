import pytest


SELF_ID = "31612345678:12@s.whatsapp.net"


@pytest.fixture
def directory(tmp_path):
    from mudslide.contacts import ContactDirectory

    directory = ContactDirectory(tmp_path)
    directory.add("John Doe", "1234567890")
    directory.add("Jane Smith", "0987654321")
    return directory


def test_contact_name_resolves_to_person_address(directory):
    from mudslide.resolver import resolve_recipient

    assert resolve_recipient("John Doe", SELF_ID, directory) == "1234567890@s.whatsapp.net"
    assert resolve_recipient("jane", SELF_ID, directory) == "0987654321@s.whatsapp.net"


def test_exact_name_beats_partial_match(directory):
    from mudslide.resolver import resolve_recipient

    directory.add("Johnny", "999")

    assert resolve_recipient("Johnny", SELF_ID, directory) == "999@s.whatsapp.net"
    assert resolve_recipient("john", SELF_ID, directory) == "1234567890@s.whatsapp.net"


def test_unknown_token_is_taken_as_phone_number(directory):
    from mudslide.resolver import resolve_recipient

    assert resolve_recipient("31687654321", SELF_ID, directory) == "31687654321@s.whatsapp.net"
    assert resolve_recipient("+31687654321", SELF_ID, directory) == "31687654321@s.whatsapp.net"


@pytest.mark.parametrize("address", [
    "31687654321@s.whatsapp.net",
    "123456789-987654321@g.us",
])
def test_canonical_addresses_pass_through(directory, address):
    from mudslide.resolver import resolve_recipient

    assert resolve_recipient(address, SELF_ID, directory) == address
    assert resolve_recipient("+" + address, SELF_ID, directory) == address


def test_me_resolves_to_own_number_without_device(directory):
    from mudslide.resolver import resolve_recipient

    assert resolve_recipient("me", SELF_ID, directory) == "31612345678@s.whatsapp.net"
    assert resolve_recipient("me", "31612345678@s.whatsapp.net", directory) == "31612345678@s.whatsapp.net"


def test_me_without_identity_is_not_ready(directory):
    from mudslide.resolver import resolve_recipient
    from shared.errors import NotReady

    with pytest.raises(NotReady):
        resolve_recipient("me", None, directory)


def test_me_is_not_looked_up_as_contact(directory):
    from mudslide.resolver import resolve_recipient

    directory.add("me", "111")

    assert resolve_recipient("me", SELF_ID, directory) == "31612345678@s.whatsapp.net"


def test_resolver_binds_contact_lookup(directory):
    from mudslide.resolver import RecipientResolver

    resolver = RecipientResolver(directory)

    assert resolver.resolve("Jane Smith", SELF_ID) == "0987654321@s.whatsapp.net"


def test_address_helpers():
    from mudslide.resolver import is_group, local_part, person_address, self_local_part

    assert person_address("31600000000") == "31600000000@s.whatsapp.net"
    assert local_part("31600000000@s.whatsapp.net") == "31600000000"
    assert self_local_part("31600000000:3@s.whatsapp.net") == "31600000000"
    assert is_group("1-2@g.us")
    assert not is_group("31600000000@s.whatsapp.net")


@pytest.mark.parametrize("token", ["", "+", "   ", "+  "])
def test_empty_recipient_is_invalid(directory, token):
    from mudslide.resolver import resolve_recipient
    from shared.errors import InvalidInput

    with pytest.raises(InvalidInput, match="Recipient must not be empty"):
        resolve_recipient(token, SELF_ID, directory)
