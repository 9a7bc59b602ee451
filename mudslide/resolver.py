from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Protocol

from shared.errors import InvalidInput, NotReady

if TYPE_CHECKING:
    from mudslide.contacts import Contact

# ========================================
#           CANONICAL ADDRESSES
# ========================================
"""
Canonical addresses are the only recipient form the transport accepts:
<digits>@s.whatsapp.net for a person, <id>@g.us for a group.
They are built here and nowhere else.
"""

PERSON_DOMAIN = "s.whatsapp.net"
GROUP_DOMAIN = "g.us"
SELF_KEYWORD = "me"

_DEVICE_SEPARATOR = ":"


class ContactLookup(Protocol):
    def find(self, query: str) -> Optional["Contact"]:
        ...


def is_canonical(token: str) -> bool:
    return token.endswith("@" + PERSON_DOMAIN) or token.endswith("@" + GROUP_DOMAIN)


def is_group(address: str) -> bool:
    return address.endswith("@" + GROUP_DOMAIN)


def person_address(local_part: str) -> str:
    return f"{local_part}@{PERSON_DOMAIN}"


def local_part(address: str) -> str:
    """'31612345678@s.whatsapp.net' -> '31612345678'"""
    return address.split("@", 1)[0]


def self_local_part(self_id: str) -> str:
    """
    Phone digits of the session's own id.

    '31612345678:12@s.whatsapp.net' -> '31612345678'; an id without a device
    part falls back to everything before the '@'.
    """
    user = local_part(self_id)
    if _DEVICE_SEPARATOR in user:
        user = user[:user.index(_DEVICE_SEPARATOR)]
    return user


def resolve_recipient(token: str, self_id: Optional[str], contacts: ContactLookup) -> str:
    """
    Turn a recipient token into a canonical address. First match wins:

    1. a single leading '+' is dropped; nothing left is InvalidInput
    2. tokens already ending in a person/group domain are returned unchanged
    3. 'me' becomes the session's own number (NotReady without a self id)
    4. a contact found by name becomes that contact's number
    5. anything else is taken as a phone number
    """
    if token.startswith("+"):
        token = token[1:]
    if not token.strip():
        raise InvalidInput("Recipient must not be empty")

    if is_canonical(token):
        return token

    if token == SELF_KEYWORD:
        if not self_id:
            raise NotReady("Session identity is not known yet; cannot resolve 'me'")
        return person_address(self_local_part(self_id))

    contact = contacts.find(token)
    if contact is not None:
        return person_address(contact.phone_number)

    return person_address(token)


class RecipientResolver:
    """resolve_recipient() bound to a contact lookup"""

    def __init__(self, contacts: ContactLookup) -> None:
        self.contacts = contacts

    def resolve(self, token: str, self_id: Optional[str]) -> str:
        return resolve_recipient(token, self_id, self.contacts)
