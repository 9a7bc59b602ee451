from __future__ import annotations
import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from shared.errors import DuplicateContact, StorageError
from shared.log import get_logger

logger = get_logger(__name__)

CONTACTS_FILE = "contacts.json"

_WHITESPACE = re.compile(r"\s+")


@dataclass
class Contact:
    name: str
    phone_number: str

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "phoneNumber": self.phone_number}


def normalize_phone_number(phone_number: str) -> str:
    """Drop all whitespace and one leading '+'"""
    normalized = _WHITESPACE.sub("", phone_number)
    if normalized.startswith("+"):
        normalized = normalized[1:]
    return normalized


class ContactDirectory:
    """
    Local name -> phone number store kept in <cache>/contacts.json.

    Every operation reloads the file and every mutation rewrites it whole.
    Iteration order is insertion order, which decides which contact wins a
    partial-name lookup.
    """

    def __init__(self, cache_folder: Path) -> None:
        self.path = Path(cache_folder) / CONTACTS_FILE

    def load(self) -> Dict[str, Contact]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            return _parse_store(raw)
        except (OSError, ValueError, TypeError, KeyError) as e:
            logger.warning("Could not load contacts file, starting with empty contacts: %s", e)
            return {}

    def save(self, contacts: Dict[str, Contact]) -> None:
        data = {name: contact.to_dict() for name, contact in contacts.items()}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Could not save contacts: {e}") from e

    def all(self) -> Dict[str, Contact]:
        return self.load()

    def add(self, name: str, phone_number: str) -> Contact:
        contacts = self.load()
        if name in contacts:
            raise DuplicateContact(name)
        contact = Contact(name=name, phone_number=normalize_phone_number(phone_number))
        contacts[name] = contact
        self.save(contacts)
        return contact

    def remove(self, name: str) -> bool:
        contacts = self.load()
        if name not in contacts:
            return False
        del contacts[name]
        self.save(contacts)
        return True

    def update(self, name: str, new_phone_number: str) -> bool:
        contacts = self.load()
        if name not in contacts:
            return False
        contacts[name].phone_number = normalize_phone_number(new_phone_number)
        self.save(contacts)
        return True

    def find(self, query: str) -> Optional[Contact]:
        """Case-insensitive: exact name first, else first name containing the query"""
        contacts = self.load()
        needle = query.lower()

        for name, contact in contacts.items():
            if name.lower() == needle:
                return contact

        for name, contact in contacts.items():
            if needle in name.lower():
                return contact

        return None

    def exists(self, name: str) -> bool:
        return name in self.load()

    def find_by_phone(self, phone_number: str) -> Optional[Contact]:
        normalized = normalize_phone_number(phone_number)
        for contact in self.load().values():
            if contact.phone_number == normalized:
                return contact
        return None


def _parse_store(raw: object) -> Dict[str, Contact]:
    if not isinstance(raw, dict):
        raise ValueError("contacts file must hold a JSON object")

    contacts: Dict[str, Contact] = {}
    for key, value in raw.items():
        if not isinstance(value, dict):
            raise ValueError(f"contact {key!r} is not an object")
        contacts[key] = Contact(
            name=str(value.get("name", key)),
            phone_number=str(value["phoneNumber"]),
        )
    return contacts
