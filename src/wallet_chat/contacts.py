"""Display-name resolution backed by the contact directory."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from .core.errors import CollaboratorError
from .core.identity import normalize_identity, short_identity
from .core.interfaces import ContactDirectory
from .core.models import Contact

LOGGER = logging.getLogger(__name__)


def resolve_display_name(address: str, contacts: Iterable[Contact]) -> str:
    """Return the saved contact name for ``address`` or its short form."""
    wanted = normalize_identity(address)
    for contact in contacts:
        if normalize_identity(contact.address) == wanted and contact.name:
            name = contact.name.strip()
            if name:
                return name
    return short_identity(address)


class ContactBook:
    """Cache of the owner's contacts used only for presentation."""

    def __init__(self, directory: ContactDirectory, owner: str) -> None:
        """Bind the book to a directory and the owning identity."""
        self._directory = directory
        self._owner = owner
        self._names: dict[str, str] = {}

    def refresh(self) -> int:
        """Reload contacts; keeps the previous names when the directory fails."""
        try:
            contacts = self._directory.list_contacts(self._owner)
        except CollaboratorError as exc:
            LOGGER.warning("Could not refresh contacts: %s", exc)
            return len(self._names)
        names: dict[str, str] = {}
        for contact in contacts:
            if contact.name and contact.name.strip():
                names[normalize_identity(contact.address)] = contact.name.strip()
        self._names = names
        return len(names)

    def display_name(self, address: str) -> str:
        """Return the contact name for ``address`` or its short form."""
        return self._names.get(normalize_identity(address)) or short_identity(address)


__all__ = ["ContactBook", "resolve_display_name"]
