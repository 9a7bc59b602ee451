from __future__ import annotations


class MudslideError(Exception):
    """Base class for every error the CLI reports to the operator."""
    pass


class NotAuthenticated(MudslideError):
    """Raised when an operation needs a login but no credentials are stored."""

    def __init__(self, message: str = "Not logged in") -> None:
        super().__init__(message)


class NotReady(MudslideError):
    """Raised when an operation is attempted before the session is open."""
    pass


class StorageError(MudslideError):
    """Raised when the cache folder or one of its files cannot be read or written."""
    pass


class DuplicateContact(MudslideError):
    """Raised when adding a contact whose name is already stored."""

    def __init__(self, name: str) -> None:
        super().__init__(f'Contact "{name}" already exists.')
        self.name = name


class SessionConnectionError(MudslideError, ConnectionError):
    """Raised when the transport cannot be opened; never retried."""
    pass


class TerminalLogout(MudslideError):
    """Raised once when the server ends the session permanently."""

    def __init__(self, message: str = 'Device was disconnected from WhatsApp, use "logout" command first') -> None:
        super().__init__(message)


class InvalidInput(MudslideError):
    """Raised for malformed operator input (coordinates, poll options, files)."""
    pass


class TransportError(MudslideError):
    """Raised when a bridge request fails or times out."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class BadFrameError(MudslideError):
    """Raised when a bridge frame is not valid JSON or misses required fields."""
    pass
