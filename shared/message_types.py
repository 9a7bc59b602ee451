from __future__ import annotations

from enum import Enum
from typing import Set


class FrameType(str, Enum):
    """Bridge frame types exchanged over the WebSocket."""

    # Client -> bridge
    AUTH_OPEN = "auth.open"                      # Open the WhatsApp socket with stored credentials
    REQUEST = "request"                          # Domain operation (send, query, mutate)

    # Bridge -> client
    RESPONSE = "response"                        # Result or error for a REQUEST, same id
    CONNECTION_UPDATE = "connection.update"      # connecting / qr / open / close
    CREDS_UPDATE = "creds.update"                # New credentials to persist
    KEYS_UPDATE = "keys.update"                  # Auxiliary key files to persist or delete
    MESSAGES_UPSERT = "messages.upsert"          # Inbound messages
    MESSAGES_UPDATE = "messages.update"          # Receipts, deletions

    @classmethod
    def is_valid(cls, value: str) -> bool:
        """Check if string is a valid frame type."""
        try:
            cls(value)
            return True
        except ValueError:
            return False


class Connection(str, Enum):
    """Values of connection.update's 'connection' field."""
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSE = "close"


# Frames dispatched to event handlers rather than to pending requests
EVENT_FRAMES: Set[FrameType] = {
    FrameType.CONNECTION_UPDATE,
    FrameType.CREDS_UPDATE,
    FrameType.KEYS_UPDATE,
    FrameType.MESSAGES_UPSERT,
    FrameType.MESSAGES_UPDATE,
}

# Disconnect status codes reported in lastDisconnect.statusCode
LOGGED_OUT = 401
RESTART_REQUIRED = 515
