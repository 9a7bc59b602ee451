from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from shared.message_types import LOGGED_OUT, Connection


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_PAIRING = "awaiting_pairing"
    OPEN = "open"
    CLOSING = "closing"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class ConnectionUpdate:
    """Typed connection.update event"""
    connection: Optional[Connection] = None
    qr: Optional[str] = None
    status_code: Optional[int] = None
    reason: Optional[str] = None
    user_id: Optional[str] = None

    @property
    def is_logged_out(self) -> bool:
        return self.connection is Connection.CLOSE and self.status_code == LOGGED_OUT

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ConnectionUpdate":
        connection = payload.get("connection")
        last_disconnect = payload.get("lastDisconnect") or {}
        user = payload.get("user") or {}
        status_code = last_disconnect.get("statusCode")
        return cls(
            connection=_connection(connection),
            qr=payload.get("qr") or None,
            status_code=status_code if isinstance(status_code, int) else None,
            reason=last_disconnect.get("message"),
            user_id=user.get("id"),
        )

    @classmethod
    def closed(cls, status_code: Optional[int] = None, reason: Optional[str] = None) -> "ConnectionUpdate":
        return cls(connection=Connection.CLOSE, status_code=status_code, reason=reason)


def _connection(value: Any) -> Optional[Connection]:
    try:
        return Connection(value)
    except ValueError:
        return None
