
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional
import json
import time
import uuid

from shared.errors import BadFrameError


@dataclass
class Envelope:
    """
    Every frame on the bridge socket uses the envelope:
    {
    "type": "STRING",
    "id":   "UUID (correlates request/response; fresh for events)",
    "ts":   "INT (unix ms)",
    "payload": { ... }
    }
    """
    type: str           # Frame type, case-sensitive
    id: str             # Request id, echoed by the matching response
    ts: int             # Unix timestamp in milliseconds
    payload: Dict[str, Any]  # JSON object, frame-specific

    @classmethod
    def from_json(cls, json_str: str) -> 'Envelope':
        """Parse JSON string into Envelope, validating structure"""
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            raise BadFrameError(f"Invalid JSON: {e}")

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Any) -> 'Envelope':
        """Create Envelope from dictionary, validating required fields"""
        if not isinstance(data, dict):
            raise BadFrameError("Frame must be a JSON object")

        required_fields = {'type', 'id', 'payload'}
        missing = required_fields - set(data.keys())
        if missing:
            raise BadFrameError(f"Missing required fields: {sorted(missing)}")

        if not isinstance(data['type'], str):
            raise BadFrameError("'type' must be a string")
        if not isinstance(data['id'], str):
            raise BadFrameError("'id' must be a string")
        if not isinstance(data['payload'], dict):
            raise BadFrameError("'payload' must be a dictionary")

        ts = data.get('ts', 0)
        if isinstance(ts, bool) or not isinstance(ts, int):
            raise BadFrameError("'ts' must be an integer")

        return cls(
            type=data['type'],
            id=data['id'],
            ts=ts,
            payload=data['payload'],
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert Envelope back to dictionary"""
        return {
            'type': self.type,
            'id': self.id,
            'ts': self.ts,
            'payload': self.payload,
        }

    def to_json(self) -> str:
        """Convert Envelope to JSON string"""
        return json.dumps(self.to_dict(), separators=(',', ':'), sort_keys=True)


def create_envelope(frame_type: str, payload: Dict[str, Any],
                    frame_id: Optional[str] = None, ts: Optional[int] = None) -> Envelope:
    """Helper to create a new envelope with a fresh id and timestamp (now if not provided)"""
    return Envelope(
        type=frame_type,
        id=frame_id or str(uuid.uuid4()),
        ts=int(time.time() * 1000) if ts is None else ts,
        payload=payload,
    )
