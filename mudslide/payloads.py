"""
Message payloads sent through the bridge, and the text shown for inbound ones.

Payload shapes follow the bridge's sendMessage contract: exactly one content
key (text, image, audio, video, document, location, poll) plus its options.
Binary content travels base64 encoded under {"data": ...}.
"""

from __future__ import annotations

import base64
import mimetypes
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from shared.errors import InvalidInput

FILE_TYPES = ("document", "audio", "video")

_GEO_PRECISION = 7


def handle_newlines(text: Optional[str]) -> Optional[str]:
    """Expand literal '\\n' sequences typed on the command line"""
    if text:
        return text.replace("\\n", "\n")
    return text


def parse_geo_location(latitude: str, longitude: str) -> Tuple[float, float]:
    try:
        lat = float(latitude)
        lon = float(longitude)
    except ValueError:
        raise InvalidInput(f"Invalid geo location: {latitude}, {longitude}")
    if lat != lat or lon != lon:
        raise InvalidInput(f"Invalid geo location: {latitude}, {longitude}")
    return round(lat, _GEO_PRECISION), round(lon, _GEO_PRECISION)


def check_valid_file(path: str) -> Path:
    p = Path(path)
    if not p.is_file():
        raise InvalidInput(f"Could not read file: {path}")
    return p


def validate_poll(items: Sequence[str], selectable: int) -> None:
    if len(items) <= 1:
        raise InvalidInput("Not enough poll options provided")
    if selectable < 0 or selectable > len(items):
        raise InvalidInput(f"Selectable should be >= 0 and <= {len(items)}")


def text_message(text: str, footer: Optional[str] = None, buttons: Sequence[str] = ()) -> Dict[str, Any]:
    message: Dict[str, Any] = {"text": handle_newlines(text)}
    if footer:
        message["footer"] = footer
    if buttons:
        message["buttons"] = [
            {"buttonId": f"id{idx}", "buttonText": {"displayText": label}, "type": 1}
            for idx, label in enumerate(buttons)
        ]
        message["headerType"] = 1
    return message


def image_message(path: Path, caption: Optional[str] = None) -> Dict[str, Any]:
    return {"image": _media(path), "caption": handle_newlines(caption)}


def file_message(path: Path, caption: Optional[str] = None, file_type: str = "document") -> Dict[str, Any]:
    if file_type not in FILE_TYPES:
        raise InvalidInput(f"Unsupported file type: {file_type}")
    mimetype, _ = mimetypes.guess_type(path.name)
    message: Dict[str, Any] = {
        "mimetype": mimetype,
        "caption": handle_newlines(caption),
        file_type: _media(path),
    }
    if file_type == "document":
        message["fileName"] = path.name
    return message


def location_message(latitude: float, longitude: float) -> Dict[str, Any]:
    return {"location": {"degreesLatitude": latitude, "degreesLongitude": longitude}}


def poll_message(name: str, items: List[str], selectable: int) -> Dict[str, Any]:
    validate_poll(items, selectable)
    return {"poll": {"name": name, "selectableCount": selectable, "values": list(items)}}


def _media(path: Path) -> Dict[str, str]:
    try:
        data = path.read_bytes()
    except OSError as e:
        raise InvalidInput(f"Could not read file: {path}: {e}") from e
    return {"data": base64.b64encode(data).decode("ascii")}


def extract_message_text(message: Optional[Dict[str, Any]]) -> str:
    """One-line preview of an inbound message"""
    if not message:
        return "[No message content]"

    if message.get("conversation"):
        return message["conversation"]
    extended = message.get("extendedTextMessage") or {}
    if extended.get("text"):
        return extended["text"]
    image = message.get("imageMessage") or {}
    if image.get("caption"):
        return f"[Image] {image['caption']}"
    video = message.get("videoMessage") or {}
    if video.get("caption"):
        return f"[Video] {video['caption']}"
    document = message.get("documentMessage")
    if document:
        return f"[Document] {document.get('caption') or document.get('fileName') or 'Document'}"
    if message.get("audioMessage"):
        return "[Audio Message]"
    if message.get("stickerMessage"):
        return "[Sticker]"
    contact = message.get("contactMessage")
    if contact:
        return f"[Contact] {contact.get('displayName')}"
    location = message.get("locationMessage")
    if location:
        return f"[Location] {location.get('degreesLatitude')}, {location.get('degreesLongitude')}"
    return "[Unsupported message type]"
