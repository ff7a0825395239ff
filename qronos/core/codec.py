from __future__ import annotations
import json
from dataclasses import dataclass
from typing import Any

from ..errors import MalformedStructure, MissingField

FIELDS = ("eventId", "timestamp", "signature")

# event ids are stored as 32-bit INTEGER, timestamps as 64-bit BIGINT
MAX_EVENT_ID = 2**31 - 1
MAX_TIMESTAMP = 2**63 - 1


@dataclass(frozen=True)
class AttendanceToken:
    event_id: int
    timestamp: int
    signature: str


def encode(token: AttendanceToken) -> str:
    payload = {"eventId": int(token.event_id), "timestamp": int(token.timestamp), "signature": token.signature}
    return json.dumps(payload, separators=(",", ":"))


def _as_int(name: str, value: Any, limit: int) -> int:
    # bool is an int subclass; a QR saying `true` is not an event id
    if isinstance(value, bool):
        raise MalformedStructure(f"{name} must be an integer")
    if isinstance(value, int):
        out = value
    elif isinstance(value, float) and value.is_integer():
        out = int(value)
    elif isinstance(value, str) and value.strip().isascii() and value.strip().isdigit():
        try:
            out = int(value.strip())
        except ValueError:
            raise MalformedStructure(f"{name} must be an integer")
    else:
        raise MalformedStructure(f"{name} must be an integer")
    if out < 0:
        raise MalformedStructure(f"{name} must not be negative")
    if out > limit:
        raise MalformedStructure(f"{name} out of range")
    return out


def decode(raw: str) -> AttendanceToken:
    try:
        data = json.loads(raw)
    except (TypeError, ValueError, RecursionError):
        raise MalformedStructure("not valid JSON")
    if not isinstance(data, dict):
        raise MalformedStructure("not a JSON object")

    # eventId 0 is a real event: only absence/null counts as missing
    if data.get("eventId") is None or data.get("eventId") == "":
        raise MissingField("eventId")
    event_id = _as_int("eventId", data["eventId"], MAX_EVENT_ID)

    if not data.get("timestamp"):
        raise MissingField("timestamp")
    timestamp = _as_int("timestamp", data["timestamp"], MAX_TIMESTAMP)
    if timestamp == 0:
        raise MissingField("timestamp")

    signature = data.get("signature")
    if not signature:
        raise MissingField("signature")
    if not isinstance(signature, str):
        raise MalformedStructure("signature must be a string")

    return AttendanceToken(event_id=event_id, timestamp=timestamp, signature=signature)
