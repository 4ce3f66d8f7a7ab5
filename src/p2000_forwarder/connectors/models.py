"""
P2000 message types decoded from the upstream WebSocket feed.

Each feed frame is a UTF-8 JSON object:

    {
        "type": "FLEX",
        "timestamp": 1672531200,
        "signal": {"baudrate": 1600, "frame": 3, "subtype": "A", "function": "1"},
        "frequency_error": 0.12,
        "capcodes": ["0101001", "0101002"],
        "message": "A1 Utrecht Centrum",
        "agency": "Ambulance"
    }

Decoding is tolerant: missing keys and unknown keys never fail a frame, missing
values fall back to zero/empty defaults. A payload that is not a JSON object, or
a value that cannot be coerced to its field type, raises MessageDecodeError.
"""

import json
from dataclasses import dataclass, field
from typing import Any


class MessageDecodeError(ValueError):
    """Raised when a feed frame cannot be decoded into a Message."""


@dataclass(frozen=True)
class Signal:
    """Modulation metadata reported by the receiver that decoded the page."""

    baudrate: int = 0
    frame: int = 0
    subtype: str = ""
    function: str = ""

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Signal":
        return cls(
            baudrate=int(raw.get("baudrate") or 0),
            frame=int(raw.get("frame") or 0),
            subtype=_as_str(raw.get("subtype")),
            function=_as_str(raw.get("function")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "baudrate": self.baudrate,
            "frame": self.frame,
            "subtype": self.subtype,
            "function": self.function,
        }


@dataclass(frozen=True)
class Message:
    """
    One decoded P2000 page. Immutable once created.

    `kind` carries the JSON "type" field (e.g. "FLEX"); the rename avoids
    shadowing the builtin.
    """

    kind: str = ""
    timestamp: int = 0
    signal: Signal = field(default_factory=Signal)
    frequency_error: float = 0.0
    capcodes: tuple[str, ...] = ()
    message: str = ""
    agency: str = ""

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Message":
        """
        Build a Message from a decoded JSON object.

        Raises:
            MessageDecodeError: If a present value has an unusable type.
        """
        try:
            signal_raw = raw.get("signal") or {}
            if not isinstance(signal_raw, dict):
                raise TypeError(f"signal must be an object, got {type(signal_raw).__name__}")
            capcodes_raw = raw.get("capcodes") or []
            if not isinstance(capcodes_raw, list):
                raise TypeError(f"capcodes must be an array, got {type(capcodes_raw).__name__}")
            return cls(
                kind=_as_str(raw.get("type")),
                timestamp=int(raw.get("timestamp") or 0),
                signal=Signal.from_dict(signal_raw),
                frequency_error=float(raw.get("frequency_error") or 0.0),
                capcodes=tuple(str(c) for c in capcodes_raw),
                message=_as_str(raw.get("message")),
                agency=_as_str(raw.get("agency")),
            )
        except (TypeError, ValueError) as exc:
            raise MessageDecodeError(f"invalid message field: {exc}") from exc

    def to_dict(self) -> dict[str, Any]:
        """Inverse of from_dict(), using the wire field names."""
        return {
            "type": self.kind,
            "timestamp": self.timestamp,
            "signal": self.signal.to_dict(),
            "frequency_error": self.frequency_error,
            "capcodes": list(self.capcodes),
            "message": self.message,
            "agency": self.agency,
        }


def decode_message(payload: str | bytes) -> Message:
    """
    Decode one feed frame into a Message.

    Raises:
        MessageDecodeError: If the payload is not valid UTF-8 JSON, is not a
            JSON object, or carries a field of the wrong type.
    """
    try:
        raw = json.loads(payload)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MessageDecodeError(f"invalid JSON payload: {exc}") from exc
    if not isinstance(raw, dict):
        raise MessageDecodeError(f"expected a JSON object, got {type(raw).__name__}")
    return Message.from_dict(raw)


def encode_message(message: Message) -> str:
    """Serialize a Message to the feed's JSON wire format."""
    return json.dumps(message.to_dict(), ensure_ascii=False)


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        raise TypeError(f"expected a string, got {type(value).__name__}")
    return str(value)
