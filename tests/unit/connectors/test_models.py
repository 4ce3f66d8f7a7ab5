"""
Unit tests for the P2000 Message / Signal types and the feed JSON codec.

Tests cover:
- decode_message(): full payload field mapping, including nested signal
- decode_message(): missing fields fall back to zero/empty defaults
- decode_message(): unknown fields are ignored
- decode_message(): invalid JSON, non-object payloads and wrong types raise MessageDecodeError
- encode_message() → decode_message() round trip
- Message immutability
"""

import dataclasses
import json

import pytest

from p2000_forwarder.connectors.models import (
    Message,
    MessageDecodeError,
    Signal,
    decode_message,
    encode_message,
)

SAMPLE_FRAME = {
    "type": "FLEX",
    "timestamp": 1234567890,
    "signal": {"baudrate": 1200, "frame": 1, "subtype": "A", "function": "1"},
    "frequency_error": 0.123,
    "capcodes": ["0101001", "0101002"],
    "message": "Test alert",
    "agency": "Brandweer",
}


class TestDecodeMessage:
    """Test field mapping from the wire format."""

    def test_all_fields_mapped(self) -> None:
        message = decode_message(json.dumps(SAMPLE_FRAME))
        assert message.kind == "FLEX"
        assert message.timestamp == 1234567890
        assert message.frequency_error == 0.123
        assert message.capcodes == ("0101001", "0101002")
        assert message.message == "Test alert"
        assert message.agency == "Brandweer"

    def test_signal_mapped(self) -> None:
        message = decode_message(json.dumps(SAMPLE_FRAME))
        assert message.signal == Signal(baudrate=1200, frame=1, subtype="A", function="1")

    def test_bytes_payload(self) -> None:
        message = decode_message(json.dumps(SAMPLE_FRAME).encode("utf-8"))
        assert message.kind == "FLEX"

    def test_unicode_preserved(self) -> None:
        frame = {**SAMPLE_FRAME, "message": "🔥 Brand woning 🏠", "agency": "München"}
        message = decode_message(json.dumps(frame, ensure_ascii=False).encode("utf-8"))
        assert "🔥" in message.message
        assert message.agency == "München"

    def test_capcode_order_preserved(self) -> None:
        frame = {**SAMPLE_FRAME, "capcodes": ["0234567", "0101001", "0101003", "0101002"]}
        message = decode_message(json.dumps(frame))
        assert message.capcodes == ("0234567", "0101001", "0101003", "0101002")

    def test_unknown_fields_ignored(self) -> None:
        frame = {**SAMPLE_FRAME, "receiver": "rx-03", "extra": {"nested": True}}
        message = decode_message(json.dumps(frame))
        assert message.message == "Test alert"


class TestDefaults:
    """Test that missing fields decode to zero values."""

    def test_empty_object(self) -> None:
        message = decode_message("{}")
        assert message == Message()
        assert message.kind == ""
        assert message.timestamp == 0
        assert message.signal == Signal()
        assert message.frequency_error == 0.0
        assert message.capcodes == ()
        assert message.message == ""
        assert message.agency == ""

    def test_partial_payload(self) -> None:
        message = decode_message('{"type": "FLEX", "message": "Test", "capcodes": ["0101001"]}')
        assert message.kind == "FLEX"
        assert message.message == "Test"
        assert message.capcodes == ("0101001",)
        assert message.timestamp == 0
        assert message.signal.baudrate == 0
        assert message.agency == ""

    def test_null_values_use_defaults(self) -> None:
        message = decode_message('{"type": null, "capcodes": null, "signal": null}')
        assert message.kind == ""
        assert message.capcodes == ()
        assert message.signal == Signal()

    def test_partial_signal(self) -> None:
        message = decode_message('{"signal": {"baudrate": 1600}}')
        assert message.signal.baudrate == 1600
        assert message.signal.subtype == ""


class TestDecodeErrors:
    """Test that malformed frames raise MessageDecodeError."""

    @pytest.mark.parametrize("payload", ["not json", "{", ""])
    def test_invalid_json(self, payload: str) -> None:
        with pytest.raises(MessageDecodeError):
            decode_message(payload)

    @pytest.mark.parametrize("payload", ["[]", '"text"', "42", "null"])
    def test_non_object(self, payload: str) -> None:
        with pytest.raises(MessageDecodeError, match="JSON object"):
            decode_message(payload)

    def test_non_numeric_timestamp(self) -> None:
        with pytest.raises(MessageDecodeError):
            decode_message('{"timestamp": "yesterday"}')

    def test_capcodes_not_a_list(self) -> None:
        with pytest.raises(MessageDecodeError):
            decode_message('{"capcodes": "0101001"}')

    def test_signal_not_an_object(self) -> None:
        with pytest.raises(MessageDecodeError):
            decode_message('{"signal": [1200]}')

    def test_invalid_utf8(self) -> None:
        with pytest.raises(MessageDecodeError):
            decode_message(b'{"message": "\xff\xfe"}')

    def test_is_value_error(self) -> None:
        assert issubclass(MessageDecodeError, ValueError)


class TestRoundTrip:
    """Test encode → decode preserves every field."""

    def test_populated_message(self) -> None:
        original = Message(
            kind="FLEX",
            timestamp=1672531200,
            signal=Signal(baudrate=1600, frame=3, subtype="B", function="2"),
            frequency_error=-0.5,
            capcodes=("0101001", "1420999"),
            message="A1 Utrecht",
            agency="Ambulance",
        )
        assert decode_message(encode_message(original)) == original

    def test_wire_field_names(self) -> None:
        encoded = json.loads(encode_message(Message(kind="FLEX", frequency_error=0.1)))
        assert encoded["type"] == "FLEX"
        assert encoded["frequency_error"] == 0.1
        assert "kind" not in encoded


class TestImmutability:
    def test_message_is_frozen(self) -> None:
        message = decode_message(json.dumps(SAMPLE_FRAME))
        with pytest.raises(dataclasses.FrozenInstanceError):
            message.message = "changed"  # type: ignore[misc]

    def test_signal_is_frozen(self) -> None:
        with pytest.raises(dataclasses.FrozenInstanceError):
            Signal().baudrate = 1  # type: ignore[misc]
