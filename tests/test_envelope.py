"""Tests for the event envelope and wire decoding.

Verifies:
1. Envelopes are immutable and detached from the caller's payload
2. Missing correlation ids are generated
3. Every malformed input raises MalformedEventError (never a generic error)
"""

import json
from datetime import datetime, timezone

import pytest

from sports_events.errors import MalformedEventError
from sports_events.events.envelope import EventEnvelope, decode_envelope, raw_preview

from conftest import make_raw


class TestEventEnvelope:
    """Construction and immutability."""

    def test_payload_is_detached_copy(self):
        """Mutating the source dict after construction changes nothing."""
        data = {"match_id": 10, "scores": [1, 2]}
        env = EventEnvelope(type="match.completed", payload=data)
        data["match_id"] = 99
        data["scores"].append(3)
        assert env.payload["match_id"] == 10
        assert env.payload_dict()["scores"] == [1, 2]

    def test_payload_cannot_be_mutated(self):
        """The stored payload is read-only."""
        env = EventEnvelope(type="match.completed", payload={"match_id": 10})
        with pytest.raises(TypeError):
            env.payload["match_id"] = 11

    def test_envelope_is_frozen(self):
        """Fields cannot be reassigned."""
        env = EventEnvelope(type="match.completed", payload={})
        with pytest.raises(AttributeError):
            env.type = "other"

    def test_generates_ids_when_missing(self):
        """correlation_id and event_id are filled in."""
        env = EventEnvelope(type="match.completed", payload={})
        assert env.correlation_id
        assert env.event_id
        assert env.correlation_id != env.event_id

    def test_keeps_given_correlation_id(self):
        """A supplied correlation id is preserved."""
        env = EventEnvelope(type="match.completed", payload={}, correlation_id="abc")
        assert env.correlation_id == "abc"

    def test_empty_type_rejected(self):
        """Blank event types are refused at construction."""
        with pytest.raises(ValueError):
            EventEnvelope(type="  ", payload={})

    def test_non_serializable_payload_rejected(self):
        """Payloads must survive JSON."""
        with pytest.raises(TypeError):
            EventEnvelope(type="x", payload={"when": object()})

    def test_naive_timestamp_becomes_utc(self):
        """occurred_at is always timezone-aware."""
        env = EventEnvelope(type="x", payload={}, occurred_at=datetime(2026, 1, 1, 12, 0))
        assert env.occurred_at.tzinfo == timezone.utc

    def test_to_dict_wire_keys(self):
        """Serialized form uses the wire field names."""
        env = EventEnvelope(type="match.completed", payload={"a": 1}, service="match-service")
        wire = json.loads(env.to_json())
        assert set(wire) == {
            "event_id", "event_type", "service", "version", "correlation_id", "payload", "timestamp",
        }
        assert wire["event_type"] == "match.completed"
        assert wire["payload"] == {"a": 1}


class TestDecodeEnvelope:
    """Decoding raw channel messages."""

    def test_decodes_valid_message(self):
        """A well-formed message round-trips its fields."""
        raw = make_raw(payload={"match_id": 7}, correlation_id="corr-7")
        env = decode_envelope(raw)
        assert env.type == "match.completed"
        assert env.service == "match-service"
        assert env.correlation_id == "corr-7"
        assert env.payload["match_id"] == 7

    def test_decodes_bytes(self):
        """Redis delivers bytes."""
        env = decode_envelope(make_raw().encode("utf-8"))
        assert env.type == "match.completed"

    def test_missing_correlation_id_generated(self):
        """Older producers omit correlation_id."""
        message = json.loads(make_raw())
        del message["correlation_id"]
        env = decode_envelope(json.dumps(message))
        assert env.correlation_id

    @pytest.mark.parametrize(
        "raw",
        [
            "{not json",
            "[1, 2, 3]",
            "null",
            b"\xff\xfe\x00",
        ],
    )
    def test_undecodable_input(self, raw):
        """Garbage raises MalformedEventError."""
        with pytest.raises(MalformedEventError):
            decode_envelope(raw)

    @pytest.mark.parametrize("missing", ["event_id", "event_type", "service", "payload", "timestamp", "version"])
    def test_missing_required_field(self, missing):
        """Every required field is enforced."""
        message = json.loads(make_raw())
        del message[missing]
        with pytest.raises(MalformedEventError) as exc:
            decode_envelope(json.dumps(message))
        assert missing in exc.value.reason

    @pytest.mark.parametrize("timestamp", [1700000000, 1700000000.5, "1700000000", "2026-03-01", "yesterday", None])
    def test_timestamp_must_be_iso_datetime(self, timestamp):
        """Epoch numbers and date-only strings are not accepted."""
        with pytest.raises(MalformedEventError) as exc:
            decode_envelope(make_raw(timestamp=timestamp))
        assert "timestamp" in exc.value.reason

    @pytest.mark.parametrize("timestamp", ["2026-03-01T18:00:00Z", "2026-03-01T18:00:00+00:00", "2026-03-01T19:00:00+01:00"])
    def test_iso_timestamp_variants(self, timestamp):
        env = decode_envelope(make_raw(timestamp=timestamp))
        assert env.occurred_at == datetime(2026, 3, 1, 18, 0, tzinfo=timezone.utc)

    def test_invalid_uuid(self):
        """event_id must be a UUID."""
        with pytest.raises(MalformedEventError):
            decode_envelope(make_raw(event_id="not-a-uuid"))

    def test_payload_must_be_object(self):
        """A list payload is malformed."""
        with pytest.raises(MalformedEventError):
            decode_envelope(make_raw(payload=[1, 2]))

    def test_oversized_message(self):
        """Messages above max_size are refused before parsing."""
        raw = make_raw(payload={"blob": "x" * 500})
        with pytest.raises(MalformedEventError) as exc:
            decode_envelope(raw, max_size=100)
        assert "exceeds" in exc.value.reason

    def test_error_carries_raw(self):
        """The raw message is kept for forensics."""
        with pytest.raises(MalformedEventError) as exc:
            decode_envelope("{broken")
        assert exc.value.raw == "{broken"


class TestRawPreview:
    """Truncated raw text for logs."""

    def test_truncates_long_text(self):
        """Long messages are cut."""
        preview = raw_preview("x" * 5000)
        assert preview.endswith("...[truncated]")
        assert len(preview) < 5000

    def test_bytes_decoded_with_replacement(self):
        """Invalid UTF-8 never raises."""
        assert isinstance(raw_preview(b"\xff\xfe"), str)
