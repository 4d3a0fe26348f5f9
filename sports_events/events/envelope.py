"""
Event envelope: the immutable unit that travels over the channel.

Wire format (JSON):
    {
        "event_id": "<uuid4>",
        "event_type": "match.completed",
        "service": "match-service",
        "version": "1.0",
        "correlation_id": "<opaque>",
        "payload": {...},
        "timestamp": "2026-01-31T16:43:18.123456+00:00"
    }

Older producers omit correlation_id; one is generated on decode.
"""

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from sports_events.errors import MalformedEventError

# Raw text kept on MalformedEventError / logs is truncated to this many chars
RAW_PREVIEW_CHARS = 2000


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _freeze(value: Any) -> Any:
    if isinstance(value, dict):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [_thaw(v) for v in value]
    return value


@dataclass(frozen=True)
class EventEnvelope:
    """One domain event plus its routing/tracing metadata.

    The payload is copied through JSON on construction, which both rejects
    non-serializable values and detaches it from the caller's dict.
    """

    type: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    version: str = "1.0"
    service: str = "unknown"
    correlation_id: str = ""
    occurred_at: datetime = field(default_factory=_utc_now)
    event_id: str = ""

    def __post_init__(self):
        if not isinstance(self.type, str) or not self.type.strip():
            raise ValueError("event type must be a non-empty string")
        if not isinstance(self.payload, Mapping):
            raise TypeError("payload must be a mapping")
        try:
            copied = json.loads(json.dumps(_thaw(self.payload)))
        except (TypeError, ValueError) as e:
            raise TypeError(f"payload is not JSON-serializable: {e}") from e

        # frozen=True: assign through object.__setattr__
        object.__setattr__(self, "payload", _freeze(copied))
        if not self.correlation_id:
            object.__setattr__(self, "correlation_id", str(uuid.uuid4()))
        if not self.event_id:
            object.__setattr__(self, "event_id", str(uuid.uuid4()))
        if self.occurred_at.tzinfo is None:
            object.__setattr__(self, "occurred_at", self.occurred_at.replace(tzinfo=timezone.utc))

    @property
    def identity(self) -> tuple[str, str, str]:
        """type + correlation_id + occurred_at, unique within the history window."""
        return (self.type, self.correlation_id, self.occurred_at.isoformat())

    def payload_dict(self) -> dict[str, Any]:
        """Mutable deep copy of the payload."""
        return _thaw(self.payload)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.type,
            "service": self.service,
            "version": self.version,
            "correlation_id": self.correlation_id,
            "payload": self.payload_dict(),
            "timestamp": self.occurred_at.isoformat(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    def __repr__(self):
        return f"EventEnvelope({self.type}, id={self.event_id}, corr={self.correlation_id})"


class _WireEnvelope(BaseModel):
    """Strict shape check for inbound messages."""

    model_config = ConfigDict(extra="ignore", strict=False)

    event_id: uuid.UUID
    event_type: str
    service: str
    version: str
    payload: dict
    timestamp: datetime
    correlation_id: Optional[str] = None

    @field_validator("event_type", "version", "service")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must be a non-empty string")
        return value

    @field_validator("timestamp", mode="before")
    @classmethod
    def _iso_timestamp(cls, value: Any) -> datetime:
        # Numbers would otherwise be coerced as unix epochs
        if not isinstance(value, str) or "T" not in value:
            raise ValueError("must be an ISO-8601 date-time string")
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as e:
            raise ValueError(f"must be an ISO-8601 date-time string: {e}") from e


def decode_envelope(raw: Any, max_size: Optional[int] = None) -> EventEnvelope:
    """
    Decode a raw channel message (bytes, str or dict) into an EventEnvelope.

    Raises:
        MalformedEventError: on any decoding or validation failure.
    """
    if isinstance(raw, (bytes, bytearray)):
        if max_size is not None and len(raw) > max_size:
            raise MalformedEventError(f"message exceeds {max_size} bytes", raw=raw)
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedEventError(f"not UTF-8: {e}", raw=raw) from e

    if isinstance(raw, str):
        if max_size is not None and len(raw.encode("utf-8")) > max_size:
            raise MalformedEventError(f"message exceeds {max_size} bytes", raw=raw)
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise MalformedEventError(f"invalid JSON: {e.msg}", raw=raw) from e
    else:
        data = raw

    if not isinstance(data, dict):
        raise MalformedEventError(f"expected JSON object, got {type(data).__name__}", raw=raw)

    try:
        wire = _WireEnvelope.model_validate(data)
    except ValidationError as e:
        fields = ",".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise MalformedEventError(f"invalid fields: {fields}", raw=raw) from e

    try:
        return EventEnvelope(
            type=wire.event_type,
            payload=wire.payload,
            version=wire.version,
            service=wire.service,
            correlation_id=wire.correlation_id or "",
            occurred_at=wire.timestamp,
            event_id=str(wire.event_id),
        )
    except (TypeError, ValueError) as e:
        raise MalformedEventError(str(e), raw=raw) from e


def raw_preview(raw: Any) -> str:
    """Printable, truncated form of a raw message for logs and dead letters."""
    if isinstance(raw, (bytes, bytearray)):
        text = raw.decode("utf-8", errors="replace")
    elif isinstance(raw, str):
        text = raw
    else:
        try:
            text = json.dumps(raw, default=str)
        except (TypeError, ValueError):
            text = repr(raw)
    if len(text) > RAW_PREVIEW_CHARS:
        return text[:RAW_PREVIEW_CHARS] + "...[truncated]"
    return text
