"""Message entities shared by the conversation store and its repositories."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class SyncStatus(str, Enum):
    """Synchronisation state of a message with the remote collection."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    # Diagnostics shown to the user but never written remotely.
    LOCAL = "local"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Message:
    """A single entry of the conversation transcript.

    ``id`` stays ``None`` until the remote create acknowledges; such
    messages have no addressable remote record, so callers should not
    offer edit or delete for them.
    """

    text: str
    is_user: bool
    timestamp: datetime = field(default_factory=utcnow)
    id: Optional[str] = None
    status: SyncStatus = SyncStatus.PENDING

    @property
    def is_confirmed(self) -> bool:
        return self.id is not None and self.status is SyncStatus.CONFIRMED

    def describe(self) -> dict:
        return {
            "id": self.id,
            "text": self.text,
            "is_user": self.is_user,
            "timestamp": self.timestamp.isoformat(),
            "status": self.status.value,
        }


@dataclass
class MessageRecord:
    """A stored message as returned by a repository query.

    ``timestamp`` is passed through untouched; remote stores may hand back
    native datetimes, provider specific timestamp objects, strings or
    nothing at all.  Use :func:`normalise_timestamp` before relying on it.
    """

    id: str
    identity: str
    text: str
    is_user: bool
    timestamp: Any = None


def normalise_timestamp(value: Any, *, fallback: Optional[datetime] = None) -> datetime:
    """Coerce ``value`` into an aware UTC datetime, falling back on garbage."""

    if not isinstance(value, datetime):
        to_datetime = getattr(value, "to_datetime", None)
        if callable(to_datetime):
            try:
                value = to_datetime()
            except (TypeError, ValueError, OverflowError):
                value = None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    if isinstance(value, str):
        candidate = value.strip()
        if candidate:
            if candidate.endswith("Z"):
                candidate = f"{candidate[:-1]}+00:00"
            try:
                parsed = datetime.fromisoformat(candidate)
            except ValueError:
                parsed = None
            if parsed is not None:
                if parsed.tzinfo is None:
                    parsed = parsed.replace(tzinfo=timezone.utc)
                return parsed.astimezone(timezone.utc)

    return fallback if fallback is not None else utcnow()


def message_from_record(record: MessageRecord, *, fallback: Optional[datetime] = None) -> Message:
    return Message(
        id=record.id,
        text=record.text if isinstance(record.text, str) else "",
        is_user=bool(record.is_user),
        timestamp=normalise_timestamp(record.timestamp, fallback=fallback),
        status=SyncStatus.CONFIRMED,
    )


__all__ = [
    "Message",
    "MessageRecord",
    "SyncStatus",
    "message_from_record",
    "normalise_timestamp",
    "utcnow",
]
