"""
Audit log entry model.

Entries are immutable records; the only mutation path for the log is
append. An AuditLogRequest is what producers hand to the appender, a
NewAuditLogEntry is the linked record before the repository assigns an
id, and an AuditLogEntry is the persisted row.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .canonical import JsonValue


def format_timestamp(ts: datetime) -> str:
    """
    ISO-8601 UTC timestamp with millisecond precision and a Z suffix.

    This string is part of the hash input, so its shape is fixed:
    2026-02-24T09:55:35.123Z
    """
    if ts.tzinfo is None:
        raise ValueError("timestamp must be timezone-aware")
    utc = ts.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S") + f".{utc.microsecond // 1000:03d}Z"


def parse_timestamp(value: str) -> datetime:
    """Inverse of format_timestamp (also accepts +00:00 offsets)."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


@dataclass(frozen=True)
class AuditLogRequest:
    """
    A request to append one audited event.

    Fields:
        event_type: Short tag of the audited event (e.g. "execution.order.filled")
        module: Originating subsystem (e.g. "execution")
        details: Event payload, any JsonValue
        correlation_id: Optional request/transaction correlation id
    """
    event_type: str
    module: str
    details: JsonValue = field(default_factory=dict)
    correlation_id: Optional[str] = None


@dataclass(frozen=True)
class NewAuditLogEntry:
    """A linked entry ready to be persisted (no id yet)."""
    event_type: str
    module: str
    correlation_id: Optional[str]
    details: JsonValue
    previous_hash: str
    current_hash: str
    created_at: datetime


@dataclass(frozen=True)
class AuditLogEntry:
    """
    Persisted audit log entry.

    current_hash == sha256(previous_hash|event_type|iso(created_at)|canonical(details))
    """
    id: str
    event_type: str
    module: str
    correlation_id: Optional[str]
    details: JsonValue
    previous_hash: str
    current_hash: str
    created_at: datetime

    @classmethod
    def from_new(cls, entry_id: str, entry: NewAuditLogEntry) -> "AuditLogEntry":
        return cls(
            id=entry_id,
            event_type=entry.event_type,
            module=entry.module,
            correlation_id=entry.correlation_id,
            details=entry.details,
            previous_hash=entry.previous_hash,
            current_hash=entry.current_hash,
            created_at=entry.created_at,
        )

    def to_record(self) -> Dict[str, Any]:
        """JSON-safe dict used by the file and S3 repositories."""
        return {
            "id": self.id,
            "event_type": self.event_type,
            "module": self.module,
            "correlation_id": self.correlation_id,
            "details": self.details,
            "previous_hash": self.previous_hash,
            "current_hash": self.current_hash,
            "created_at": format_timestamp(self.created_at),
        }

    @classmethod
    def from_record(cls, rec: Dict[str, Any]) -> "AuditLogEntry":
        return cls(
            id=rec["id"],
            event_type=rec["event_type"],
            module=rec["module"],
            correlation_id=rec.get("correlation_id"),
            details=rec.get("details"),
            previous_hash=rec["previous_hash"],
            current_hash=rec["current_hash"],
            created_at=parse_timestamp(rec["created_at"]),
        )
