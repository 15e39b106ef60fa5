"""
Core audit chain primitives.

This module provides the foundational pieces shared by the appender and the verifier:
- Canonical: Deterministic encoding of entry details
- Entry: Audit log entry records
- Clock: Millisecond commit clocks
- Notifications: Write-failure and chain-broken events
- Errors: Exception taxonomy and error codes
"""

from .canonical import JsonValue, canonical_encode, canonical_encode_bytes, to_json_value
from .entry import (
    AuditLogEntry,
    AuditLogRequest,
    NewAuditLogEntry,
    format_timestamp,
    parse_timestamp,
)
from .clock import Clock, SystemClock, SteppingClock
from .notifications import (
    AUDIT_CHAIN_BROKEN,
    AUDIT_LOG_FAILED,
    AuditChainBrokenEvent,
    AuditLogFailedEvent,
    EventEmitter,
    LocalEventBus,
    NullEventEmitter,
)
from .errors import (
    AppenderClosedError,
    AuditChainError,
    CanonicalEncodingError,
    ErrorCode,
    IntegrityError,
    InvalidDateRangeError,
    RepositoryError,
)

__all__ = [
    "JsonValue",
    "canonical_encode",
    "canonical_encode_bytes",
    "to_json_value",
    "AuditLogEntry",
    "AuditLogRequest",
    "NewAuditLogEntry",
    "format_timestamp",
    "parse_timestamp",
    "Clock",
    "SystemClock",
    "SteppingClock",
    "AUDIT_CHAIN_BROKEN",
    "AUDIT_LOG_FAILED",
    "AuditChainBrokenEvent",
    "AuditLogFailedEvent",
    "EventEmitter",
    "LocalEventBus",
    "NullEventEmitter",
    "AppenderClosedError",
    "AuditChainError",
    "CanonicalEncodingError",
    "ErrorCode",
    "IntegrityError",
    "InvalidDateRangeError",
    "RepositoryError",
]
