"""
Hash chain integrity primitives.

Implements tamper-evident logging using cryptographic hash chains.
Each entry carries the hash of the previous entry, forming an immutable chain.

The hash input is the one bit-exact contract external forensic tooling
must reproduce:

    sha256("<previous_hash>|<event_type>|<iso timestamp>|<canonical details>")
"""

import hashlib
from datetime import datetime

from ..core.canonical import JsonValue, canonical_encode
from ..core.entry import AuditLogEntry, format_timestamp

GENESIS_HASH = "0" * 64


def hash_input(
    previous_hash: str,
    event_type: str,
    created_at: datetime,
    details: JsonValue,
) -> str:
    """
    Build the pipe-delimited hash input string.

    Raises:
        CanonicalEncodingError: details is not encodable
    """
    canonical_details = canonical_encode(details)
    return f"{previous_hash}|{event_type}|{format_timestamp(created_at)}|{canonical_details}"


def compute_hash(
    previous_hash: str,
    event_type: str,
    created_at: datetime,
    details: JsonValue,
) -> str:
    """
    Compute the link hash of an entry chained to previous_hash.

    Args:
        previous_hash: current_hash of the prior entry (or GENESIS_HASH)
        event_type: Audited event tag
        created_at: Commit timestamp assigned by the appender
        details: Event payload

    Returns:
        SHA-256 hash as hex string
    """
    payload = hash_input(previous_hash, event_type, created_at, details)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def recompute_entry_hash(entry: AuditLogEntry) -> str:
    """Recompute current_hash from an entry's stored fields."""
    return compute_hash(entry.previous_hash, entry.event_type, entry.created_at, entry.details)
