"""
Chain verification with detailed tamper detection.

The ChainVerifier re-derives the expected chain for a time range straight
from storage: it needs no in-memory state from the appender and no secret.
For every entry in the range it checks two things, in order:

- link: previous_hash equals the current_hash of the entry before it
  (or of the entry just before the range, or the genesis hash). A mismatch
  is a structural break: an entry was deleted, inserted or reordered.
- content: current_hash equals a fresh recomputation from the entry's own
  fields. A mismatch is a content tamper.

Both are reported through the same result shape and the same
chain-broken notification. Storage errors propagate to the caller; a
verification that could not read its data never reports success.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from ..core.entry import AuditLogEntry, format_timestamp
from ..core.errors import CanonicalEncodingError, ErrorCode, IntegrityError, InvalidDateRangeError
from ..core.notifications import AUDIT_CHAIN_BROKEN, AuditChainBrokenEvent, EventEmitter, NullEventEmitter
from ..log.integrity import GENESIS_HASH, recompute_entry_hash
from ..log.repository import AuditLogRepository
from ..runtime import metrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChainVerificationResult:
    """
    Result of a chain verification run.

    entries_checked is the 1-based position of the offending entry when
    valid is False, otherwise the number of entries walked. expected_hash
    is None when the stored details can no longer be encoded at all.
    """

    valid: bool
    entries_checked: int
    broken_at_id: Optional[str] = None
    broken_at_timestamp: Optional[str] = None
    expected_hash: Optional[str] = None
    actual_hash: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """camelCase dict; optional fields are omitted when unset."""
        data: Dict[str, Any] = {"valid": self.valid, "entriesChecked": self.entries_checked}
        optional = {
            "brokenAtId": self.broken_at_id,
            "brokenAtTimestamp": self.broken_at_timestamp,
            "expectedHash": self.expected_hash,
            "actualHash": self.actual_hash,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        return data

    def raise_for_invalid(self) -> "ChainVerificationResult":
        """Raise IntegrityError if the chain is broken, else return self."""
        if not self.valid:
            raise IntegrityError(
                f"hash chain broken at entry {self.broken_at_id} ({self.broken_at_timestamp}): "
                f"expected {self.expected_hash}, got {self.actual_hash}"
            )
        return self


class ChainVerifier:
    """
    Verifies the integrity of the persisted audit chain over a time range.

    Args:
        repository: Store to read entries from
        emitter: Receives chain-broken notifications
        max_range: Optional upper bound on end - start
    """

    def __init__(
        self,
        repository: AuditLogRepository,
        emitter: Optional[EventEmitter] = None,
        max_range: Optional[timedelta] = None,
    ) -> None:
        self._repository = repository
        self._emitter = emitter or NullEventEmitter()
        self._max_range = max_range

    def verify_chain(self, start: datetime, end: datetime) -> ChainVerificationResult:
        """
        Prove or disprove chain integrity for entries with start <= created_at <= end.

        Raises:
            InvalidDateRangeError: start is after end, or the range exceeds max_range
            RepositoryError: the store could not be read
        """
        self._check_range(start, end)

        with metrics.track_verify_duration():
            entries = self._repository.find_by_date_range(start, end)
            if not entries:
                return ChainVerificationResult(valid=True, entries_checked=0)

            # entries[0] is the first entry at or after start, so the latest
            # entry strictly before it is also the latest strictly before start.
            before = self._repository.find_just_before(entries[0].created_at)
            expected = before.current_hash if before is not None else GENESIS_HASH

            result = self._walk(entries, expected)

        if result.valid:
            logger.info(
                "Audit chain verified",
                extra={
                    "entries_checked": result.entries_checked,
                    "range_start": format_timestamp(start),
                    "range_end": format_timestamp(end),
                },
            )
        else:
            self._report_broken(result)
        return result

    def _check_range(self, start: datetime, end: datetime) -> None:
        if start.tzinfo is None or end.tzinfo is None:
            raise InvalidDateRangeError("verification range bounds must be timezone-aware")
        if start > end:
            raise InvalidDateRangeError(
                f"start {format_timestamp(start)} is after end {format_timestamp(end)}"
            )
        if self._max_range is not None and end - start > self._max_range:
            raise InvalidDateRangeError(
                f"verification range {end - start} exceeds maximum {self._max_range}"
            )

    def _walk(self, entries: List[AuditLogEntry], expected: str) -> ChainVerificationResult:
        for position, entry in enumerate(entries, start=1):
            if entry.previous_hash != expected:
                return self._broken(position, entry, expected, entry.previous_hash)

            try:
                recomputed = recompute_entry_hash(entry)
            except CanonicalEncodingError:
                # Stored details no longer encode: edited out of band.
                return self._broken(position, entry, None, entry.current_hash)
            if recomputed != entry.current_hash:
                return self._broken(position, entry, recomputed, entry.current_hash)

            expected = entry.current_hash

        return ChainVerificationResult(valid=True, entries_checked=len(entries))

    @staticmethod
    def _broken(
        position: int,
        entry: AuditLogEntry,
        expected_hash: Optional[str],
        actual_hash: str,
    ) -> ChainVerificationResult:
        return ChainVerificationResult(
            valid=False,
            entries_checked=position,
            broken_at_id=entry.id,
            broken_at_timestamp=format_timestamp(entry.created_at),
            expected_hash=expected_hash,
            actual_hash=actual_hash,
        )

    def _report_broken(self, result: ChainVerificationResult) -> None:
        metrics.track_chain_broken()
        logger.error(
            "Audit hash chain integrity check failed",
            extra={
                "code": int(ErrorCode.AUDIT_HASH_CHAIN_BROKEN),
                "broken_at_id": result.broken_at_id,
                "broken_at_timestamp": result.broken_at_timestamp,
                "expected_hash": result.expected_hash,
                "actual_hash": result.actual_hash,
            },
        )
        try:
            self._emitter.emit(
                AUDIT_CHAIN_BROKEN,
                AuditChainBrokenEvent(
                    broken_at_id=result.broken_at_id or "",
                    expected_hash=result.expected_hash or "",
                    actual_hash=result.actual_hash or "",
                ),
            )
        except Exception:
            logger.exception("Failed to emit chain broken notification")
