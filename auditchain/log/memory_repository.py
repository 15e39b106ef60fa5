"""
In-memory audit log repository.

Used as the default store for local runs and as the repository double in
tests. fail_next() simulates storage outages; tamper() simulates an
out-of-band edit of a stored row.
"""

import copy
import dataclasses
import threading
import uuid
from datetime import datetime
from typing import Any, List, Optional

from ..core.entry import AuditLogEntry, NewAuditLogEntry
from ..core.errors import RepositoryError
from .repository import AuditLogRepository


def _detached(entry: AuditLogEntry) -> AuditLogEntry:
    """Copy of entry whose details share no objects with the original."""
    return dataclasses.replace(entry, details=copy.deepcopy(entry.details))


class InMemoryAuditLogRepository(AuditLogRepository):
    """Thread-safe list-backed repository, ordered by (created_at, insertion order)."""

    def __init__(self) -> None:
        self._entries: List[AuditLogEntry] = []
        self._lock = threading.Lock()
        self._pending_failures: List[Exception] = []
        self.create_calls = 0

    def fail_next(self, count: int = 1, error: Optional[Exception] = None) -> None:
        """Make the next `count` calls to any repository method raise."""
        with self._lock:
            for _ in range(count):
                self._pending_failures.append(error or RepositoryError("simulated storage outage"))

    def _maybe_fail(self) -> None:
        if self._pending_failures:
            raise self._pending_failures.pop(0)

    def _sorted(self) -> List[AuditLogEntry]:
        indexed = list(enumerate(self._entries))
        indexed.sort(key=lambda pair: (pair[1].created_at, pair[0]))
        return [_detached(e) for _, e in indexed]

    def create(self, entry: NewAuditLogEntry) -> AuditLogEntry:
        with self._lock:
            self.create_calls += 1
            self._maybe_fail()
            stored = AuditLogEntry.from_new(uuid.uuid4().hex, entry)
            self._entries.append(_detached(stored))
            return stored

    def find_last(self) -> Optional[AuditLogEntry]:
        with self._lock:
            self._maybe_fail()
            ordered = self._sorted()
            return ordered[-1] if ordered else None

    def find_just_before(self, ts: datetime) -> Optional[AuditLogEntry]:
        with self._lock:
            self._maybe_fail()
            before = [e for e in self._sorted() if e.created_at < ts]
            return before[-1] if before else None

    def find_by_date_range(self, start: datetime, end: datetime) -> List[AuditLogEntry]:
        with self._lock:
            self._maybe_fail()
            return [e for e in self._sorted() if start <= e.created_at <= end]

    def all_entries(self) -> List[AuditLogEntry]:
        with self._lock:
            self._maybe_fail()
            return self._sorted()

    def tamper(self, entry_id: str, **changes: Any) -> AuditLogEntry:
        """Replace fields of a stored entry in place (test helper)."""
        with self._lock:
            for idx, entry in enumerate(self._entries):
                if entry.id == entry_id:
                    self._entries[idx] = _detached(dataclasses.replace(entry, **changes))
                    return _detached(self._entries[idx])
        raise KeyError(entry_id)

    def delete(self, entry_id: str) -> None:
        """Remove a stored entry (test helper simulating a deleted row)."""
        with self._lock:
            self._entries = [e for e in self._entries if e.id != entry_id]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
