"""
AuditLogRepository abstract interface.

Defines the narrow storage contract the appender and verifier consume.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from ..core.entry import AuditLogEntry, NewAuditLogEntry


class AuditLogRepository(ABC):
    """
    Abstract audit log storage.

    All implementations must guarantee:
    - Append-only (no updates, no deletes)
    - Ordering by created_at (ties broken by insertion order)
    - Atomic create (no partial write visible to later reads)

    Every storage failure is raised as RepositoryError.
    """

    @abstractmethod
    def create(self, entry: NewAuditLogEntry) -> AuditLogEntry:
        """
        Durably persist one entry.

        Args:
            entry: Linked entry (id will be assigned)

        Returns:
            The persisted AuditLogEntry

        Raises:
            RepositoryError: If the write fails
        """
        ...

    @abstractmethod
    def find_last(self) -> Optional[AuditLogEntry]:
        """Most recently created entry, or None if the log is empty."""
        ...

    @abstractmethod
    def find_just_before(self, ts: datetime) -> Optional[AuditLogEntry]:
        """Latest entry with created_at strictly before ts."""
        ...

    @abstractmethod
    def find_by_date_range(self, start: datetime, end: datetime) -> List[AuditLogEntry]:
        """Entries with start <= created_at <= end, ascending."""
        ...

    def find_by_event_type(
        self,
        event_type: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[AuditLogEntry]:
        """
        Entries of one event type, ascending.

        The date filter applies only when both bounds are given. The default
        implementation scans find_by_date_range; implementations may override.
        """
        if start is not None and end is not None:
            candidates = self.find_by_date_range(start, end)
        else:
            candidates = self.all_entries()
        return [e for e in candidates if e.event_type == event_type]

    @abstractmethod
    def all_entries(self) -> List[AuditLogEntry]:
        """Every entry, ascending by created_at."""
        ...
