"""
File-based audit log repository using append-only JSONL format.

Each line is one persisted entry record (see AuditLogEntry.to_record).
"""

import fcntl
import json
import os
import uuid
from datetime import datetime
from typing import IO, List, Optional

from ..core.canonical import canonical_encode_bytes, to_json_value
from ..core.entry import AuditLogEntry, NewAuditLogEntry
from ..core.errors import RepositoryError
from .repository import AuditLogRepository


class FileAuditLogRepository(AuditLogRepository):
    """
    File-based append-only audit log repository.

    Storage format: JSONL (newline-delimited JSON)
    Each line: {"id": "...", "event_type": "...", ..., "created_at": "...Z"}

    Guarantees:
    - Append-only (no mutations)
    - Exclusive flock + fsync per create (durability, no interleaved lines)
    - A torn trailing line (crash mid-write) is ignored on read
    """

    def __init__(self, path: str) -> None:
        """
        Initialize file repository.

        Args:
            path: Path to JSONL file
        """
        self.path = path

        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)

        if not os.path.exists(path):
            with open(path, "wb") as f:
                f.write(b"")

    def _read_locked(self, f: IO[bytes]) -> List[AuditLogEntry]:
        entries = []
        f.seek(0)
        for line in f:
            if not line.strip():
                continue
            if not line.endswith(b"\n"):
                # Torn write from a crashed process; never acknowledged.
                break
            entries.append(AuditLogEntry.from_record(json.loads(line)))
        return entries

    def _read_all(self) -> List[AuditLogEntry]:
        try:
            with open(self.path, "rb") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    entries = self._read_locked(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except (OSError, ValueError, KeyError) as ex:
            raise RepositoryError(f"failed to read audit log {self.path}: {ex}") from ex
        indexed = list(enumerate(entries))
        indexed.sort(key=lambda pair: (pair[1].created_at, pair[0]))
        return [e for _, e in indexed]

    def create(self, entry: NewAuditLogEntry) -> AuditLogEntry:
        """
        Append one record with fsync.

        Raises:
            RepositoryError: If the write fails
        """
        stored = AuditLogEntry.from_new(uuid.uuid4().hex, entry)
        record = stored.to_record()
        record["details"] = to_json_value(stored.details)
        line = canonical_encode_bytes(record) + b"\n"

        try:
            with open(self.path, "a+b") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                try:
                    f.seek(0, os.SEEK_END)
                    f.write(line)
                    f.flush()
                    os.fsync(f.fileno())
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except OSError as ex:
            raise RepositoryError(str(ex)) from ex

        return stored

    def find_last(self) -> Optional[AuditLogEntry]:
        entries = self._read_all()
        return entries[-1] if entries else None

    def find_just_before(self, ts: datetime) -> Optional[AuditLogEntry]:
        before = [e for e in self._read_all() if e.created_at < ts]
        return before[-1] if before else None

    def find_by_date_range(self, start: datetime, end: datetime) -> List[AuditLogEntry]:
        return [e for e in self._read_all() if start <= e.created_at <= end]

    def all_entries(self) -> List[AuditLogEntry]:
        return self._read_all()
