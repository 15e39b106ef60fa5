"""
Audit log storage and chain appending.

This module provides:
- AuditLogRepository: Abstract interface for entry persistence
- InMemoryAuditLogRepository: Thread-safe in-process storage
- FileAuditLogRepository: File-based append-only storage (JSONL)
- S3AuditLogRepository: S3-based append-only storage (one object per entry)
- HashChainAppender: Serialized writer that owns the chain tip
- Integrity: Link hash computation
"""

from .repository import AuditLogRepository
from .memory_repository import InMemoryAuditLogRepository
from .file_repository import FileAuditLogRepository
from .s3_repository import S3AuditLogRepository
from .integrity import GENESIS_HASH, compute_hash, hash_input, recompute_entry_hash
from .appender import HashChainAppender

__all__ = [
    "AuditLogRepository",
    "InMemoryAuditLogRepository",
    "FileAuditLogRepository",
    "S3AuditLogRepository",
    "GENESIS_HASH",
    "compute_hash",
    "hash_input",
    "recompute_entry_hash",
    "HashChainAppender",
]
