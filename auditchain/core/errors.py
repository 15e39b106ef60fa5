"""
Exception types for the audit chain.
"""

from enum import IntEnum
from typing import Optional


class ErrorCode(IntEnum):
    """Numeric codes attached to audit failures (SystemHealth range 4000-4999)."""

    AUDIT_LOG_WRITE_FAILED = 4010
    AUDIT_HASH_CHAIN_BROKEN = 4011
    INVALID_DATE_RANGE = 4012


class AuditChainError(Exception):
    """Base class for every error raised by auditchain."""

    code: Optional[ErrorCode] = None

    def __init__(self, message: str, code: Optional[ErrorCode] = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code


class RepositoryError(AuditChainError):
    """Raised when the backing store cannot complete an operation."""
    pass


class CanonicalEncodingError(AuditChainError, TypeError):
    """Raised when a details payload contains a value outside the JSON value space."""
    pass


class InvalidDateRangeError(AuditChainError, ValueError):
    """Raised when a verification range is inverted or too wide."""

    code = ErrorCode.INVALID_DATE_RANGE


class AppenderClosedError(AuditChainError):
    """Raised when append is called after the appender was closed."""
    pass


class IntegrityError(AuditChainError):
    """Raised when hash chain verification fails and the caller asked for an exception."""

    code = ErrorCode.AUDIT_HASH_CHAIN_BROKEN
