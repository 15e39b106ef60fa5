"""
Chain verification over persisted audit entries.
"""

from .chain import ChainVerificationResult, ChainVerifier

__all__ = ["ChainVerificationResult", "ChainVerifier"]
