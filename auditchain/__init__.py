"""
Tamper-Evident Audit Trail

Hash-chained, append-only audit log with serialized writers and range verification.
"""

__version__ = "0.1.0"
