"""
Test suite for the audit chain.

Focus areas:
- Canonical encoding determinism
- Hash chain linking and the hash input contract
- Serialized appends under concurrency and storage failure
- Range verification and tamper detection
"""
