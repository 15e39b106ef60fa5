"""
Tests for ChainVerifier.

Tamper scenarios edit stored rows out of band and check that the verifier
reports the right entry, position and hashes.
"""

from datetime import datetime, timedelta, timezone

import pytest

from auditchain.core.clock import SteppingClock
from auditchain.core.entry import AuditLogRequest, format_timestamp
from auditchain.core.errors import ErrorCode, IntegrityError, InvalidDateRangeError, RepositoryError
from auditchain.core.notifications import AUDIT_CHAIN_BROKEN, AuditChainBrokenEvent, LocalEventBus
from auditchain.log.appender import HashChainAppender
from auditchain.log.integrity import GENESIS_HASH, recompute_entry_hash
from auditchain.log.memory_repository import InMemoryAuditLogRepository
from auditchain.verify.chain import ChainVerificationResult, ChainVerifier

T0 = datetime(2026, 3, 2, 8, 0, 0, tzinfo=timezone.utc)
STEP = timedelta(seconds=1)


def _seeded(count):
    repo = InMemoryAuditLogRepository()
    with HashChainAppender(repo, clock=SteppingClock(T0, step=STEP)) as appender:
        entries = [
            appender.append_and_wait(
                AuditLogRequest("order.filled", "execution", {"orderId": f"A{i}", "qty": i}),
                timeout=5,
            )
            for i in range(count)
        ]
    return repo, entries


def _verifier(repo, **kwargs):
    bus = LocalEventBus()
    broken = []
    bus.subscribe(AUDIT_CHAIN_BROKEN, broken.append)
    return ChainVerifier(repo, emitter=bus, **kwargs), broken


def test_empty_range_is_valid():
    repo, _ = _seeded(3)
    verifier, broken = _verifier(repo)

    result = verifier.verify_chain(T0 + timedelta(days=1), T0 + timedelta(days=2))

    assert result == ChainVerificationResult(valid=True, entries_checked=0)
    assert broken == []


def test_empty_repository_is_valid():
    verifier, _ = _verifier(InMemoryAuditLogRepository())
    assert verifier.verify_chain(T0, T0 + STEP).entries_checked == 0


def test_intact_chain_is_valid():
    repo, entries = _seeded(5)
    verifier, broken = _verifier(repo)

    result = verifier.verify_chain(T0, entries[-1].created_at)

    assert result.valid
    assert result.entries_checked == 5
    assert result.broken_at_id is None
    assert broken == []


def test_range_bounds_are_inclusive():
    repo, entries = _seeded(5)
    verifier, _ = _verifier(repo)

    result = verifier.verify_chain(entries[1].created_at, entries[3].created_at)
    assert result.valid
    assert result.entries_checked == 3


def test_subrange_anchors_on_entry_before_range():
    """A range starting mid-chain links to the entry just before it, not to genesis."""
    repo, entries = _seeded(6)
    verifier, _ = _verifier(repo)

    result = verifier.verify_chain(entries[3].created_at - timedelta(milliseconds=500), entries[5].created_at)
    assert result.valid
    assert result.entries_checked == 3


def test_details_tamper_reported_at_position():
    repo, entries = _seeded(5)
    tampered = repo.tamper(entries[2].id, details={"orderId": "A2", "qty": 2000})
    verifier, broken = _verifier(repo)

    result = verifier.verify_chain(T0, entries[-1].created_at)

    assert not result.valid
    assert result.entries_checked == 3
    assert result.broken_at_id == entries[2].id
    assert result.broken_at_timestamp == format_timestamp(entries[2].created_at)
    assert result.expected_hash == recompute_entry_hash(tampered)
    assert result.actual_hash == entries[2].current_hash

    assert len(broken) == 1
    event = broken[0]
    assert isinstance(event, AuditChainBrokenEvent)
    assert event.broken_at_id == entries[2].id
    assert event.expected_hash == result.expected_hash
    assert event.actual_hash == result.actual_hash


def test_current_hash_tamper_reported_at_same_entry():
    repo, entries = _seeded(4)
    repo.tamper(entries[1].id, current_hash="f" * 64)
    verifier, _ = _verifier(repo)

    result = verifier.verify_chain(T0, entries[-1].created_at)

    assert not result.valid
    assert result.entries_checked == 2
    assert result.broken_at_id == entries[1].id
    assert result.expected_hash == entries[1].current_hash
    assert result.actual_hash == "f" * 64


def test_previous_hash_tamper_is_a_link_break():
    repo, entries = _seeded(4)
    repo.tamper(entries[2].id, previous_hash="a" * 64)
    verifier, _ = _verifier(repo)

    result = verifier.verify_chain(T0, entries[-1].created_at)

    assert not result.valid
    assert result.entries_checked == 3
    assert result.broken_at_id == entries[2].id
    assert result.expected_hash == entries[1].current_hash
    assert result.actual_hash == "a" * 64


def test_first_entry_must_link_to_genesis():
    repo, entries = _seeded(2)
    repo.tamper(entries[0].id, previous_hash="1" * 64)
    verifier, _ = _verifier(repo)

    result = verifier.verify_chain(T0, entries[-1].created_at)

    assert not result.valid
    assert result.entries_checked == 1
    assert result.expected_hash == GENESIS_HASH


def test_deleted_entry_breaks_the_next_link():
    repo, entries = _seeded(5)
    repo.delete(entries[2].id)
    verifier, broken = _verifier(repo)

    result = verifier.verify_chain(T0, entries[-1].created_at)

    assert not result.valid
    # entries[3] is now the 3rd entry walked
    assert result.entries_checked == 3
    assert result.broken_at_id == entries[3].id
    assert result.expected_hash == entries[1].current_hash
    assert result.actual_hash == entries[3].previous_hash
    assert len(broken) == 1


def test_deleted_entry_before_range_is_detected():
    repo, entries = _seeded(5)
    repo.delete(entries[2].id)
    verifier, _ = _verifier(repo)

    result = verifier.verify_chain(entries[3].created_at, entries[-1].created_at)

    assert not result.valid
    assert result.entries_checked == 1
    assert result.broken_at_id == entries[3].id


def test_storage_error_propagates():
    repo, entries = _seeded(3)
    repo.fail_next(1)
    verifier, broken = _verifier(repo)

    with pytest.raises(RepositoryError):
        verifier.verify_chain(T0, entries[-1].created_at)
    assert broken == []


def test_storage_error_on_predecessor_lookup_propagates():
    repo, entries = _seeded(3)
    verifier, _ = _verifier(repo)

    def _fail(ts):
        raise RepositoryError("lookup failed")

    repo.find_just_before = _fail

    with pytest.raises(RepositoryError, match="lookup failed"):
        verifier.verify_chain(T0, entries[-1].created_at)


def test_inverted_range_rejected():
    verifier, _ = _verifier(InMemoryAuditLogRepository())

    with pytest.raises(InvalidDateRangeError) as exc_info:
        verifier.verify_chain(T0 + STEP, T0)
    assert exc_info.value.code == ErrorCode.INVALID_DATE_RANGE


def test_naive_bounds_rejected():
    verifier, _ = _verifier(InMemoryAuditLogRepository())

    with pytest.raises(InvalidDateRangeError):
        verifier.verify_chain(datetime(2026, 3, 1), datetime(2026, 3, 2))


def test_range_wider_than_max_rejected():
    verifier, _ = _verifier(InMemoryAuditLogRepository(), max_range=timedelta(days=7))

    verifier.verify_chain(T0, T0 + timedelta(days=7))
    with pytest.raises(InvalidDateRangeError):
        verifier.verify_chain(T0, T0 + timedelta(days=8))


def test_result_to_dict():
    ok = ChainVerificationResult(valid=True, entries_checked=2)
    assert ok.to_dict() == {"valid": True, "entriesChecked": 2}

    bad = ChainVerificationResult(
        valid=False,
        entries_checked=3,
        broken_at_id="e3",
        broken_at_timestamp="2026-03-02T08:00:02.000Z",
        expected_hash="a" * 64,
        actual_hash="b" * 64,
    )
    assert bad.to_dict() == {
        "valid": False,
        "entriesChecked": 3,
        "brokenAtId": "e3",
        "brokenAtTimestamp": "2026-03-02T08:00:02.000Z",
        "expectedHash": "a" * 64,
        "actualHash": "b" * 64,
    }


def test_raise_for_invalid():
    ok = ChainVerificationResult(valid=True, entries_checked=1)
    assert ok.raise_for_invalid() is ok

    bad = ChainVerificationResult(valid=False, entries_checked=1, broken_at_id="e1")
    with pytest.raises(IntegrityError) as exc_info:
        bad.raise_for_invalid()
    assert exc_info.value.code == ErrorCode.AUDIT_HASH_CHAIN_BROKEN


def test_failing_emitter_still_returns_broken_result(caplog):
    class _ExplodingEmitter:
        def emit(self, name, event):
            raise RuntimeError("bus down")

    repo, entries = _seeded(3)
    repo.tamper(entries[1].id, details={"orderId": "A1", "qty": 10})
    verifier = ChainVerifier(repo, emitter=_ExplodingEmitter())

    result = verifier.verify_chain(T0, entries[-1].created_at)

    assert not result.valid
    assert result.entries_checked == 2
    assert result.broken_at_id == entries[1].id
    assert "Failed to emit chain broken notification" in caplog.text


def test_unencodable_stored_details_reported_as_tamper():
    repo, entries = _seeded(3)
    repo.tamper(entries[2].id, details={"orderId": "A2", "qty": float("inf")})
    verifier, broken = _verifier(repo)

    result = verifier.verify_chain(T0, entries[-1].created_at)

    assert not result.valid
    assert result.entries_checked == 3
    assert result.broken_at_id == entries[2].id
    assert result.expected_hash is None
    assert result.actual_hash == entries[2].current_hash
    assert "expectedHash" not in result.to_dict()
    assert [e.broken_at_id for e in broken] == [entries[2].id]
