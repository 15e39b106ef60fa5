"""
Concurrency tests for HashChainAppender.

Critical: Concurrent producers must never fork the chain.

Scenario: N threads append at the same time, then the whole range is verified.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
import threading
import time

from auditchain.core.entry import AuditLogRequest
from auditchain.log.appender import HashChainAppender
from auditchain.log.memory_repository import InMemoryAuditLogRepository
from auditchain.verify.chain import ChainVerifier


class _SlowRepository(InMemoryAuditLogRepository):
    """Records how many create() calls overlap."""

    def __init__(self):
        super().__init__()
        self._active = 0
        self._active_lock = threading.Lock()
        self.max_active = 0

    def create(self, entry):
        with self._active_lock:
            self._active += 1
            self.max_active = max(self.max_active, self._active)
        try:
            time.sleep(0.001)
            return super().create(entry)
        finally:
            with self._active_lock:
                self._active -= 1


def _produce(appender, n):
    return appender.append(
        AuditLogRequest("order.filled", "execution", {"orderId": f"A{n}", "qty": n}, correlation_id=f"c-{n}")
    )


def test_fifty_concurrent_appends_form_one_chain():
    """
    50 producers append concurrently against the system clock.

    Verify:
    - Every append succeeds
    - No two entries share a previous_hash (no fork)
    - Verification over the full range checks all 50
    """
    repo = InMemoryAuditLogRepository()
    start = datetime.now(timezone.utc) - timedelta(seconds=1)

    with HashChainAppender(repo) as appender:
        with ThreadPoolExecutor(max_workers=50) as pool:
            futures = list(pool.map(lambda n: _produce(appender, n), range(50)))
        entries = [f.result(timeout=10) for f in futures]

    assert len(entries) == 50
    assert len({e.previous_hash for e in entries}) == 50
    assert len({e.current_hash for e in entries}) == 50

    end = max(e.created_at for e in entries) + timedelta(seconds=1)
    result = ChainVerifier(repo).verify_chain(start, end)
    assert result.valid
    assert result.entries_checked == 50


def test_repository_never_sees_overlapping_creates():
    repo = _SlowRepository()

    with HashChainAppender(repo) as appender:
        with ThreadPoolExecutor(max_workers=16) as pool:
            futures = list(pool.map(lambda n: _produce(appender, n), range(40)))
        for f in futures:
            f.result(timeout=10)

    assert repo.max_active == 1
    assert len(repo) == 40


def test_failures_under_concurrency_do_not_fork_the_chain():
    repo = InMemoryAuditLogRepository()
    start = datetime.now(timezone.utc) - timedelta(seconds=1)

    with HashChainAppender(repo) as appender:
        repo.fail_next(5)
        with ThreadPoolExecutor(max_workers=10) as pool:
            futures = list(pool.map(lambda n: _produce(appender, n), range(30)))
        outcomes = [f.exception(timeout=10) for f in futures]

    assert sum(1 for ex in outcomes if ex is not None) == 5
    assert len(repo) == 25

    result = ChainVerifier(repo).verify_chain(start, datetime.now(timezone.utc) + timedelta(seconds=1))
    assert result.valid
    assert result.entries_checked == 25
