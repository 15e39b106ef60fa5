"""
Tests for AuditLogService wiring.
"""

import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest
from prometheus_client import REGISTRY

from auditchain.core.clock import SteppingClock
from auditchain.core.errors import AppenderClosedError, InvalidDateRangeError
from auditchain.core.notifications import AUDIT_CHAIN_BROKEN, LocalEventBus
from auditchain.log.memory_repository import InMemoryAuditLogRepository
from auditchain.runtime import metrics
from auditchain.runtime.config import AuditConfig
from auditchain.runtime.service import AuditLogService

T0 = datetime(2026, 3, 5, 16, 30, 0, tzinfo=timezone.utc)


def test_append_and_verify_through_service():
    repo = InMemoryAuditLogRepository()
    with AuditLogService(repo, clock=SteppingClock(T0)) as audit:
        futures = [
            audit.append("order.filled", "execution", {"orderId": f"A{i}", "qty": i}, correlation_id=f"c{i}")
            for i in range(10)
        ]
        entries = [f.result(timeout=5) for f in futures]

        result = audit.verify_chain(T0, T0 + timedelta(seconds=1))

    assert result.valid
    assert result.entries_checked == 10
    assert entries[3].correlation_id == "c3"
    assert entries[3].module == "execution"


def test_start_initializes_metrics():
    with AuditLogService(InMemoryAuditLogRepository(), clock=SteppingClock(T0)) as audit:
        audit.append("order.filled", "execution", {}).result(timeout=5)

    assert metrics.APPENDS_TOTAL is not None
    assert REGISTRY.get_sample_value("auditchain_appends_total", {"event_type": "order.filled"}) >= 1


def test_tamper_is_broadcast_on_the_bus():
    repo = InMemoryAuditLogRepository()
    bus = LocalEventBus()
    broken = []
    bus.subscribe(AUDIT_CHAIN_BROKEN, broken.append)

    with AuditLogService(repo, emitter=bus, clock=SteppingClock(T0)) as audit:
        first = audit.append("order.filled", "execution", {"qty": 1}).result(timeout=5)
        audit.append("order.filled", "execution", {"qty": 2}).result(timeout=5)
        repo.tamper(first.id, details={"qty": 100})

        result = audit.verify_chain(T0, T0 + timedelta(seconds=1))

    assert not result.valid
    assert result.broken_at_id == first.id
    assert [e.broken_at_id for e in broken] == [first.id]


def test_max_range_from_config():
    config = AuditConfig(verify_max_range_days=1)
    with AuditLogService(InMemoryAuditLogRepository(), config=config) as audit:
        with pytest.raises(InvalidDateRangeError):
            audit.verify_chain(T0, T0 + timedelta(days=2))


def test_from_config_file_store():
    with tempfile.TemporaryDirectory() as tmpdir:
        config = AuditConfig(store="file", log_path=os.path.join(tmpdir, "audit.log"))

        with AuditLogService.from_config(config) as audit:
            entry = audit.append("risk.limit.breached", "risk", {"limit": "gross"}).result(timeout=5)

        reopened = AuditLogService.from_config(config)
        assert reopened.repository.find_last().id == entry.id
        reopened.close()


def test_append_after_close_raises():
    audit = AuditLogService(InMemoryAuditLogRepository())
    audit.start()
    audit.close()

    with pytest.raises(AppenderClosedError):
        audit.append("order.filled", "execution", {})
