"""
Notifications emitted by the audit chain.

The event bus itself belongs to the host application; this module only
defines the event names, payloads and the narrow emit() contract. A small
in-process bus is provided for wiring and tests.
"""

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, DefaultDict, List, Protocol

logger = logging.getLogger(__name__)

AUDIT_LOG_FAILED = "monitoring.audit.write_failed"
AUDIT_CHAIN_BROKEN = "monitoring.audit.chain_broken"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AuditLogFailedEvent:
    """An append could not be persisted; the event is missing from the chain."""
    error: str
    event_type: str
    module: str
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class AuditChainBrokenEvent:
    """Verification found a structural break or a content tamper."""
    broken_at_id: str
    expected_hash: str
    actual_hash: str
    timestamp: datetime = field(default_factory=_utcnow)


class EventEmitter(Protocol):
    def emit(self, name: str, event: Any) -> None:
        ...


class NullEventEmitter:
    """Emitter that drops every notification."""

    def emit(self, name: str, event: Any) -> None:
        return None


Handler = Callable[[Any], None]


class LocalEventBus:
    """
    In-process publish/subscribe bus.

    Handlers run synchronously on the emitting thread. A failing handler is
    logged and skipped so a broken subscriber can never fail an append or a
    verification.
    """

    def __init__(self) -> None:
        self._handlers: DefaultDict[str, List[Handler]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, name: str, handler: Handler) -> None:
        with self._lock:
            self._handlers[name].append(handler)

    def unsubscribe(self, name: str, handler: Handler) -> None:
        with self._lock:
            if handler in self._handlers.get(name, []):
                self._handlers[name].remove(handler)

    def emit(self, name: str, event: Any) -> None:
        with self._lock:
            handlers = list(self._handlers.get(name, []))
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler failed", extra={"event_name": name})
