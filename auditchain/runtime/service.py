"""
Process-level audit log service.

Wires one repository, one HashChainAppender and one ChainVerifier
together. Construct one instance per process.

Usage:
    config = AuditConfig.from_env()
    with AuditLogService.from_config(config, emitter=bus) as audit:
        audit.append("execution.order.filled", "execution", {"orderId": "A1", "qty": 5})
        result = audit.verify_chain(start, end)
"""

import logging
from concurrent.futures import Future
from datetime import datetime
from typing import Optional

from ..core.canonical import JsonValue
from ..core.clock import Clock
from ..core.entry import AuditLogEntry, AuditLogRequest
from ..core.notifications import EventEmitter, NullEventEmitter
from ..log.appender import HashChainAppender
from ..log.repository import AuditLogRepository
from ..verify.chain import ChainVerificationResult, ChainVerifier
from . import metrics
from .config import AuditConfig, build_repository

logger = logging.getLogger(__name__)


class AuditLogService:
    def __init__(
        self,
        repository: AuditLogRepository,
        emitter: Optional[EventEmitter] = None,
        config: Optional[AuditConfig] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.config = config or AuditConfig()
        self.repository = repository
        self.emitter = emitter or NullEventEmitter()
        self.appender = HashChainAppender(
            repository,
            emitter=self.emitter,
            clock=clock,
            queue_maxsize=self.config.queue_maxsize,
        )
        self.verifier = ChainVerifier(
            repository,
            emitter=self.emitter,
            max_range=self.config.verify_max_range,
        )

    @classmethod
    def from_config(
        cls,
        config: AuditConfig,
        emitter: Optional[EventEmitter] = None,
    ) -> "AuditLogService":
        return cls(build_repository(config), emitter=emitter, config=config)

    def start(self) -> None:
        """Initialize metrics and the appender (loads the chain tip)."""
        metrics.init_metrics()
        metrics.start_metrics_server(
            enabled=self.config.metrics_enabled,
            port=self.config.metrics_port,
        )
        self.appender.initialize()
        logger.info("Audit log service started", extra={"store": self.config.store})

    def append(
        self,
        event_type: str,
        module: str,
        details: JsonValue,
        correlation_id: Optional[str] = None,
    ) -> "Future[AuditLogEntry]":
        return self.appender.append(
            AuditLogRequest(
                event_type=event_type,
                module=module,
                details=details,
                correlation_id=correlation_id,
            )
        )

    def verify_chain(self, start: datetime, end: datetime) -> ChainVerificationResult:
        return self.verifier.verify_chain(start, end)

    def close(self, timeout: Optional[float] = 5.0) -> None:
        self.appender.close(timeout=timeout)

    def __enter__(self) -> "AuditLogService":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
