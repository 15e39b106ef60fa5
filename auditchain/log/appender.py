"""
Hash-chain appender.

The appender owns the chain tip: the current_hash of the most recently
persisted entry, which every new entry must carry as its previous_hash.
Producers call append() from any thread; requests go onto one bounded
FIFO queue drained by a single writer thread, so the sequence

    read tip -> assign created_at -> compute hash -> persist -> advance tip

never interleaves between two requests. The tip advances only after the
repository confirms the write. A failed write leaves the chain exactly as
it was: the event is missing, the chain stays valid.
"""

import dataclasses
import logging
import queue
import threading
from concurrent.futures import Future
from datetime import datetime, timedelta
from typing import Optional, Tuple, Union

from ..core.canonical import to_json_value
from ..core.clock import Clock, SystemClock
from ..core.entry import AuditLogEntry, AuditLogRequest, NewAuditLogEntry
from ..core.errors import AppenderClosedError, CanonicalEncodingError, ErrorCode
from ..core.notifications import AUDIT_LOG_FAILED, AuditLogFailedEvent, EventEmitter, NullEventEmitter
from ..runtime import metrics
from .integrity import GENESIS_HASH, compute_hash
from .repository import AuditLogRepository

logger = logging.getLogger(__name__)

_ONE_MS = timedelta(milliseconds=1)
_STOP = object()

_QueueItem = Union[Tuple[AuditLogRequest, "Future[AuditLogEntry]"], object]


class HashChainAppender:
    """
    Serialized writer for the audit hash chain.

    One instance per process. The tip is lazily resolved from the
    repository (initialize() or the first append), then kept in memory and
    only ever touched by the writer thread.

    Args:
        repository: Backing store
        emitter: Receives write-failure notifications
        clock: Commit clock (SystemClock by default)
        queue_maxsize: Bound of the request queue; producers block when full
    """

    def __init__(
        self,
        repository: AuditLogRepository,
        emitter: Optional[EventEmitter] = None,
        clock: Optional[Clock] = None,
        queue_maxsize: int = 10_000,
    ) -> None:
        self._repository = repository
        self._emitter = emitter or NullEventEmitter()
        self._clock = clock or SystemClock()
        self._queue: "queue.Queue[_QueueItem]" = queue.Queue(maxsize=queue_maxsize)
        self._tip: Optional[str] = None
        self._last_created_at: Optional[datetime] = None
        self._thread: Optional[threading.Thread] = None
        self._closed = False
        self._state_lock = threading.Lock()

    @property
    def tip_hash(self) -> Optional[str]:
        """Hash the next entry will chain to, or None until resolved."""
        return self._tip

    @property
    def pending(self) -> int:
        """Requests waiting for the writer."""
        return self._queue.qsize()

    def initialize(self) -> None:
        """
        Load the tip from storage and start the writer.

        A storage failure is logged and does not raise; the tip is then
        resolved by the first append instead.
        """
        with self._state_lock:
            if self._closed:
                raise AppenderClosedError("appender is closed")
            if self._thread is not None:
                return
            try:
                self._load_tip()
                logger.info(
                    "Audit log appender initialized",
                    extra={"tip_loaded": self._tip != GENESIS_HASH},
                )
            except Exception as ex:
                logger.error(
                    "Failed to load last audit hash on init",
                    extra={"error": str(ex), "code": int(ErrorCode.AUDIT_LOG_WRITE_FAILED)},
                )
            self._start_locked()

    def append(self, request: AuditLogRequest) -> "Future[AuditLogEntry]":
        """
        Queue one entry for the chain.

        Returns immediately with a Future that resolves to the persisted
        entry, or raises the storage/encoding error that prevented it.
        Blocks only while the queue is full.

        details is copied here: later changes to the caller's object affect
        neither the hash nor the stored entry. An unencodable payload fails
        the returned future without being queued.

        Raises:
            AppenderClosedError: close() was already called
        """
        future: "Future[AuditLogEntry]" = Future()
        try:
            request = dataclasses.replace(request, details=to_json_value(request.details))
        except CanonicalEncodingError as ex:
            self._handle_write_error(ex, request)
            future.set_exception(ex)
            return future

        with self._state_lock:
            if self._closed:
                raise AppenderClosedError("appender is closed")
            self._start_locked()
            self._queue.put((request, future))
        metrics.set_queue_depth(self._queue.qsize())
        return future

    def append_and_wait(self, request: AuditLogRequest, timeout: Optional[float] = None) -> AuditLogEntry:
        """append() and block for the result."""
        return self.append(request).result(timeout=timeout)

    def close(self, timeout: Optional[float] = 5.0) -> None:
        """Stop accepting appends, drain queued requests and stop the writer."""
        with self._state_lock:
            if self._closed:
                return
            self._closed = True
            thread = self._thread
            if thread is not None:
                self._queue.put(_STOP)
        if thread is not None:
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning(
                    "Audit log writer still draining after close timeout",
                    extra={"pending": self._queue.qsize(), "timeout": timeout},
                )

    def __enter__(self) -> "HashChainAppender":
        self.initialize()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _start_locked(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, daemon=True, name="auditchain-writer")
        self._thread.start()

    def _load_tip(self) -> str:
        last = self._repository.find_last()
        if last is None:
            self._tip = GENESIS_HASH
            self._last_created_at = None
        else:
            self._tip = last.current_hash
            self._last_created_at = last.created_at
        return self._tip

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                request, future = item  # type: ignore[misc]
                # Cancelled before admission: drop it. Once running it is not cancellable.
                if not future.set_running_or_notify_cancel():
                    continue
                self._process(request, future)
            finally:
                self._queue.task_done()
                metrics.set_queue_depth(self._queue.qsize())

    def _process(self, request: AuditLogRequest, future: "Future[AuditLogEntry]") -> None:
        with metrics.track_append_duration():
            try:
                entry = self._commit(request)
            except Exception as ex:
                self._handle_write_error(ex, request)
                future.set_exception(ex)
                return
        metrics.track_append(request.event_type)
        future.set_result(entry)

    def _next_timestamp(self) -> datetime:
        ts = self._clock.now()
        if self._last_created_at is not None and ts <= self._last_created_at:
            ts = self._last_created_at + _ONE_MS
        return ts

    def _commit(self, request: AuditLogRequest) -> AuditLogEntry:
        previous_hash = self._tip if self._tip is not None else self._load_tip()

        created_at = self._next_timestamp()
        current_hash = compute_hash(previous_hash, request.event_type, created_at, request.details)

        stored = self._repository.create(
            NewAuditLogEntry(
                event_type=request.event_type,
                module=request.module,
                correlation_id=request.correlation_id,
                details=request.details,
                previous_hash=previous_hash,
                current_hash=current_hash,
                created_at=created_at,
            )
        )

        self._tip = current_hash
        self._last_created_at = created_at
        logger.debug(
            "Audit entry appended",
            extra={
                "entry_id": stored.id,
                "event_type": request.event_type,
                "correlation_id": request.correlation_id,
            },
        )
        return stored

    def _handle_write_error(self, err: Exception, request: AuditLogRequest) -> None:
        metrics.track_append_failure(request.event_type)
        logger.error(
            "Audit log write failed",
            extra={
                "code": int(ErrorCode.AUDIT_LOG_WRITE_FAILED),
                "error": str(err),
                "event_type": request.event_type,
                "source_module": request.module,
                "correlation_id": request.correlation_id,
            },
        )
        try:
            self._emitter.emit(
                AUDIT_LOG_FAILED,
                AuditLogFailedEvent(error=str(err), event_type=request.event_type, module=request.module),
            )
        except Exception:
            logger.exception("Failed to emit audit write failure notification")
