"""
Runtime wiring: configuration, structured logging, Prometheus metrics and
the process-level AuditLogService.

Submodules are imported directly (auditchain.runtime.metrics, ...) so the
storage layer can depend on metrics without importing the service.
"""
