"""
Environment-driven configuration for the audit service.

Environment Variables:
    AUDITCHAIN_STORE: memory, file or s3 - default: memory
    AUDITCHAIN_LOG_PATH: JSONL path for the file store - default: /tmp/auditchain/audit.log
    AUDITCHAIN_S3_BUCKET: Bucket for the s3 store (required when AUDITCHAIN_STORE=s3)
    AUDITCHAIN_S3_PREFIX: Key prefix - default: audit
    AUDITCHAIN_S3_ENDPOINT: Endpoint URL for MinIO/localstack - default: unset
    AUDITCHAIN_S3_REGION: AWS region - default: us-east-1
    AUDITCHAIN_QUEUE_MAXSIZE: Append queue bound - default: 10000
    AUDITCHAIN_VERIFY_MAX_RANGE_DAYS: Max verification range in days - default: unset (no limit)
    METRICS_ENABLED: true/false - default: false
    METRICS_PORT: HTTP port for /metrics - default: 8080
"""

import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Mapping, Optional

from ..log.file_repository import FileAuditLogRepository
from ..log.memory_repository import InMemoryAuditLogRepository
from ..log.repository import AuditLogRepository
from ..log.s3_repository import S3AuditLogRepository

STORE_TYPES = ("memory", "file", "s3")


def _env_int(env: Mapping[str, str], key: str, default: Optional[int]) -> Optional[int]:
    val = env.get(key)
    if val is None or val.strip() == "":
        return default
    try:
        parsed = int(val)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {val!r}") from None
    if parsed <= 0:
        raise ValueError(f"{key} must be positive, got {parsed}")
    return parsed


def _env_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    val = env.get(key)
    if val is None or val.strip() == "":
        return default
    lowered = val.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"{key} must be a boolean, got {val!r}")


@dataclass(frozen=True)
class AuditConfig:
    store: str = "memory"
    log_path: str = "/tmp/auditchain/audit.log"
    s3_bucket: Optional[str] = None
    s3_prefix: str = "audit"
    s3_endpoint: Optional[str] = None
    s3_region: str = "us-east-1"
    queue_maxsize: int = 10_000
    verify_max_range_days: Optional[int] = None
    metrics_enabled: bool = False
    metrics_port: int = 8080

    @property
    def verify_max_range(self) -> Optional[timedelta]:
        if self.verify_max_range_days is None:
            return None
        return timedelta(days=self.verify_max_range_days)

    @staticmethod
    def from_env(env: Optional[Mapping[str, str]] = None) -> "AuditConfig":
        env = os.environ if env is None else env

        store = env.get("AUDITCHAIN_STORE", "memory").strip().lower()
        if store not in STORE_TYPES:
            raise ValueError(f"AUDITCHAIN_STORE must be one of {', '.join(STORE_TYPES)}, got {store!r}")

        s3_bucket = env.get("AUDITCHAIN_S3_BUCKET") or None
        if store == "s3" and not s3_bucket:
            raise ValueError("AUDITCHAIN_S3_BUCKET is required when AUDITCHAIN_STORE=s3")

        return AuditConfig(
            store=store,
            log_path=env.get("AUDITCHAIN_LOG_PATH", "/tmp/auditchain/audit.log"),
            s3_bucket=s3_bucket,
            s3_prefix=env.get("AUDITCHAIN_S3_PREFIX", "audit"),
            s3_endpoint=env.get("AUDITCHAIN_S3_ENDPOINT") or None,
            s3_region=env.get("AUDITCHAIN_S3_REGION", "us-east-1"),
            queue_maxsize=_env_int(env, "AUDITCHAIN_QUEUE_MAXSIZE", 10_000),  # type: ignore[arg-type]
            verify_max_range_days=_env_int(env, "AUDITCHAIN_VERIFY_MAX_RANGE_DAYS", None),
            metrics_enabled=_env_bool(env, "METRICS_ENABLED", False),
            metrics_port=_env_int(env, "METRICS_PORT", 8080),  # type: ignore[arg-type]
        )


def build_repository(config: AuditConfig) -> AuditLogRepository:
    """Construct the repository selected by config.store."""
    if config.store == "s3":
        return S3AuditLogRepository(
            bucket=config.s3_bucket or "",
            prefix=config.s3_prefix,
            endpoint_url=config.s3_endpoint,
            region=config.s3_region,
        )
    if config.store == "file":
        return FileAuditLogRepository(config.log_path)
    return InMemoryAuditLogRepository()
