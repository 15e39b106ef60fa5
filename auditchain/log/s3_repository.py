"""
S3-based audit log repository using one-object-per-entry pattern.

Each entry is stored as a separate S3 object with key:
    {prefix}/{epoch_ms:015d}-{id}.json
Body format: AuditLogEntry.to_record() as canonical JSON.

Zero-padded epoch milliseconds make lexicographic key order equal
created_at order, so range and "just before" lookups need only the key
listing plus the objects actually returned.
"""

import json
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..core.canonical import canonical_encode_bytes, to_json_value
from ..core.entry import AuditLogEntry, NewAuditLogEntry
from ..core.errors import RepositoryError
from .repository import AuditLogRepository


def _epoch_ms(ts: datetime) -> int:
    delta = ts.astimezone(timezone.utc) - datetime(1970, 1, 1, tzinfo=timezone.utc)
    return (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000


class S3AuditLogRepository(AuditLogRepository):
    """
    S3-based append-only audit log repository.

    Guarantees:
    - Append-only (objects are never overwritten: ids are fresh uuid4 values)
    - Deterministic ordering (lexicographic key order = created_at order)
    - Strong read-after-write consistency (AWS S3 as of Dec 2020)

    Paginator: boto3 list_objects_v2 returns max 1000 keys per call.
    """

    def __init__(
        self,
        bucket: str,
        prefix: str = "audit",
        endpoint_url: Optional[str] = None,
        region: str = "us-east-1",
        check_bucket: bool = True,
    ) -> None:
        """
        Initialize S3 repository.

        Args:
            bucket: S3 bucket name
            prefix: Key prefix for entries (default: "audit")
            endpoint_url: S3 endpoint URL (for MinIO, localstack, etc.)
            region: AWS region (default: us-east-1)
            check_bucket: Verify the bucket is reachable at construction

        Raises:
            RepositoryError: If the S3 client cannot be created or the bucket is not accessible
        """
        self.bucket = bucket
        self.prefix = prefix.rstrip("/")
        self.endpoint_url = endpoint_url
        self.region = region

        try:
            self.s3_client = boto3.client(
                "s3",
                endpoint_url=endpoint_url,
                region_name=region,
            )
        except (BotoCoreError, ValueError) as e:
            raise RepositoryError(f"Failed to create S3 client: {e}") from e

        if check_bucket:
            try:
                self.s3_client.head_bucket(Bucket=bucket)
            except ClientError as e:
                error_code = e.response.get("Error", {}).get("Code", "Unknown")
                raise RepositoryError(
                    f"Bucket '{bucket}' not accessible (code: {error_code})"
                ) from e
            except BotoCoreError as e:
                raise RepositoryError(f"Bucket '{bucket}' not accessible: {e}") from e

    def _key_for(self, entry: AuditLogEntry) -> str:
        return f"{self.prefix}/{_epoch_ms(entry.created_at):015d}-{entry.id}.json"

    def _ms_from_key(self, key: str) -> Optional[int]:
        if not key.startswith(self.prefix + "/") or not key.endswith(".json"):
            return None
        basename = key[len(self.prefix) + 1 : -len(".json")]
        ms_part, _, entry_id = basename.partition("-")
        if not entry_id:
            return None
        try:
            return int(ms_part)
        except ValueError:
            return None

    def _list_keys(self) -> List[Tuple[int, str]]:
        """All entry keys as (epoch_ms, key), ascending."""
        paginator = self.s3_client.get_paginator("list_objects_v2")
        keys = []
        for page in paginator.paginate(Bucket=self.bucket, Prefix=self.prefix + "/"):
            for obj in page.get("Contents", []):
                ms = self._ms_from_key(obj["Key"])
                if ms is not None:
                    keys.append((ms, obj["Key"]))
        keys.sort()
        return keys

    def _get(self, key: str) -> AuditLogEntry:
        response = self.s3_client.get_object(Bucket=self.bucket, Key=key)
        body = response["Body"].read().decode("utf-8")
        return AuditLogEntry.from_record(json.loads(body))

    def create(self, entry: NewAuditLogEntry) -> AuditLogEntry:
        stored = AuditLogEntry.from_new(uuid.uuid4().hex, entry)
        record = stored.to_record()
        record["details"] = to_json_value(stored.details)
        try:
            self.s3_client.put_object(
                Bucket=self.bucket,
                Key=self._key_for(stored),
                Body=canonical_encode_bytes(record),
                ContentType="application/json",
            )
        except (BotoCoreError, ClientError) as e:
            raise RepositoryError(f"Failed to write audit entry to S3: {e}") from e
        return stored

    def find_last(self) -> Optional[AuditLogEntry]:
        try:
            keys = self._list_keys()
            if not keys:
                return None
            return self._get(keys[-1][1])
        except (BotoCoreError, ClientError) as e:
            raise RepositoryError(f"Failed to read last audit entry from S3: {e}") from e

    def find_just_before(self, ts: datetime) -> Optional[AuditLogEntry]:
        bound = _epoch_ms(ts)
        try:
            candidates = [key for ms, key in self._list_keys() if ms <= bound]
            for key in reversed(candidates):
                entry = self._get(key)
                if entry.created_at < ts:
                    return entry
            return None
        except (BotoCoreError, ClientError) as e:
            raise RepositoryError(f"Failed to read audit entry from S3: {e}") from e

    def find_by_date_range(self, start: datetime, end: datetime) -> List[AuditLogEntry]:
        lo, hi = _epoch_ms(start), _epoch_ms(end)
        try:
            entries = [self._get(key) for ms, key in self._list_keys() if lo <= ms <= hi]
        except (BotoCoreError, ClientError) as e:
            raise RepositoryError(f"Failed to read audit entries from S3: {e}") from e
        # Key granularity is one millisecond; apply the exact bounds too.
        return [e for e in entries if start <= e.created_at <= end]

    def all_entries(self) -> List[AuditLogEntry]:
        try:
            return [self._get(key) for _, key in self._list_keys()]
        except (BotoCoreError, ClientError) as e:
            raise RepositoryError(f"Failed to read audit entries from S3: {e}") from e
