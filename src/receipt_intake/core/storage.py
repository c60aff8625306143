from __future__ import annotations

import os
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from receipt_intake.core.config import settings
from receipt_intake.core.logging import get_logger, log_event, log_exception, monotonic_ms

logger = get_logger(__name__)

_RETRYABLE_S3_CODES = frozenset(
    {
        "RequestTimeout",
        "Throttling",
        "ThrottlingException",
        "SlowDown",
        "InternalError",
        "ServiceUnavailable",
    }
)


class StorageError(RuntimeError):
    pass


@dataclass(frozen=True)
class StoredObject:
    key: str
    byte_size: int


class ObjectStorage:
    backend = "abstract"

    def put(self, *, key: str, body: bytes) -> StoredObject:  # pragma: no cover
        raise NotImplementedError

    def get(self, *, key: str) -> bytes:  # pragma: no cover
        raise NotImplementedError

    def delete(self, *, key: str) -> None:  # pragma: no cover
        raise NotImplementedError


class LocalObjectStorage(ObjectStorage):
    backend = "local"

    def __init__(self, root: Path):
        self._root = root
        self._root.mkdir(parents=True, exist_ok=True)

    def put(self, *, key: str, body: bytes) -> StoredObject:
        start = time.monotonic()
        path = self._root / key
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(body)
        except OSError:
            log_exception(
                logger, "storage.put.failure", backend=self.backend, storage_key=key
            )
            raise
        log_event(
            logger,
            "storage.put.success",
            backend=self.backend,
            storage_key=key,
            byte_size=len(body),
            duration_ms=monotonic_ms(start),
        )
        return StoredObject(key=key, byte_size=len(body))

    def get(self, *, key: str) -> bytes:
        path = self._root / key
        if not path.exists():
            log_event(logger, "storage.get.failure", backend=self.backend, storage_key=key)
            raise StorageError(f"Object not found: {key}")
        return path.read_bytes()

    def delete(self, *, key: str) -> None:
        (self._root / key).unlink(missing_ok=True)


class S3ObjectStorage(ObjectStorage):
    backend = "s3"
    max_attempts = 4

    def __init__(self) -> None:
        region = settings.s3_region
        if not region or region.lower() == "auto":
            region = "us-east-1"
        session = boto3.session.Session(
            aws_access_key_id=settings.s3_access_key_id,
            aws_secret_access_key=settings.s3_secret_access_key,
            region_name=region,
        )
        self._client = session.client(
            "s3",
            endpoint_url=settings.s3_endpoint_url or None,
            config=Config(
                s3={"addressing_style": "virtual"},
                retries={"max_attempts": 3, "mode": "adaptive"},
                connect_timeout=30,
                read_timeout=60,
            ),
        )
        self._bucket = settings.s3_bucket

    @staticmethod
    def _is_retryable(error: Exception) -> bool:
        if isinstance(error, ClientError):
            return (error.response.get("Error") or {}).get("Code") in _RETRYABLE_S3_CODES
        return isinstance(error, BotoCoreError)

    def put(self, *, key: str, body: bytes) -> StoredObject:
        start = time.monotonic()
        for attempt in range(1, self.max_attempts + 1):
            try:
                self._client.put_object(Bucket=self._bucket, Key=key, Body=body)
                break
            except (BotoCoreError, ClientError) as e:
                if attempt < self.max_attempts and self._is_retryable(e):
                    delay_s = min(2.0, 0.25 * 2 ** (attempt - 1))
                    log_event(
                        logger,
                        "storage.put.retry",
                        backend=self.backend,
                        storage_key=key,
                        attempt=attempt,
                        delay_s=delay_s,
                        error_type=type(e).__name__,
                    )
                    time.sleep(delay_s)
                    continue
                log_exception(
                    logger,
                    "storage.put.failure",
                    backend=self.backend,
                    storage_key=key,
                    attempt=attempt,
                )
                raise StorageError(f"Could not store object: {key}") from e
        log_event(
            logger,
            "storage.put.success",
            backend=self.backend,
            storage_key=key,
            byte_size=len(body),
            duration_ms=monotonic_ms(start),
        )
        return StoredObject(key=key, byte_size=len(body))

    def get(self, *, key: str) -> bytes:
        try:
            resp = self._client.get_object(Bucket=self._bucket, Key=key)
            return resp["Body"].read()
        except (BotoCoreError, ClientError) as e:
            log_exception(logger, "storage.get.failure", backend=self.backend, storage_key=key)
            raise StorageError(f"Object not found: {key}") from e

    def delete(self, *, key: str) -> None:
        self._client.delete_object(Bucket=self._bucket, Key=key)


_storage: ObjectStorage | None = None


def get_storage() -> ObjectStorage:
    global _storage  # noqa: PLW0603
    if _storage is not None:
        return _storage

    if settings.storage_backend == "s3":
        _storage = S3ObjectStorage()
    else:
        root = settings.local_storage_path
        if not root.is_absolute():
            root = Path(os.getcwd()) / root
        _storage = LocalObjectStorage(root)
    return _storage


def receipt_image_key(filename: str) -> str:
    name = filename.replace("\\", "/").split("/")[-1].strip() or "upload.bin"
    return f"receipts/{uuid.uuid4()}-{'_'.join(name.split())}"


def diagnose_storage(*, write_test: bool = False) -> dict[str, Any]:
    """Round-trip a tiny object through the configured backend. Never returns credentials."""
    storage = get_storage()
    result: dict[str, Any] = {"ok": True, "backend": storage.backend}
    if not write_test:
        return result

    key = f"diagnostics/healthz-{uuid.uuid4()}.txt"
    start = time.monotonic()
    try:
        storage.put(key=key, body=b"ok")
        echoed = storage.get(key=key)
        storage.delete(key=key)
    except (OSError, StorageError, BotoCoreError, ClientError) as e:
        result.update(ok=False, error_type=type(e).__name__, error=str(e))
        return result
    result["write_test"] = {"ok": echoed == b"ok", "duration_ms": monotonic_ms(start)}
    result["ok"] = echoed == b"ok"
    return result
