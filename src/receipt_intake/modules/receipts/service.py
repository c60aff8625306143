from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

import httpx
from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from receipt_intake.core.config import settings
from receipt_intake.core.logging import get_logger, log_event
from receipt_intake.core.storage import get_storage, receipt_image_key
from receipt_intake.modules.identity.models import User, UserRole
from receipt_intake.modules.receipts.models import OPEN_STATUSES, Receipt, ReceiptStatus

if TYPE_CHECKING:
    from receipt_intake.modules.extraction.gateway import ExtractionGateway

logger = get_logger(__name__)

ALLOWED_IMAGE_TYPES = frozenset(
    {"image/jpeg", "image/png", "image/jpg", "image/gif", "image/webp"}
)

STALE_PROCESSING_MESSAGE = "Timed out waiting for extraction results."


def create_receipt(
    session: Session,
    *,
    owner_id,
    image_key: str,
    filename: str,
    content_type: str | None,
    byte_size: int,
    status: ReceiptStatus = ReceiptStatus.PROCESSING,
) -> Receipt:
    receipt = Receipt(
        owner_id=owner_id,
        image_key=image_key,
        filename=filename,
        content_type=content_type,
        byte_size=byte_size,
        status=status,
        is_duplicate=False,
    )
    session.add(receipt)
    session.commit()
    session.refresh(receipt)
    log_event(
        logger,
        "receipt.created",
        receipt_id=receipt.id,
        owner_id=str(owner_id) if owner_id else None,
        filename=filename,
        content_type=content_type,
        byte_size=byte_size,
        receipt_status=receipt.status.value,
    )
    return receipt


def get_receipt(session: Session, *, receipt_id: int) -> Receipt | None:
    return session.scalar(select(Receipt).where(Receipt.id == receipt_id))


def get_receipt_for_user(session: Session, *, receipt_id: int, user: User | None) -> Receipt:
    receipt = get_receipt(session, receipt_id=receipt_id)
    if not receipt:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Receipt not found")
    if user is None or user.role == UserRole.ADMIN:
        return receipt
    if receipt.owner_id is not None and receipt.owner_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed")
    return receipt


def list_receipts(session: Session, *, owner_id=None) -> list[Receipt]:
    stmt = select(Receipt).order_by(Receipt.created_at.desc(), Receipt.id.desc())
    if owner_id is not None:
        stmt = stmt.where(Receipt.owner_id == owner_id)
    return list(session.scalars(stmt))


def list_receipts_for_user(session: Session, *, user: User | None) -> list[Receipt]:
    if user is None or user.role == UserRole.ADMIN:
        return list_receipts(session)
    return list_receipts(session, owner_id=user.id)


def finalize_receipt(session: Session, *, receipt_id: int, values: dict[str, Any]) -> bool:
    """
    Write `values` iff the receipt is still open (pending/processing).

    Does not commit; the caller owns the transaction and handles fingerprint
    index violations. Returns False when the receipt is already terminal.
    """
    result = session.execute(
        update(Receipt)
        .where(Receipt.id == receipt_id, Receipt.status.in_(list(OPEN_STATUSES)))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return bool(result.rowcount)


def mark_receipt_failed(session: Session, *, receipt_id: int, error_message: str) -> bool:
    applied = finalize_receipt(
        session,
        receipt_id=receipt_id,
        values={"status": ReceiptStatus.FAILED, "error_message": error_message},
    )
    session.commit()
    log_event(
        logger,
        "receipt.failed",
        receipt_id=receipt_id,
        error_message=error_message,
        applied=applied,
    )
    return applied


def expire_stale_receipts(session: Session, *, older_than: datetime) -> int:
    result = session.execute(
        update(Receipt)
        .where(
            Receipt.status.in_(list(OPEN_STATUSES)),
            Receipt.updated_at < older_than,
        )
        .values(status=ReceiptStatus.FAILED, error_message=STALE_PROCESSING_MESSAGE)
        .execution_options(synchronize_session=False)
    )
    session.commit()
    expired = int(result.rowcount or 0)
    if expired:
        log_event(logger, "receipt.expired", count=expired, older_than=older_than.isoformat())
    return expired


def sniff_image_type(body: bytes) -> str | None:
    if body.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if body.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if body.startswith((b"GIF87a", b"GIF89a")):
        return "image/gif"
    if len(body) >= 12 and body.startswith(b"RIFF") and body[8:12] == b"WEBP":
        return "image/webp"
    return None


def validate_upload(*, content_type: str | None, body: bytes) -> str:
    """Check an upload before anything is stored and return its sniffed MIME type."""
    if not body:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Uploaded image is empty."
        )
    if len(body) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Image exceeds the {settings.max_upload_bytes // 1024} KB limit.",
        )
    declared = (content_type or "").split(";")[0].strip().lower()
    sniffed = sniff_image_type(body)
    if declared not in ALLOWED_IMAGE_TYPES or sniffed is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Image must be a JPEG, PNG, GIF or WEBP file.",
        )
    return sniffed


def validate_webhook_url(webhook_url: str | None) -> str | None:
    if webhook_url is None or not webhook_url.strip():
        return None
    try:
        url = httpx.URL(webhook_url.strip())
    except httpx.InvalidURL as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="webhook_url is not a URL."
        ) from e
    if url.scheme not in ("http", "https") or not url.host:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="webhook_url must be an absolute http(s) URL.",
        )
    return str(url)


def ingest_receipt(
    session: Session,
    *,
    gateway: ExtractionGateway,
    owner: User | None,
    filename: str,
    content_type: str | None,
    body: bytes,
    webhook_url: str | None,
    callback_url: str,
) -> Receipt:
    mime_type = validate_upload(content_type=content_type, body=body)
    override = validate_webhook_url(webhook_url)

    stored = get_storage().put(key=receipt_image_key(filename), body=body)
    receipt = create_receipt(
        session,
        owner_id=owner.id if owner else None,
        image_key=stored.key,
        filename=filename,
        content_type=mime_type,
        byte_size=stored.byte_size,
    )

    gateway.dispatch(
        session,
        receipt,
        body=body,
        content_type=mime_type,
        filename=filename,
        callback_url=callback_url,
        target_url=gateway.resolve_target(override),
    )
    session.refresh(receipt)
    return receipt
