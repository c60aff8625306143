from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, Path, Request, UploadFile, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from receipt_intake.api.deps import get_extraction_gateway, get_optional_user
from receipt_intake.core.config import settings
from receipt_intake.core.db import db_session
from receipt_intake.core.logging import get_logger, log_event
from receipt_intake.core.storage import get_storage
from receipt_intake.modules.extraction.gateway import ExtractionGateway
from receipt_intake.modules.identity.models import User
from receipt_intake.modules.receipts.models import MAX_RECEIPT_ID, ReceiptStatus
from receipt_intake.modules.receipts.schemas import ReceiptEnvelope, ReceiptListOut, ReceiptOut
from receipt_intake.modules.receipts.service import (
    get_receipt_for_user,
    ingest_receipt,
    list_receipts_for_user,
)

router = APIRouter(tags=["receipts"])
logger = get_logger(__name__)


def _callback_url(request: Request) -> str:
    if settings.callback_base_url:
        return f"{settings.callback_base_url.rstrip('/')}/api/receipts/webhook-callback"
    return str(request.url_for("receipt_webhook_callback"))


@router.post(
    "/receipts/upload",
    response_model=ReceiptEnvelope,
    status_code=status.HTTP_201_CREATED,
)
def upload_receipt(
    request: Request,
    image: UploadFile = File(...),
    webhook_url: str | None = Form(None),
    session: Session = Depends(db_session),
    user: User | None = Depends(get_optional_user),
    gateway: ExtractionGateway = Depends(get_extraction_gateway),
) -> ReceiptEnvelope:
    # Sync on purpose: dispatch blocks on the webhook and runs in the threadpool.
    body = image.file.read()
    filename = image.filename or "upload.bin"
    log_event(
        logger,
        "upload.received",
        filename=filename,
        content_type=image.content_type,
        byte_size=len(body),
        webhook_override=bool(webhook_url),
    )
    receipt = ingest_receipt(
        session,
        gateway=gateway,
        owner=user,
        filename=filename,
        content_type=image.content_type,
        body=body,
        webhook_url=webhook_url,
        callback_url=_callback_url(request),
    )
    message = (
        "Receipt could not be sent for extraction."
        if receipt.status == ReceiptStatus.FAILED
        else "Receipt is being processed."
    )
    return ReceiptEnvelope(
        receipt=ReceiptOut.model_validate(receipt, from_attributes=True),
        message=message,
    )


@router.get("/receipts", response_model=ReceiptListOut)
def list_receipts_endpoint(
    session: Session = Depends(db_session),
    user: User | None = Depends(get_optional_user),
) -> ReceiptListOut:
    receipts = list_receipts_for_user(session, user=user)
    return ReceiptListOut(
        receipts=[ReceiptOut.model_validate(r, from_attributes=True) for r in receipts]
    )


@router.get("/receipts/{receipt_id}", response_model=ReceiptEnvelope)
def get_receipt_endpoint(
    receipt_id: int = Path(ge=1, le=MAX_RECEIPT_ID),
    session: Session = Depends(db_session),
    user: User | None = Depends(get_optional_user),
) -> ReceiptEnvelope:
    receipt = get_receipt_for_user(session, receipt_id=receipt_id, user=user)
    return ReceiptEnvelope(receipt=ReceiptOut.model_validate(receipt, from_attributes=True))


@router.get("/receipts/{receipt_id}/image")
def download_receipt_image(
    receipt_id: int = Path(ge=1, le=MAX_RECEIPT_ID),
    session: Session = Depends(db_session),
    user: User | None = Depends(get_optional_user),
) -> Response:
    receipt = get_receipt_for_user(session, receipt_id=receipt_id, user=user)
    body = get_storage().get(key=receipt.image_key)
    return Response(content=body, media_type=receipt.content_type or "application/octet-stream")
