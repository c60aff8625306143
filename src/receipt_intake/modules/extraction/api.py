from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from receipt_intake.core.db import db_session
from receipt_intake.modules.extraction.schemas import CallbackAckOut, ReceiptCallbackIn
from receipt_intake.modules.extraction.service import ExtractedFields, resolve_callback
from receipt_intake.modules.receipts.schemas import ReceiptOut

router = APIRouter(tags=["extraction"])


@router.post(
    "/receipts/webhook-callback",
    response_model=CallbackAckOut,
    name="receipt_webhook_callback",
)
def webhook_callback(
    payload: ReceiptCallbackIn,
    session: Session = Depends(db_session),
) -> CallbackAckOut:
    outcome = resolve_callback(
        session,
        receipt_id=payload.receipt_id,
        fields=ExtractedFields.from_callback(payload),
    )
    message = "Receipt updated." if outcome.applied else "Receipt was already resolved."
    return CallbackAckOut(
        applied=outcome.applied,
        receipt=ReceiptOut.model_validate(outcome.receipt, from_attributes=True),
        message=message,
    )
